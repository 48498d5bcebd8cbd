"""Command-line interface for Ambiscene.

Responsibilities:
- Expose user-facing commands for soundscape runs, cache inspection, and credentials.
- Resolve effective `PipelineConfig` from YAML, environment, keyring, and flags.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from .audio.cache import SoundscapeCache
from .cli_rendering import echo_book_summary, echo_cache_entries, exit_with_command_error
from .config import ConfigLoader, PipelineConfig
from .credentials import create_credential_store
from .errors import PipelineStageError
from .io.storage import ArtifactStore, FilesystemObjectStorage
from .llm.rate_limiter import RateLimiter
from .models.datatypes import Book, BookStatus, Page
from .parsing import normalize_optional_string
from .pipeline import BookJob, BookScheduler, SoundscapePipeline
from .provider_factory import ProviderFactory
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="ambiscene",
    no_args_is_help=True,
    help="Ambiscene CLI.",
)


def _load_yaml_config(config_path: Path | None) -> PipelineConfig | None:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return None

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _resolve_api_key(cli_api_key: str | None, config: PipelineConfig) -> str | None:
    """Pick the API key: CLI flag, then keyring, then environment or config file."""

    explicit = normalize_optional_string(cli_api_key)
    if explicit is not None:
        return explicit
    stored = create_credential_store().get_api_key()
    if stored is not None:
        return stored
    return config.api_key


def _resolve_run_config(
    config_file: Path | None,
    out: Path | None,
    cache: Path | None,
    threshold: float | None,
    api_key: str | None,
) -> PipelineConfig:
    """Resolve effective run config from YAML, environment, and explicit CLI overrides."""

    base_config = _load_yaml_config(config_file) or PipelineConfig()
    try:
        config = ConfigLoader.from_env(base=base_config)
        return config.with_overrides(
            output_dir=out,
            cache_path=cache,
            boundary_threshold=threshold,
            api_key=_resolve_api_key(api_key, config),
        )
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=str(exc),
            hint="Check `AMBISCENE_*` environment variables and command options.",
        ) from exc


def _load_pages_file(path: Path) -> BookJob:
    """Read one `{"book_id", "pages"}` JSON document into a runnable job."""

    hint = 'Expected `{"book_id": "...", "pages": [{"page_number": 1, "text": "..."}]}`.'
    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="input", detail=f"Pages file not found: `{path}`.", hint=hint
        ) from exc
    except json.JSONDecodeError as exc:
        raise PipelineStageError(
            stage="input", detail=f"Pages file `{path}` is not valid JSON: {exc}", hint=hint
        ) from exc

    if not isinstance(payload, dict):
        raise PipelineStageError(
            stage="input", detail=f"Pages file `{path}` must contain a JSON object.", hint=hint
        )
    book_id = normalize_optional_string(payload.get("book_id")) or path.stem
    raw_pages = payload.get("pages", [])
    if not isinstance(raw_pages, list):
        raise PipelineStageError(
            stage="input", detail=f"`pages` in `{path}` must be a list.", hint=hint
        )
    pages: list[Page] = []
    for position, raw_page in enumerate(raw_pages, start=1):
        if not isinstance(raw_page, dict):
            raise PipelineStageError(
                stage="input",
                detail=f"Page entry {position} in `{path}` must be an object.",
                hint=hint,
            )
        try:
            page_number = int(raw_page.get("page_number", position))
        except (TypeError, ValueError) as exc:
            raise PipelineStageError(
                stage="input",
                detail=f"Page entry {position} in `{path}` has an invalid `page_number`.",
                hint=hint,
            ) from exc
        pages.append(Page(page_number=page_number, text=str(raw_page.get("text") or "")))
    numbers = [page.page_number for page in pages]
    if len(set(numbers)) != len(numbers):
        raise PipelineStageError(
            stage="input", detail=f"Pages file `{path}` repeats page numbers.", hint=hint
        )
    return BookJob(book=Book(book_id=book_id), pages=tuple(pages))


def _load_cache(cache_path: Path | None) -> SoundscapeCache:
    """Load the persisted soundscape cache, or start an empty one."""

    if cache_path is None:
        return SoundscapeCache()
    try:
        return SoundscapeCache.load(ArtifactStore(cache_path.parent), Path(cache_path.name))
    except (ValueError, KeyError) as exc:
        raise PipelineStageError(
            stage="cache",
            detail=f"Cache file `{cache_path}` is not a valid soundscape cache: {exc}",
            hint="Delete or fix the cache file and rerun.",
        ) from exc


@app.command("run")
def run_command(
    pages_json: Annotated[
        list[Path],
        typer.Argument(help="One or more JSON files with extracted book pages."),
    ],
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", help="Output directory for reports and audio."),
    ] = None,
    cache: Annotated[
        Path | None,
        typer.Option("--cache", help="Soundscape cache JSON file, loaded and saved."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Scene boundary similarity threshold (0..1)."),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", help="One-time API key for this run."),
    ] = None,
) -> None:
    """Detect scenes and attach ambient soundscapes for each book."""

    try:
        config = _resolve_run_config(config_file, out, cache, threshold, api_key)
        jobs = [_load_pages_file(path) for path in pages_json]
        soundscape_cache = _load_cache(config.cache_path)
        limiter = RateLimiter()
        pipeline = SoundscapePipeline(
            classifier=ProviderFactory.create_classifier(config, limiter),
            synthesizer=ProviderFactory.create_synthesizer(config, limiter),
            storage=FilesystemObjectStorage(
                config.output_dir, public_base_url=config.public_base_url
            ),
            cache=soundscape_cache,
            config=config,
            run_logger=RunLogger(),
        )
        reports = BookScheduler(pipeline, config.max_concurrent_books).run_all(jobs)
        store = ArtifactStore(config.output_dir)
        report_paths = [
            store.save_json(Path(report.book.book_id) / "report.json", report.as_payload())
            for report in reports
        ]
        if config.cache_path is not None:
            soundscape_cache.save(
                ArtifactStore(config.cache_path.parent), Path(config.cache_path.name)
            )
    except Exception as exc:
        exit_with_command_error("run", exc)

    for report, report_path in zip(reports, report_paths):
        echo_book_summary(report, str(report_path))
    failed = [
        report.book.book_id
        for report in reports
        if report.book.processing_status == BookStatus.FAILED
    ]
    if failed:
        typer.secho(f"Failed books: {', '.join(failed)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command("cache")
def cache_command(
    cache_json: Annotated[Path, typer.Argument(help="Soundscape cache JSON file.")],
    evict_book: Annotated[
        str | None,
        typer.Option("--evict-book", help="Remove every entry owned by this book id."),
    ] = None,
) -> None:
    """List soundscape cache entries, optionally evicting one book's entries."""

    try:
        if not cache_json.exists():
            raise PipelineStageError(
                stage="cache",
                detail=f"Cache file not found: `{cache_json}`.",
                hint="Pass the path used with `ambiscene run --cache`.",
            )
        soundscape_cache = _load_cache(cache_json)
        if evict_book is not None:
            removed = soundscape_cache.evict_book(evict_book)
            soundscape_cache.save(ArtifactStore(cache_json.parent), Path(cache_json.name))
            typer.echo(f"Evicted {removed} entr{'y' if removed == 1 else 'ies'} for book {evict_book}.")
    except Exception as exc:
        exit_with_command_error("cache", exc)

    echo_cache_entries(soundscape_cache.entries())


@app.command("credentials")
def credentials_command(
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored CLI credentials."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                "API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo("API key stored in secure credential storage.")
        return

    if clear_api_key:
        removed = credential_store.clear_api_key()
        if removed:
            typer.echo("Stored API key cleared from secure credential storage.")
        else:
            typer.echo("No stored API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    has_stored_key = credential_store.get_api_key() is not None
    status = "present" if has_stored_key else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()

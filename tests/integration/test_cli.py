"""Integration tests for the `run`, `cache`, and `credentials` CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

from pytest import MonkeyPatch
from typer.testing import CliRunner

from ambiscene.cli import app
from ambiscene.errors import ErrorKind, ProviderError
from tests.fakes import VILLAGE_MORNING, FakeClassifier, FakeSynthesizer
from tests.integration.conftest import FakeServices, InMemoryCredentialStore

runner = CliRunner()


def _write_pages(path: Path, book_id: str | None, texts: list[str]) -> Path:
    """Write a pages JSON document for the `run` command."""

    payload: dict[str, object] = {
        "pages": [
            {"page_number": number, "text": text} for number, text in enumerate(texts, start=1)
        ]
    }
    if book_id is not None:
        payload["book_id"] = book_id
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _run(tmp_path: Path, *pages_files: Path, extra_args: list[str] | None = None):  # type: ignore[no-untyped-def]
    args = ["run", *map(str, pages_files), "--out", str(tmp_path / "out")]
    args.extend(["--cache", str(tmp_path / "cache.json")])
    return runner.invoke(app, [*args, *(extra_args or [])])


def test_run_writes_report_audio_and_cache(tmp_path: Path, fake_services: FakeServices) -> None:
    """A successful run should persist the report, the audio, and the cache index."""

    fake_services.classifier = FakeClassifier(scripts={"c": [VILLAGE_MORNING]})
    pages = _write_pages(tmp_path / "dune.json", "dune", ["a", "b", "c"])

    result = _run(tmp_path, pages)

    assert result.exit_code == 0, result.output
    assert "Book dune: ready_for_review" in result.output
    assert "Scenes: 2 (soundscapes: 2, reused: 0)" in result.output
    report = json.loads((tmp_path / "out" / "dune" / "report.json").read_text(encoding="utf-8"))
    assert report["processing_status"] == "ready_for_review"
    assert report["page_scene_index"] == {"1": 1, "2": 1, "3": 2}
    assert len(report["soundscapes"]) == 2
    assert report["extra"]["cache_misses"] == "2"
    assert len(list((tmp_path / "out" / "soundscapes" / "dune").glob("*.mp3"))) == 2
    cache = json.loads((tmp_path / "cache.json").read_text(encoding="utf-8"))
    assert len(cache["entries"]) == 2


def test_run_reuses_cached_soundscapes_across_books(
    tmp_path: Path, fake_services: FakeServices
) -> None:
    """A second book with a matching scene should reuse the first book's audio."""

    first = _write_pages(tmp_path / "dune.json", "dune", ["a", "b"])
    assert _run(tmp_path, first).exit_code == 0
    second = _write_pages(tmp_path / "emma.json", None, ["x"])

    result = _run(tmp_path, second)

    assert result.exit_code == 0, result.output
    assert "Book emma: ready_for_review" in result.output
    assert "reused: 1" in result.output
    assert len(fake_services.synthesizer.submitted) == 1


def test_run_exits_nonzero_when_a_book_fails(tmp_path: Path, fake_services: FakeServices) -> None:
    """Failed books should be listed and the command should exit with code 1."""

    fake_services.synthesizer = FakeSynthesizer(
        submit_error=lambda _prompt: ProviderError("HTTP 400", kind=ErrorKind.PERMANENT_REQUEST)
    )
    pages = _write_pages(tmp_path / "dune.json", "dune", ["a"])

    result = _run(tmp_path, pages)

    assert result.exit_code == 1
    assert "Book dune: failed" in result.output
    assert "all_scenes_failed" in result.output
    assert "Failed books: dune" in result.output
    report = json.loads((tmp_path / "out" / "dune" / "report.json").read_text(encoding="utf-8"))
    assert report["processing_status"] == "failed"


def test_run_reports_missing_config_file(tmp_path: Path) -> None:
    """A missing `--config` path should fail at the config stage with a hint."""

    pages = _write_pages(tmp_path / "dune.json", "dune", ["a"])

    result = _run(tmp_path, pages, extra_args=["--config", str(tmp_path / "missing.yml")])

    assert result.exit_code == 1
    assert "run failed at stage `config`" in result.output
    assert "Hint:" in result.output


def test_run_rejects_invalid_threshold(tmp_path: Path) -> None:
    """Out-of-range overrides should fail at the config stage."""

    pages = _write_pages(tmp_path / "dune.json", "dune", ["a"])

    result = _run(tmp_path, pages, extra_args=["--threshold", "1.5"])

    assert result.exit_code == 1
    assert "run failed at stage `config`" in result.output
    assert "boundary_threshold" in result.output


def test_run_rejects_malformed_pages_files(tmp_path: Path) -> None:
    """Invalid JSON and repeated page numbers should fail at the input stage."""

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    repeated = tmp_path / "repeated.json"
    repeated.write_text(
        json.dumps({"pages": [{"page_number": 1, "text": "a"}, {"page_number": 1, "text": "b"}]}),
        encoding="utf-8",
    )

    broken_result = _run(tmp_path, broken)
    repeated_result = _run(tmp_path, repeated)

    assert broken_result.exit_code == 1
    assert "run failed at stage `input`" in broken_result.output
    assert "not valid JSON" in broken_result.output
    assert repeated_result.exit_code == 1
    assert "repeats page numbers" in repeated_result.output


def test_run_resolves_settings_from_yaml_env_keyring_and_flags(
    tmp_path: Path, fake_services: FakeServices, monkeypatch: MonkeyPatch
) -> None:
    """Flags beat environment, which beats YAML; keyring supplies the API key."""

    fake_services.credential_store = InMemoryCredentialStore("stored-key")
    config_path = tmp_path / "ambiscene.yml"
    config_path.write_text(
        "boundary_threshold: 0.8\nmax_retries: 1\nsynthesis_concurrency: 2\n", encoding="utf-8"
    )
    monkeypatch.setenv("AMBISCENE_MAX_RETRIES", "5")
    monkeypatch.setenv("AMBISCENE_BOUNDARY_THRESHOLD", "0.7")
    pages = _write_pages(tmp_path / "dune.json", "dune", ["a"])

    result = _run(
        tmp_path, pages, extra_args=["--config", str(config_path), "--threshold", "0.3"]
    )

    assert result.exit_code == 0, result.output
    config = fake_services.configs[-1]
    assert config.boundary_threshold == 0.3
    assert config.max_retries == 5
    assert config.synthesis_concurrency == 2
    assert config.api_key == "stored-key"

    flagged = _run(tmp_path, pages, extra_args=["--api-key", " cli-key "])

    assert flagged.exit_code == 0, flagged.output
    assert fake_services.configs[-1].api_key == "cli-key"


def test_cache_command_lists_and_evicts_entries(tmp_path: Path) -> None:
    """The cache command should list entries and evict one book's entries."""

    pages = _write_pages(tmp_path / "dune.json", "dune", ["a"])
    assert _run(tmp_path, pages).exit_code == 0
    cache_path = tmp_path / "cache.json"

    listed = runner.invoke(app, ["cache", str(cache_path)])
    evicted = runner.invoke(app, ["cache", str(cache_path), "--evict-book", "dune"])
    relisted = runner.invoke(app, ["cache", str(cache_path)])

    assert listed.exit_code == 0, listed.output
    assert "forest|tense|high\tbook=dune" in listed.output
    assert "Entries: 1" in listed.output
    assert "Evicted 1 entry for book dune." in evicted.output
    assert "Entries: 0" in evicted.output
    assert "Entries: 0" in relisted.output


def test_cache_command_reports_missing_file(tmp_path: Path) -> None:
    """Listing a missing cache file should fail at the cache stage."""

    result = runner.invoke(app, ["cache", str(tmp_path / "absent.json")])

    assert result.exit_code == 1
    assert "cache failed at stage `cache`" in result.output


def test_credentials_status_set_and_clear(fake_services: FakeServices) -> None:
    """Credentials command should report, store, and clear the API key."""

    store = fake_services.credential_store

    status = runner.invoke(app, ["credentials"])
    stored = runner.invoke(app, ["credentials", "--set-api-key"], input="sk-test-value\n")
    present = runner.invoke(app, ["credentials"])
    cleared = runner.invoke(app, ["credentials", "--clear-api-key"])
    cleared_again = runner.invoke(app, ["credentials", "--clear-api-key"])

    assert "Secure credential storage: available" in status.output
    assert "Stored API key: not set" in status.output
    assert stored.exit_code == 0, stored.output
    assert "API key stored in secure credential storage." in stored.output
    assert "Stored API key: present" in present.output
    assert "sk-test-value" not in present.output
    assert "Stored API key cleared" in cleared.output
    assert "No stored API key found" in cleared_again.output
    assert store.get_api_key() is None


def test_credentials_rejects_conflicting_flags() -> None:
    """Set and clear cannot be combined."""

    result = runner.invoke(app, ["credentials", "--set-api-key", "--clear-api-key"])

    assert result.exit_code == 1
    assert "credentials failed at stage `credentials`" in result.output

"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
book run summaries, cost summaries, and cache listings.
"""

from __future__ import annotations

from typing import NoReturn, Sequence

import typer

from .audio.cache import CacheEntry
from .errors import PipelineStageError
from .models.datatypes import BookReport, BookStatus


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_book_summary(report: BookReport, report_path: str) -> None:
    """Print status, scene counts, and recorded errors for one book."""

    book = report.book
    color = typer.colors.RED if book.processing_status == BookStatus.FAILED else None
    typer.secho(f"Book {book.book_id}: {book.processing_status.value}", fg=color)
    reused = sum(1 for item in report.soundscapes if item.source.value == "reused")
    typer.echo(
        f"  Scenes: {len(report.scenes)} "
        f"(soundscapes: {len(report.soundscapes)}, reused: {reused})"
    )
    for record in book.snapshot_errors():
        location = ""
        if record.page_number is not None:
            location = f" page={record.page_number}"
        elif record.scene_number is not None:
            location = f" scene={record.scene_number}"
        typer.echo(f"  Error [{record.stage}/{record.kind.value}]{location}: {record.message}")
    echo_cost_summary(report)
    typer.echo(f"  Report: {report_path}")


def echo_cost_summary(report: BookReport) -> None:
    """Print book-level cost summary in USD."""

    extra = report.extra
    typer.echo(f"  Cost classification (USD): {extra.get('classification_cost_usd', '0.000000')}")
    typer.echo(f"  Cost synthesis (USD): {extra.get('synthesis_cost_usd', '0.000000')}")
    typer.echo(f"  Cost total (USD): {report.book.processing_cost:.6f}")


def echo_cache_entries(entries: Sequence[CacheEntry]) -> None:
    """Print one deterministic row per cache entry."""

    rows = sorted(entries, key=lambda item: (item.fingerprint.key, item.book_id))
    for entry in rows:
        typer.echo(f"{entry.fingerprint.key}\tbook={entry.book_id}\t{entry.soundscape.audio_url}")
    typer.echo(f"Entries: {len(rows)}")

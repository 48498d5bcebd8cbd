"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase-level runtime logs through `loguru`.
- Keep item-level failure logs free of provider payloads (error kinds only).
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/", "|"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stderr
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level=level, colorize=False)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str, book_id: str) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage, book=book_id)

    def log_stage_complete(self, stage: str, book_id: str) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage, book=book_id)

    def log_stage_failure(self, stage: str, book_id: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, book=book_id, error_type=error_type)

    def log_page_failure(self, book_id: str, page_number: int, error_kind: str) -> None:
        """Emit a degraded-page event."""

        self._emit(
            "WARNING", "page_failure", "analyzing", book=book_id, page=page_number, error_kind=error_kind
        )

    def log_scene_failure(self, book_id: str, scene_number: int, error_kind: str) -> None:
        """Emit a skipped-scene event."""

        self._emit(
            "WARNING", "scene_failure", "mapping", book=book_id, scene=scene_number, error_kind=error_kind
        )

    def log_cache_hit(self, book_id: str, scene_number: int, fingerprint: str) -> None:
        """Emit a cache-hit event for one scene."""

        self._emit(
            "INFO", "cache_hit", "mapping", book=book_id, scene=scene_number, fingerprint=fingerprint
        )

    def log_cache_miss(self, book_id: str, scene_number: int, fingerprint: str) -> None:
        """Emit a cache-miss event for one scene."""

        self._emit(
            "INFO", "cache_miss", "mapping", book=book_id, scene=scene_number, fingerprint=fingerprint
        )

    def log_retry(
        self, stage: str, book_id: str, attempt: int, error_kind: str, delay_seconds: float
    ) -> None:
        """Emit a retry-scheduled event."""

        self._emit(
            "WARNING",
            "retry",
            stage,
            book=book_id,
            attempt=attempt,
            error_kind=error_kind,
            delay=f"{delay_seconds:.2f}",
        )

    def log_event(self, stage: str, event: str, book_id: str, **context: object) -> None:
        """Emit an auxiliary event such as a job resubmission."""

        self._emit("INFO", event, stage, book=book_id, **context)

    def log_book_terminal(self, book_id: str, status: str, cost: float, error_count: int) -> None:
        """Emit the terminal status of a book run."""

        level = "ERROR" if status == "failed" else "INFO"
        self._emit(
            level,
            "terminal",
            "book",
            book=book_id,
            status=status,
            cost=f"{cost:.6f}",
            errors=error_count,
        )

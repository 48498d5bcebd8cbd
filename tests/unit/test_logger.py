"""Unit tests for structured runtime logging."""

from __future__ import annotations

import io

from ambiscene.telemetry.logger import RunLogger


def _lines(sink: io.StringIO) -> list[str]:
    return [line for line in sink.getvalue().splitlines() if line]


def test_run_logger_emits_deterministic_phase_lines() -> None:
    """Stage and item events should render with sorted, sanitized context."""

    sink = io.StringIO()
    run_logger = RunLogger(sink=sink)

    run_logger.log_stage_start("analyzing", "my book")
    run_logger.log_page_failure("my book", 3, "transient_transport")
    run_logger.log_cache_hit("my book", 2, "forest|tense|high")
    run_logger.log_retry("analyzing", "my book", 1, "transient_transport", 2.0)

    assert _lines(sink) == [
        "[phase] level=INFO stage=analyzing event=start book=my_book",
        "[phase] level=WARNING stage=analyzing event=page_failure book=my_book "
        "error_kind=transient_transport page=3",
        "[phase] level=INFO stage=mapping event=cache_hit book=my_book "
        "fingerprint=forest|tense|high scene=2",
        "[phase] level=WARNING stage=analyzing event=retry attempt=1 book=my_book "
        "delay=2.00 error_kind=transient_transport",
    ]


def test_run_logger_reports_terminal_failures_at_error_level() -> None:
    """Failed books should log their terminal line at `ERROR`."""

    sink = io.StringIO()
    RunLogger(sink=sink).log_book_terminal("book-1", "failed", 0.001, 2)

    assert _lines(sink) == [
        "[phase] level=ERROR stage=book event=terminal book=book-1 cost=0.001000 "
        "errors=2 status=failed",
    ]


def test_run_logger_respects_minimum_level() -> None:
    """Lines below the configured level should be dropped."""

    sink = io.StringIO()
    run_logger = RunLogger(sink=sink, level="WARNING")

    run_logger.log_stage_complete("mapping", "book-1")
    run_logger.log_scene_failure("book-1", 4, "synthesis_timeout")

    assert _lines(sink) == [
        "[phase] level=WARNING stage=mapping event=scene_failure book=book-1 "
        "error_kind=synthesis_timeout scene=4",
    ]

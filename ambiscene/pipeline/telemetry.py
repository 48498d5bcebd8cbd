"""Stage telemetry helper methods for the soundscape pipeline.

Responsibilities:
- Emit stage start/complete/failure events.
- Wrap stage actions with consistent telemetry hooks.
- Forward retry and item-failure events to the run logger.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from ..errors import ErrorKind, PipelineStageError, ProviderError
from ..models.datatypes import BookStatus, ErrorRecord
from ..telemetry.logger import RunLogger
from .context import BookRun

_StageResult = TypeVar("_StageResult")


class PipelineTelemetryMixin:
    """Provide stage-telemetry helper methods."""

    _run_logger: RunLogger | None

    def _on_stage_start(self, run: BookRun, stage_name: str) -> None:
        """Emit start event to the structured logger."""

        if self._run_logger is not None:
            self._run_logger.log_stage_start(stage_name, run.book.book_id)

    def _on_stage_complete(self, run: BookRun, stage_name: str) -> None:
        """Emit stage-complete event to the structured logger."""

        if self._run_logger is not None:
            self._run_logger.log_stage_complete(stage_name, run.book.book_id)

    def _on_stage_failure(self, run: BookRun, stage_name: str, exc: Exception) -> None:
        """Emit stage-failure event with sanitized exception metadata."""

        if self._run_logger is not None:
            self._run_logger.log_stage_failure(stage_name, run.book.book_id, type(exc).__name__)

    def _run_stage(
        self,
        run: BookRun,
        stage_name: str,
        action: Callable[[], _StageResult],
    ) -> _StageResult:
        """Run one named stage, commit its spend, and emit telemetry events.

        Item-level failures never reach here. Anything else fails the book with a
        `stage_crashed` record, so it can be re-run, and surfaces as
        `PipelineStageError`.
        """

        self._on_stage_start(run, stage_name)
        try:
            result = action()
        except Exception as exc:
            run.costs.commit_to(run.book)
            self._on_stage_failure(run, stage_name, exc)
            detail = f"{stage_name} stage crashed for book `{run.book.book_id}`: {exc}"
            run.book.record_error(
                ErrorRecord(
                    stage=stage_name,
                    kind=ErrorKind.STAGE_CRASHED,
                    message=f"{type(exc).__name__}: {exc}",
                )
            )
            if not run.book.is_terminal():
                run.book.transition(BookStatus.FAILED)
            raise PipelineStageError(
                stage=stage_name,
                detail=detail,
                hint="Inspect the book's error list, fix the failing collaborator, and rerun.",
            ) from exc
        run.costs.commit_to(run.book)
        self._on_stage_complete(run, stage_name)
        return result

    def _retry_callback(
        self, run: BookRun, stage_name: str
    ) -> Callable[[int, ProviderError, float], None]:
        """Build a `RetryPolicy.on_retry` hook that counts and logs retries."""

        def _on_retry(attempt: int, exc: ProviderError, delay: float) -> None:
            run.record_retry()
            if self._run_logger is not None:
                self._run_logger.log_retry(
                    stage_name, run.book.book_id, attempt, exc.kind.value, delay
                )

        return _on_retry

    def _retry_metadata(self, run: BookRun) -> dict[str, str]:
        """Serialize retry telemetry for report metadata."""

        return {"provider_retry_attempts": str(run.retry_attempts)}

"""Pipeline orchestration for Ambiscene.

Responsibilities:
- Drive a book through `extracting -> analyzing -> mapping -> ready_for_review`.
- Fail books on book-level conditions only (no pages, all scenes failed,
  excessive classification failures, timeout).
- Commit spend to the book at every stage boundary and assemble a `BookReport`.

Key types:
- `SoundscapePipeline`: orchestration facade for one book per `run` call.
"""

from __future__ import annotations

from time import monotonic, sleep
from typing import Callable, Sequence

from ..audio.cache import SoundscapeCache
from ..audio.synthesizer import AudioSynthesisClient
from ..config import PipelineConfig
from ..errors import ErrorKind
from ..io.storage import ObjectStorage
from ..llm.classifier import ClassificationClient
from ..llm.retry import RetryPolicy
from ..models.datatypes import Book, BookReport, BookStatus, ErrorRecord, Page
from ..telemetry.cost_tracker import CostTracker
from ..telemetry.logger import RunLogger
from ..timing import Deadline
from .analyzing import PipelineAnalysisMixin
from .context import BookRun
from .mapping import PipelineMappingMixin
from .status import derive_terminal_status
from .telemetry import PipelineTelemetryMixin


class SoundscapePipeline(
    PipelineTelemetryMixin,
    PipelineAnalysisMixin,
    PipelineMappingMixin,
):
    """Coordinate all stages for one book.

    A single instance may run several books concurrently; per-book state lives
    in a `BookRun` created by each `run` call. The cache is shared.
    """

    def __init__(
        self,
        *,
        classifier: ClassificationClient,
        synthesizer: AudioSynthesisClient,
        storage: ObjectStorage,
        cache: SoundscapeCache | None = None,
        config: PipelineConfig | None = None,
        run_logger: RunLogger | None = None,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        """Initialize collaborators, timing hooks, and optional runtime logging."""

        self._config = config or PipelineConfig()
        self._config.validate()
        self._classifier = classifier
        self._synthesizer = synthesizer
        self._storage = storage
        self._cache = cache if cache is not None else SoundscapeCache()
        self._run_logger = run_logger
        self._clock = clock
        self._sleeper = sleeper
        self._retry_policy = RetryPolicy(
            max_retries=self._config.max_retries,
            backoff_base_seconds=self._config.retry_backoff_base_seconds,
            backoff_max_seconds=self._config.retry_backoff_max_seconds,
            sleeper=sleeper,
        )

    @property
    def cache(self) -> SoundscapeCache:
        """Return the soundscape cache shared by runs of this pipeline."""

        return self._cache

    def run(self, book: Book, pages: Sequence[Page]) -> BookReport:
        """Run analysis and mapping for `book` and return its report.

        Accepts books in `pending`, `extracting`, or `failed` (full re-run).
        Per-page and per-scene failures are recorded on the book; only
        book-level conditions end in `failed`.
        """

        run = BookRun(
            book=book,
            deadline=Deadline.after(self._config.book_timeout_seconds, clock=self._clock),
            costs=CostTracker(
                cost_per_classification_call=self._config.cost_per_classification_call,
                cost_per_synthesis_second=self._config.cost_per_synthesis_second,
            ),
            report=BookReport(book=book),
        )
        if not self._enter_analyzing(run, pages):
            return self._finish(run)

        scenes = self._run_stage(run, "analyzing", lambda: self._analyze(run, pages))
        failure_rate = self._classification_failure_rate(run)
        limit = self._config.max_classification_failure_rate
        if limit is not None and failure_rate > limit:
            self._fail(
                run,
                "analyzing",
                ErrorKind.HIGH_FAILURE_RATE,
                f"{failure_rate:.0%} of pages failed classification (limit {limit:.0%}).",
            )
            return self._finish(run)
        if run.deadline_missed():
            return self._fail_timeout(run, "analyzing")

        book.transition(BookStatus.MAPPING)
        outcomes = self._run_stage(run, "mapping", lambda: self._map_scenes(run, scenes))
        if run.deadline_missed():
            return self._fail_timeout(run, "mapping")

        status, has_warnings = derive_terminal_status(outcomes, run.report.page_outcomes)
        if status == BookStatus.FAILED:
            self._fail(
                run,
                "mapping",
                ErrorKind.ALL_SCENES_FAILED,
                f"None of {len(outcomes)} scene(s) received a soundscape.",
            )
            return self._finish(run)
        book.has_warnings = has_warnings
        book.transition(BookStatus.READY_FOR_REVIEW)
        return self._finish(run)

    def _enter_analyzing(self, run: BookRun, pages: Sequence[Page]) -> bool:
        """Move the book into `analyzing`; returns `False` when it failed instead."""

        book = run.book
        if book.processing_status == BookStatus.PENDING:
            book.transition(BookStatus.EXTRACTING)
        rerun = book.processing_status == BookStatus.FAILED
        if not rerun and not pages:
            book.page_count = 0
            self._fail(run, "extracting", ErrorKind.NO_PAGES, "Book has no extracted pages.")
            return False
        book.transition(BookStatus.ANALYZING)
        if rerun:
            book.reset_for_rerun()
        book.page_count = len(pages)
        if not pages:
            self._fail(run, "analyzing", ErrorKind.NO_PAGES, "Book has no extracted pages.")
            return False
        return True

    def _fail(self, run: BookRun, stage: str, kind: ErrorKind, message: str) -> None:
        """Record a book-level error and move the book to `failed`."""

        run.book.record_error(ErrorRecord(stage=stage, kind=kind, message=message))
        run.book.transition(BookStatus.FAILED)

    def _fail_timeout(self, run: BookRun, stage: str) -> BookReport:
        """Fail the book after outstanding work drained past the deadline."""

        self._fail(
            run,
            stage,
            ErrorKind.BOOK_TIMEOUT,
            f"Book exceeded its {self._config.book_timeout_seconds:g}s processing budget.",
        )
        return self._finish(run)

    def _finish(self, run: BookRun) -> BookReport:
        """Commit remaining spend, attach run metadata, and log the terminal state."""

        run.costs.commit_to(run.book)
        report = run.report
        report.extra.update(self._config.as_report_metadata())
        report.extra.update(self._retry_metadata(run))
        report.extra.update(self._cache.stats())
        report.extra.update(
            {key: f"{value:.6f}" for key, value in run.costs.summary().items()}
        )
        if self._run_logger is not None:
            self._run_logger.log_book_terminal(
                run.book.book_id,
                run.book.processing_status.value,
                run.book.processing_cost,
                len(run.book.snapshot_errors()),
            )
        return report

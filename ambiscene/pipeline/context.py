"""Per-book run state shared by pipeline stage helpers.

Key types:
- `BookRun`: the book, its deadline, cost tracker, report, and retry counter.
- `AnalysisUnit`: the text classified in one call (a page or a spread).
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading

from ..models.datatypes import Book, BookReport
from ..telemetry.cost_tracker import CostTracker
from ..timing import Deadline


@dataclass(frozen=True, slots=True)
class AnalysisUnit:
    """Text classified in one call and the pages it covers."""

    page_numbers: tuple[int, ...]
    text: str

    @property
    def first_page(self) -> int:
        """Return the page used to anchor unit-level error records."""

        return self.page_numbers[0]


@dataclass(slots=True)
class BookRun:
    """Mutable state of one `SoundscapePipeline.run` call."""

    book: Book
    deadline: Deadline
    costs: CostTracker
    report: BookReport
    timed_out: bool = False
    retry_attempts: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_retry(self) -> None:
        """Count one scheduled retry."""

        with self._lock:
            self.retry_attempts += 1

    def may_dispatch(self) -> bool:
        """Return whether new work may start; remembers a missed deadline."""

        if self.deadline.expired():
            self.timed_out = True
            return False
        return True

    def deadline_missed(self) -> bool:
        """Return whether the deadline has passed at any point of this run."""

        if self.deadline.expired():
            self.timed_out = True
        return self.timed_out

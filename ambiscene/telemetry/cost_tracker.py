"""Cost accounting for classification and synthesis usage.

Responsibilities:
- Count billable classification attempts and synthesized audio seconds.
- Commit pending spend into `Book.processing_cost` at stage boundaries.
- Provide summary output for reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading

from ..models.datatypes import Book


@dataclass(slots=True)
class CostTracker:
    """Thread-safe accumulator of billable units for one book run.

    Attributes:
        cost_per_classification_call: Price of one classification attempt.
        cost_per_synthesis_second: Price of one second of requested audio.
    """

    cost_per_classification_call: float = 0.00006
    cost_per_synthesis_second: float = 0.0023
    classification_calls: int = 0
    synthesis_seconds: float = 0.0
    committed_cost: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_classification_call(self) -> None:
        """Count one classification attempt, including failed ones."""

        with self._lock:
            self.classification_calls += 1

    def add_synthesis(self, duration_seconds: float) -> None:
        """Count one accepted synthesis submission of `duration_seconds`."""

        with self._lock:
            self.synthesis_seconds += max(0.0, duration_seconds)

    def total_cost(self) -> float:
        """Return spend accumulated so far."""

        with self._lock:
            return self._total_unlocked()

    def _total_unlocked(self) -> float:
        return (
            self.classification_calls * self.cost_per_classification_call
            + self.synthesis_seconds * self.cost_per_synthesis_second
        )

    def commit_to(self, book: Book) -> float:
        """Add spend not yet committed to `book` and return the added amount."""

        with self._lock:
            total = self._total_unlocked()
            delta = total - self.committed_cost
            self.committed_cost = total
        if delta > 0.0:
            book.add_cost(delta)
        return max(0.0, delta)

    def summary(self) -> dict[str, float]:
        """Return a summary dictionary for reporting."""

        with self._lock:
            classification_cost = self.classification_calls * self.cost_per_classification_call
            synthesis_cost = self.synthesis_seconds * self.cost_per_synthesis_second
            return {
                "classification_calls": float(self.classification_calls),
                "synthesis_seconds": self.synthesis_seconds,
                "classification_cost_usd": classification_cost,
                "synthesis_cost_usd": synthesis_cost,
                "total_cost_usd": classification_cost + synthesis_cost,
            }

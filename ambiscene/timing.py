"""Wall-clock deadlines shared by polling loops and book-level timeouts."""

from __future__ import annotations

from dataclasses import dataclass
from time import monotonic
from typing import Callable


@dataclass(frozen=True, slots=True)
class Deadline:
    """A point on a monotonic clock after which no new work should start.

    `expires_at=None` never expires.
    """

    expires_at: float | None
    clock: Callable[[], float] = monotonic

    @classmethod
    def after(
        cls, seconds: float | None, clock: Callable[[], float] = monotonic
    ) -> Deadline:
        """Return a deadline `seconds` from now, or an unbounded one for `None`."""

        if seconds is None:
            return cls(expires_at=None, clock=clock)
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float | None:
        """Return seconds left (never negative), or `None` when unbounded."""

        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        """Return whether the deadline has passed."""

        return self.expires_at is not None and self.clock() >= self.expires_at

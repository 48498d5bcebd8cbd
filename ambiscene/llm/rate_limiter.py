"""Request pacing for external service calls.

Responsibilities:
- Provide a single hook to enforce per-service request pacing.
- Stay safe when many pipeline workers share one limiter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from time import monotonic, sleep
from typing import Callable


@dataclass(slots=True)
class RateLimiter:
    """Thread-safe per-key minimum-interval limiter used around service requests."""

    min_interval_seconds: float = 0.05
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    _next_allowed_at: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def acquire(self, key: str) -> None:
        """Block until a request slot for `key` is available.

        Slots are reserved under the lock and waited for outside it, so
        concurrent callers queue up one interval apart instead of all waking
        at once.
        """

        if self.min_interval_seconds <= 0.0:
            return
        with self._lock:
            now = self.clock()
            slot = max(now, self._next_allowed_at.get(key, 0.0))
            self._next_allowed_at[key] = slot + self.min_interval_seconds
        wait_seconds = slot - now
        if wait_seconds > 0.0:
            self.sleeper(wait_seconds)

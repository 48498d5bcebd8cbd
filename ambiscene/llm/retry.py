"""Retry policy with exponential backoff for external service calls.

Responsibilities:
- Retry transient provider failures up to a fixed attempt budget.
- Surface permanent failures immediately.
- Report every attempt so callers can bill and log it.
"""

from __future__ import annotations

from dataclasses import dataclass
from time import sleep
from typing import Callable, TypeVar

from ..errors import ProviderError

_Result = TypeVar("_Result")


class DeadlineExceeded(RuntimeError):
    """Raised when a retry would start after the caller's deadline."""


@dataclass(slots=True)
class RetryPolicy:
    """Exponential backoff: `base * 2**n` seconds before retry `n + 1`, capped.

    Attributes:
        max_retries: Retries after the first attempt (`3` means four attempts).
        backoff_base_seconds: Delay before the first retry.
        backoff_max_seconds: Delay cap.
        sleeper: Sleep function, injectable for tests.
    """

    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 8.0
    sleeper: Callable[[float], None] = sleep

    def delay_for(self, retry_index: int) -> float:
        """Return the backoff delay before the given 0-based retry."""

        delay = self.backoff_base_seconds * (2**retry_index)
        return min(delay, self.backoff_max_seconds)

    def call(
        self,
        action: Callable[[], _Result],
        *,
        on_attempt: Callable[[int], None] | None = None,
        on_retry: Callable[[int, ProviderError, float], None] | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> _Result:
        """Run `action`, retrying retryable `ProviderError`s within the budget.

        Args:
            action: Zero-argument callable performing one external call.
            on_attempt: Called with the 1-based attempt number before each attempt.
            on_retry: Called with attempt number, error, and delay before sleeping.
            should_continue: Checked before every retry; `False` stops retrying.

        Raises:
            ProviderError: The last error once retries are exhausted, or any
                permanent error immediately.
            DeadlineExceeded: When `should_continue` vetoes the first attempt.
        """

        attempt = 0
        while True:
            if should_continue is not None and not should_continue():
                raise DeadlineExceeded("Deadline elapsed before the call could start.")
            attempt += 1
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                return action()
            except ProviderError as exc:
                retry_index = attempt - 1
                if not exc.retryable or retry_index >= self.max_retries:
                    raise
                if should_continue is not None and not should_continue():
                    raise
                delay = self.delay_for(retry_index)
                if on_retry is not None:
                    on_retry(attempt, exc, delay)
                if delay > 0.0:
                    self.sleeper(delay)

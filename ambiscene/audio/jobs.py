"""Synthesis job execution: submit, poll with backoff, resubmit on failure.

Responsibilities:
- Drive one soundscape request through `JobState` transitions.
- Bound polling by a wall-clock budget (`SynthesisTimeout` on exhaustion).
- Retry transient submit errors and resubmit service-reported failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from time import monotonic, sleep
from typing import Any, Callable, Mapping

from ..errors import ErrorKind, ProviderError, SynthesisError
from ..llm.retry import RetryPolicy
from ..timing import Deadline
from .synthesizer import AudioSynthesisClient, JobHandle, JobState, JobStatus


@dataclass(frozen=True, slots=True)
class PollSchedule:
    """Polling cadence for one synthesis job.

    Attributes:
        initial_delay_seconds: Delay after the first pending observation.
        max_delay_seconds: Cap for the doubling delay.
        budget_seconds: Wall-clock budget from submission to completion.
    """

    initial_delay_seconds: float = 2.0
    max_delay_seconds: float = 10.0
    budget_seconds: float = 240.0


@dataclass(frozen=True, slots=True)
class CompletedJob:
    """A synthesis job that reached `SUCCEEDED`."""

    handle: JobHandle
    output_location: str
    submissions: int


EventCallback = Callable[..., None]


class SynthesisJobRunner:
    """Run synthesis jobs to completion against an `AudioSynthesisClient`."""

    def __init__(
        self,
        client: AudioSynthesisClient,
        *,
        retry_policy: RetryPolicy | None = None,
        schedule: PollSchedule | None = None,
        max_submissions: int = 2,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
        on_event: EventCallback | None = None,
    ) -> None:
        """Initialize runner collaborators and timing."""

        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.schedule = schedule or PollSchedule()
        self.max_submissions = max(1, max_submissions)
        self.clock = clock
        self.sleeper = sleeper
        self.on_event = on_event

    def run(
        self,
        prompt: str,
        duration_seconds: float,
        params: Mapping[str, Any] | None = None,
        *,
        on_submit: Callable[[JobHandle], None] | None = None,
        on_attempt: Callable[[int], None] | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> CompletedJob:
        """Submit a job and wait for its output, resubmitting service failures.

        Args:
            prompt: Natural-language soundscape description.
            duration_seconds: Requested length before clamping.
            params: Extra generation parameters.
            on_submit: Called once per accepted submission (used for billing).
            on_attempt: Called before every submit request attempt.
            should_continue: Checked before each new submission or retry.

        Raises:
            SynthesisError: Failed, canceled, or timed-out job.
            ProviderError: Permanent submit errors or exhausted submit retries.
        """

        submissions = 0
        while True:
            handle = self.retry_policy.call(
                lambda: self.client.submit(prompt, duration_seconds, params or {}),
                on_attempt=on_attempt,
                on_retry=self._emit_retry,
                should_continue=should_continue,
            )
            submissions += 1
            if on_submit is not None:
                on_submit(handle)
            try:
                location = self.await_completion(handle)
            except SynthesisError as exc:
                resubmittable = exc.kind == ErrorKind.SYNTHESIS_FAILED
                can_continue = should_continue is None or should_continue()
                if resubmittable and submissions < self.max_submissions and can_continue:
                    self._emit("resubmit", job_id=handle.job_id, submissions=submissions)
                    continue
                raise
            return CompletedJob(handle=handle, output_location=location, submissions=submissions)

    def await_completion(self, handle: JobHandle) -> str:
        """Poll until the job leaves `PENDING`, returning its output location."""

        deadline = Deadline.after(self.schedule.budget_seconds, clock=self.clock)
        delay = self.schedule.initial_delay_seconds
        while True:
            status = self._poll_once(handle)
            if status.state == JobState.SUCCEEDED and status.output_location:
                return status.output_location
            if status.state == JobState.FAILED:
                raise SynthesisError(
                    f"Synthesis job `{handle.job_id}` failed: {status.reason}",
                    kind=ErrorKind.SYNTHESIS_FAILED,
                )
            if status.state == JobState.CANCELED:
                raise SynthesisError(
                    f"Synthesis job `{handle.job_id}` was canceled.",
                    kind=ErrorKind.SYNTHESIS_CANCELED,
                )
            remaining = deadline.remaining() or 0.0
            if remaining <= 0.0:
                self._cancel_quietly(handle)
                raise SynthesisError(
                    f"Synthesis job `{handle.job_id}` did not finish within "
                    f"{self.schedule.budget_seconds:g}s.",
                    kind=ErrorKind.SYNTHESIS_TIMEOUT,
                )
            self.sleeper(min(delay, remaining))
            delay = min(delay * 2, self.schedule.max_delay_seconds)

    def _poll_once(self, handle: JobHandle) -> JobStatus:
        """Poll once; transient errors count as still pending."""

        try:
            return self.client.poll(handle)
        except ProviderError as exc:
            if not exc.retryable:
                raise SynthesisError(str(exc), kind=exc.kind, status_code=exc.status_code) from exc
            self._emit("poll_error", job_id=handle.job_id, error_kind=exc.kind.value)
            return JobStatus(state=JobState.PENDING)

    def _cancel_quietly(self, handle: JobHandle) -> None:
        """Request cancellation; a failed request is reported but does not mask the timeout."""

        try:
            self.client.cancel(handle)
        except ProviderError as exc:
            self._emit("cancel_failed", job_id=handle.job_id, error_kind=exc.kind.value)

    def _emit_retry(self, attempt: int, exc: ProviderError, delay: float) -> None:
        self._emit("retry", attempt=attempt, error_kind=exc.kind.value, delay=f"{delay:.2f}")

    def _emit(self, event: str, **context: object) -> None:
        if self.on_event is not None:
            self.on_event(event, **context)

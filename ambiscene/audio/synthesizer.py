"""Audio synthesis client interfaces and prediction-API implementation.

Responsibilities:
- Define the two-phase `submit` / `poll` contract plus `fetch` and `cancel`.
- Clamp requested durations to the service maximum.
- Map prediction-job payloads onto `JobStatus` values.

Polling cadence and budgets live in `ambiscene.audio.jobs`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

from ..errors import ErrorKind, ProviderError
from ..llm.http_client import ServiceHttpClient
from ..llm.rate_limiter import RateLimiter


class JobState(str, Enum):
    """States of an asynchronous synthesis job."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True, slots=True)
class JobHandle:
    """Reference to a submitted synthesis job."""

    job_id: str
    prompt: str
    duration_seconds: float
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class JobStatus:
    """One observation of a synthesis job."""

    state: JobState
    output_location: str | None = None
    reason: str | None = None


class AudioSynthesisClient(Protocol):
    """Protocol for asynchronous audio synthesis services."""

    max_duration_seconds: float

    def submit(
        self, prompt: str, duration_seconds: float, params: Mapping[str, Any]
    ) -> JobHandle:
        """Submit a synthesis job and return its handle."""

    def poll(self, handle: JobHandle) -> JobStatus:
        """Return the job's current status."""

    def fetch(self, location: str) -> bytes:
        """Download the finished audio asset."""

    def cancel(self, handle: JobHandle) -> None:
        """Request cancellation of a job that is still running."""


def clamp_duration(duration_seconds: float, max_duration_seconds: float) -> float:
    """Clamp a requested duration into `[1, max_duration_seconds]`."""

    return max(1.0, min(float(duration_seconds), float(max_duration_seconds)))


_PENDING_STATUSES = frozenset({"starting", "processing", "queued", "pending", "running"})


class PredictionApiSynthesizer:
    """Synthesizer backed by a prediction-job HTTP API.

    Jobs are created with `POST /predictions`, observed with
    `GET /predictions/{id}`, and canceled with `POST /predictions/{id}/cancel`.
    """

    DEFAULT_PARAMETERS: Mapping[str, Any] = {
        "temperature": 1.0,
        "top_k": 250,
        "top_p": 0,
        "classifier_free_guidance": 3,
        "output_format": "mp3",
    }

    def __init__(
        self,
        *,
        model: str,
        base_url: str,
        api_key: str | None = None,
        max_duration_seconds: float = 30.0,
        timeout_seconds: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize model settings and HTTP transport."""

        self.model = model
        self.max_duration_seconds = max_duration_seconds
        self.http = ServiceHttpClient(
            service_name="synthesis",
            base_url=base_url,
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            rate_limiter=rate_limiter,
        )

    def submit(
        self, prompt: str, duration_seconds: float, params: Mapping[str, Any]
    ) -> JobHandle:
        """Create a prediction job for one soundscape."""

        duration = clamp_duration(duration_seconds, self.max_duration_seconds)
        parameters = {**self.DEFAULT_PARAMETERS, **dict(params)}
        payload = {
            "version": self.model,
            "input": {"prompt": prompt, "duration": duration, **parameters},
        }
        response = self.http.post_json("/predictions", payload)
        job_id = response.get("id")
        if not isinstance(job_id, str) or not job_id.strip():
            raise ProviderError(
                "synthesis response is missing a prediction `id`.",
                kind=ErrorKind.PARSE_FAILURE,
            )
        return JobHandle(
            job_id=job_id,
            prompt=prompt,
            duration_seconds=duration,
            parameters=parameters,
        )

    def poll(self, handle: JobHandle) -> JobStatus:
        """Read the prediction status and normalize it."""

        return self.status_from_payload(self.http.get_json(f"/predictions/{handle.job_id}"))

    def fetch(self, location: str) -> bytes:
        """Download the generated audio bytes."""

        return self.http.get_bytes(location)

    def cancel(self, handle: JobHandle) -> None:
        """Request cancellation of a running prediction."""

        self.http.post_json(f"/predictions/{handle.job_id}/cancel", {})

    @staticmethod
    def status_from_payload(payload: Mapping[str, Any]) -> JobStatus:
        """Map a prediction payload onto a `JobStatus`."""

        status = str(payload.get("status", "")).strip().lower()
        if status in _PENDING_STATUSES:
            return JobStatus(state=JobState.PENDING)
        if status == "succeeded":
            output = payload.get("output")
            if isinstance(output, list):
                output = output[0] if output else None
            if not isinstance(output, str) or not output.strip():
                return JobStatus(
                    state=JobState.FAILED,
                    reason="Job succeeded without an output location.",
                )
            return JobStatus(state=JobState.SUCCEEDED, output_location=output.strip())
        if status == "failed":
            error = payload.get("error")
            return JobStatus(
                state=JobState.FAILED,
                reason=str(error) if error else "Synthesis job failed.",
            )
        if status == "canceled":
            return JobStatus(state=JobState.CANCELED, reason="Synthesis job was canceled.")
        raise ProviderError(
            f"synthesis returned unknown job status `{status or 'missing'}`.",
            kind=ErrorKind.PARSE_FAILURE,
        )

"""Unit tests for the synthesis client payload mapping and the job runner."""

from __future__ import annotations

import json

import pytest
import requests

from ambiscene.audio.jobs import PollSchedule, SynthesisJobRunner
from ambiscene.audio.prompting import build_soundscape_prompt, extract_tags
from ambiscene.audio.synthesizer import (
    JobState,
    JobStatus,
    PredictionApiSynthesizer,
    clamp_duration,
)
from ambiscene.errors import ErrorKind, ProviderError, SynthesisError
from ambiscene.llm.retry import RetryPolicy
from ambiscene.models.datatypes import DescriptorSet
from tests.fakes import FOREST_STORM, FakeClock, FakeSynthesizer

_PENDING = JobStatus(state=JobState.PENDING)


class _MockRequestsResponse:
    """Minimal requests response mock used by synthesis client tests."""

    def __init__(self, *, payload: bytes, status_code: int = 200) -> None:
        """Initialize response with payload bytes and status code."""

        self.content = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        """Raise HTTP error when status code indicates failure."""

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


def _runner(
    synthesizer: FakeSynthesizer, clock: FakeClock, max_submissions: int = 2
) -> tuple[SynthesisJobRunner, list[tuple[str, dict[str, object]]]]:
    events: list[tuple[str, dict[str, object]]] = []
    runner = SynthesisJobRunner(
        synthesizer,
        retry_policy=RetryPolicy(sleeper=clock.sleep),
        schedule=PollSchedule(initial_delay_seconds=2.0, max_delay_seconds=5.0, budget_seconds=20.0),
        clock=clock,
        sleeper=clock.sleep,
        on_event=lambda event, **context: events.append((event, context)),
        max_submissions=max_submissions,
    )
    return runner, events


@pytest.mark.parametrize(
    ("requested", "expected"),
    [(10.0, 10.0), (45.0, 30.0), (0.0, 1.0), (-3.0, 1.0)],
)
def test_clamp_duration_bounds_requests(requested: float, expected: float) -> None:
    """Durations should be clamped into `[1, max]`."""

    assert clamp_duration(requested, 30.0) == expected


@pytest.mark.parametrize(
    ("payload", "state", "location"),
    [
        ({"status": "starting"}, JobState.PENDING, None),
        ({"status": "processing"}, JobState.PENDING, None),
        ({"status": "succeeded", "output": "https://cdn/a.mp3"}, JobState.SUCCEEDED, "https://cdn/a.mp3"),
        ({"status": "succeeded", "output": ["https://cdn/b.mp3"]}, JobState.SUCCEEDED, "https://cdn/b.mp3"),
        ({"status": "succeeded", "output": None}, JobState.FAILED, None),
        ({"status": "failed", "error": "CUDA OOM"}, JobState.FAILED, None),
        ({"status": "canceled"}, JobState.CANCELED, None),
    ],
)
def test_status_from_payload_maps_prediction_states(
    payload: dict[str, object], state: JobState, location: str | None
) -> None:
    """Prediction payloads should normalize onto job states."""

    status = PredictionApiSynthesizer.status_from_payload(payload)

    assert status.state == state
    assert status.output_location == location


def test_status_from_payload_rejects_unknown_status() -> None:
    """Unexpected statuses should be parse failures."""

    with pytest.raises(ProviderError) as exc_info:
        PredictionApiSynthesizer.status_from_payload({"status": "exploded"})

    assert exc_info.value.kind == ErrorKind.PARSE_FAILURE


def test_submit_posts_prediction_with_clamped_duration(monkeypatch: pytest.MonkeyPatch) -> None:
    """Submissions should carry model, prompt, clamped duration, and defaults."""

    captured: dict[str, object] = {}

    def _fake_request(method: str, url: str, **kwargs: object) -> _MockRequestsResponse:
        captured.update(url=url, payload=kwargs["json"])
        return _MockRequestsResponse(payload=b'{"id": "pred-1", "status": "starting"}')

    monkeypatch.setattr("ambiscene.llm.http_client.requests.request", _fake_request)
    synthesizer = PredictionApiSynthesizer(
        model="audiogen", base_url="https://api.example/v1", max_duration_seconds=30.0
    )

    handle = synthesizer.submit("forest at night", 90.0, {"top_k": 100})

    assert handle.job_id == "pred-1"
    assert handle.duration_seconds == 30.0
    assert captured["url"] == "https://api.example/v1/predictions"
    body = captured["payload"]
    assert body["version"] == "audiogen"  # type: ignore[index]
    assert body["input"]["duration"] == 30.0  # type: ignore[index]
    assert body["input"]["top_k"] == 100  # type: ignore[index]
    assert body["input"]["output_format"] == "mp3"  # type: ignore[index]


def test_submit_without_prediction_id_is_a_parse_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """A response lacking an id cannot be polled."""

    monkeypatch.setattr(
        "ambiscene.llm.http_client.requests.request",
        lambda *args, **kwargs: _MockRequestsResponse(payload=json.dumps({}).encode("utf-8")),
    )
    synthesizer = PredictionApiSynthesizer(model="m", base_url="https://api.example/v1")

    with pytest.raises(ProviderError) as exc_info:
        synthesizer.submit("p", 10.0, {})

    assert exc_info.value.kind == ErrorKind.PARSE_FAILURE


def test_runner_polls_with_doubling_capped_delays_until_success() -> None:
    """Pending polls should back off 2, 4, 5, 5 seconds before success."""

    clock = FakeClock()
    synthesizer = FakeSynthesizer(poll_script=[_PENDING, _PENDING, _PENDING, _PENDING])
    submissions: list[str] = []

    runner, _ = _runner(synthesizer, clock)
    job = runner.run(
        "prompt", 10.0, on_submit=lambda handle: submissions.append(handle.job_id)
    )

    assert job.output_location == "https://assets.example/job-1.mp3"
    assert job.submissions == 1
    assert submissions == ["job-1"]
    assert clock.sleeps == [2.0, 4.0, 5.0, 5.0]


def test_runner_times_out_and_requests_cancellation() -> None:
    """Exhausting the poll budget should cancel the job and raise a timeout."""

    clock = FakeClock()
    synthesizer = FakeSynthesizer(poll_script=[_PENDING] * 50)
    runner, _ = _runner(synthesizer, clock)

    with pytest.raises(SynthesisError) as exc_info:
        runner.run("prompt", 10.0)

    assert exc_info.value.kind == ErrorKind.SYNTHESIS_TIMEOUT
    assert synthesizer.canceled == ["job-1"]
    assert len(synthesizer.submitted) == 1
    assert sum(clock.sleeps) == pytest.approx(20.0)


def test_runner_resubmits_service_failures_up_to_the_attempt_limit() -> None:
    """A failed job should be resubmitted once, then succeed."""

    clock = FakeClock()
    synthesizer = FakeSynthesizer(poll_script=[JobStatus(state=JobState.FAILED, reason="OOM")])
    runner, events = _runner(synthesizer, clock, max_submissions=2)

    job = runner.run("prompt", 10.0)

    assert job.submissions == 2
    assert [handle.job_id for handle in synthesizer.submitted] == ["job-1", "job-2"]
    assert ("resubmit", {"job_id": "job-1", "submissions": 1}) in events


def test_runner_surfaces_failure_after_last_submission() -> None:
    """Failures beyond the attempt limit should surface as `SYNTHESIS_FAILED`."""

    clock = FakeClock()
    failed = JobStatus(state=JobState.FAILED, reason="OOM")
    synthesizer = FakeSynthesizer(poll_script=[failed, failed])

    with pytest.raises(SynthesisError) as exc_info:
        _runner(synthesizer, clock, max_submissions=2)[0].run("prompt", 10.0)

    assert exc_info.value.kind == ErrorKind.SYNTHESIS_FAILED
    assert len(synthesizer.submitted) == 2


def test_runner_does_not_resubmit_canceled_jobs() -> None:
    """Cancellation is terminal for a scene."""

    clock = FakeClock()
    synthesizer = FakeSynthesizer(poll_script=[JobStatus(state=JobState.CANCELED)])

    with pytest.raises(SynthesisError) as exc_info:
        _runner(synthesizer, clock, max_submissions=3)[0].run("prompt", 10.0)

    assert exc_info.value.kind == ErrorKind.SYNTHESIS_CANCELED
    assert len(synthesizer.submitted) == 1


def test_runner_keeps_polling_through_transient_poll_errors() -> None:
    """Transient poll failures should count as pending."""

    clock = FakeClock()
    flaky = ProviderError("HTTP 502", kind=ErrorKind.TRANSIENT_TRANSPORT, status_code=502)
    synthesizer = FakeSynthesizer(poll_script=[flaky, flaky])
    runner, events = _runner(synthesizer, clock)

    job = runner.run("prompt", 10.0)

    assert job.output_location.endswith("job-1.mp3")
    assert synthesizer.polls == 3
    assert [event for event, _ in events].count("poll_error") == 2


def test_runner_fails_on_permanent_poll_errors() -> None:
    """Permanent poll failures should end the job with their kind."""

    clock = FakeClock()
    synthesizer = FakeSynthesizer(
        poll_script=[ProviderError("HTTP 404", kind=ErrorKind.PERMANENT_REQUEST, status_code=404)]
    )

    with pytest.raises(SynthesisError) as exc_info:
        _runner(synthesizer, clock)[0].run("prompt", 10.0)

    assert exc_info.value.kind == ErrorKind.PERMANENT_REQUEST
    assert exc_info.value.status_code == 404


def test_runner_retries_transient_submit_errors() -> None:
    """Submit failures should use the shared retry policy."""

    clock = FakeClock()
    failures = [ProviderError("HTTP 503", kind=ErrorKind.TRANSIENT_TRANSPORT)]
    synthesizer = FakeSynthesizer(
        submit_error=lambda _prompt: failures.pop(0) if failures else None
    )

    job = _runner(synthesizer, clock)[0].run("prompt", 10.0)

    assert job.submissions == 1
    assert clock.sleeps == [1.0]


def test_soundscape_prompt_and_tags_describe_the_scene() -> None:
    """Prompts should read naturally and tags should skip unknown values."""

    prompt = build_soundscape_prompt(FOREST_STORM)
    neutral_tags = extract_tags(DescriptorSet.neutral())

    assert prompt == (
        "tense and suspenseful forest soundscape at night with stormy weather, high activity"
    )
    assert extract_tags(FOREST_STORM) == ("tense", "forest", "night", "stormy", "high", "suspenseful")
    assert neutral_tags == ("neutral", "moderate")

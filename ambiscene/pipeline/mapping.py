"""Mapping stage: attach a reused or newly synthesized soundscape to each scene.

Responsibilities:
- Serialize cache lookup and insert per fingerprint.
- Drive synthesis jobs, fetch finished audio, and upload it to object storage.
- Convert per-scene failures into outcome records.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence
from uuid import uuid4

from ..audio.cache import SoundscapeCache
from ..audio.jobs import PollSchedule, SynthesisJobRunner
from ..audio.prompting import build_soundscape_prompt, extract_tags
from ..audio.synthesizer import AudioSynthesisClient
from ..config import PipelineConfig
from ..errors import ErrorKind, ProviderError, StorageError
from ..io.storage import ObjectStorage
from ..llm.retry import DeadlineExceeded, RetryPolicy
from ..models.datatypes import (
    ErrorRecord,
    Fingerprint,
    OutcomeStatus,
    Scene,
    SceneOutcome,
    Soundscape,
    SoundscapeSource,
)
from ..telemetry.logger import RunLogger
from .analyzing import shorten_message
from .context import BookRun


def soundscape_storage_key(scene: Scene, fingerprint: Fingerprint) -> str:
    """Return the object-storage key of a scene's synthesized audio."""

    return f"soundscapes/{scene.book_id}/scene_{scene.scene_number}_{fingerprint.digest()}.mp3"


class PipelineMappingMixin:
    """Provide the mapping stage."""

    _config: PipelineConfig
    _synthesizer: AudioSynthesisClient
    _storage: ObjectStorage
    _cache: SoundscapeCache
    _retry_policy: RetryPolicy
    _run_logger: RunLogger | None
    _clock: Callable[[], float]
    _sleeper: Callable[[float], None]

    def _map_scenes(self, run: BookRun, scenes: Sequence[Scene]) -> list[SceneOutcome]:
        """Process scenes independently and return outcomes ordered by scene number."""

        outcomes: list[SceneOutcome] = []
        workers = max(1, min(self._config.synthesis_concurrency, len(scenes)))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"synthesize-{run.book.book_id}"
        ) as pool:
            futures = [pool.submit(self._map_scene, run, scene) for scene in scenes]
            for future in as_completed(futures):
                outcomes.append(future.result())
        outcomes.sort(key=lambda item: item.scene_number)
        run.report.scene_outcomes = outcomes
        run.report.soundscapes = [item.soundscape for item in outcomes if item.soundscape is not None]
        return outcomes

    def _map_scene(self, run: BookRun, scene: Scene) -> SceneOutcome:
        """Resolve one scene to a soundscape via cache or synthesis."""

        if not run.may_dispatch():
            return SceneOutcome(scene_number=scene.scene_number, status=OutcomeStatus.SKIPPED)
        fingerprint = Fingerprint.from_descriptors(scene.descriptors)
        exclude_book_id = scene.book_id if self._config.cache_exclude_current_book else None
        try:
            with self._cache.reserve(fingerprint):
                cached = self._cache.lookup(fingerprint, exclude_book_id=exclude_book_id)
                if cached is not None:
                    self._log_cache(run, scene, fingerprint, hit=True)
                    reused = self._cache.reuse(cached, scene, extract_tags(scene.descriptors))
                    return SceneOutcome(
                        scene_number=scene.scene_number,
                        status=OutcomeStatus.SUCCEEDED,
                        soundscape=reused,
                    )
                self._log_cache(run, scene, fingerprint, hit=False)
                soundscape = self._synthesize_scene(run, scene, fingerprint)
                self._cache.insert(fingerprint, scene, soundscape)
        except DeadlineExceeded:
            return SceneOutcome(scene_number=scene.scene_number, status=OutcomeStatus.SKIPPED)
        except ProviderError as exc:
            return self._record_scene_failure(run, scene, exc.kind, str(exc))
        except StorageError as exc:
            return self._record_scene_failure(run, scene, ErrorKind.STORAGE_FAILURE, str(exc))
        return SceneOutcome(
            scene_number=scene.scene_number,
            status=OutcomeStatus.SUCCEEDED,
            soundscape=soundscape,
        )

    def _synthesize_scene(self, run: BookRun, scene: Scene, fingerprint: Fingerprint) -> Soundscape:
        """Synthesize, fetch, and upload audio for one scene."""

        prompt = build_soundscape_prompt(scene.descriptors)
        runner = SynthesisJobRunner(
            self._synthesizer,
            retry_policy=self._retry_policy,
            schedule=PollSchedule(
                initial_delay_seconds=self._config.poll_initial_delay_seconds,
                max_delay_seconds=self._config.poll_max_delay_seconds,
                budget_seconds=self._config.poll_budget_seconds,
            ),
            max_submissions=self._config.synthesis_max_attempts,
            clock=self._clock,
            sleeper=self._sleeper,
            on_event=lambda event, **context: self._on_job_event(run, scene, event, context),
        )
        job = runner.run(
            prompt,
            self._config.soundscape_duration_seconds,
            on_submit=lambda handle: run.costs.add_synthesis(handle.duration_seconds),
            should_continue=run.may_dispatch,
        )
        audio = self._retry_policy.call(
            lambda: self._synthesizer.fetch(job.output_location),
            on_retry=self._retry_callback(run, "mapping"),
            should_continue=run.may_dispatch,
        )
        url = self._storage.put(audio, soundscape_storage_key(scene, fingerprint))
        return Soundscape(
            soundscape_id=uuid4().hex,
            book_id=scene.book_id,
            scene_number=scene.scene_number,
            audio_url=url,
            prompt=prompt,
            duration_seconds=job.handle.duration_seconds,
            source=SoundscapeSource.SYNTHESIZED,
            parameters=dict(job.handle.parameters),
            tags=extract_tags(scene.descriptors),
        )

    def _on_job_event(self, run: BookRun, scene: Scene, event: str, context: dict[str, object]) -> None:
        """Forward synthesis job events to telemetry."""

        if event == "retry":
            run.record_retry()
        if self._run_logger is not None:
            self._run_logger.log_event(
                "mapping", event, run.book.book_id, scene=scene.scene_number, **context
            )

    def _record_scene_failure(
        self, run: BookRun, scene: Scene, kind: ErrorKind, message: str
    ) -> SceneOutcome:
        """Record one scene error and mark the scene skipped."""

        record = ErrorRecord(
            stage="mapping",
            kind=kind,
            message=shorten_message(message),
            scene_number=scene.scene_number,
        )
        run.book.record_error(record)
        if self._run_logger is not None:
            self._run_logger.log_scene_failure(run.book.book_id, scene.scene_number, kind.value)
        return SceneOutcome(scene_number=scene.scene_number, status=OutcomeStatus.SKIPPED, error=record)

    def _log_cache(self, run: BookRun, scene: Scene, fingerprint: Fingerprint, *, hit: bool) -> None:
        if self._run_logger is None:
            return
        if hit:
            self._run_logger.log_cache_hit(run.book.book_id, scene.scene_number, fingerprint.key)
        else:
            self._run_logger.log_cache_miss(run.book.book_id, scene.scene_number, fingerprint.key)

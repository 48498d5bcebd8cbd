"""Shared pytest fixtures for the Ambiscene test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from ambiscene.audio.cache import SoundscapeCache
from ambiscene.config import PipelineConfig
from ambiscene.pipeline import SoundscapePipeline
from tests.fakes import FakeClassifier, FakeClock, FakeSynthesizer, MemoryStorage


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fake clock starting at zero."""

    return FakeClock()


@pytest.fixture
def make_pipeline(fake_clock: FakeClock) -> Callable[..., SoundscapePipeline]:
    """Provide a factory building pipelines wired to fakes and the fake clock."""

    def _make(
        *,
        classifier: Any | None = None,
        synthesizer: Any | None = None,
        storage: Any | None = None,
        cache: SoundscapeCache | None = None,
        **config_overrides: Any,
    ) -> SoundscapePipeline:
        return SoundscapePipeline(
            classifier=classifier or FakeClassifier(),
            synthesizer=synthesizer or FakeSynthesizer(),
            storage=storage or MemoryStorage(),
            cache=cache,
            config=PipelineConfig(**config_overrides),
            clock=fake_clock,
            sleeper=fake_clock.sleep,
        )

    return _make

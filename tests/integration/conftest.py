"""Integration-test fixtures replacing external services with deterministic fakes."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any

import pytest

from ambiscene.config import PipelineConfig
from ambiscene.provider_factory import ProviderFactory
from tests.fakes import FakeClassifier, FakeSynthesizer


class InMemoryCredentialStore:
    """Simple in-memory credential store used for CLI tests."""

    def __init__(self, initial_api_key: str | None = None) -> None:
        """Initialize the store with an optional pre-seeded API key."""

        self._api_key = initial_api_key

    def is_available(self) -> bool:
        """Return availability flag expected by the CLI status command."""

        return True

    def get_api_key(self) -> str | None:
        """Return currently stored API key value."""

        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        """Persist a normalized API key value."""

        self._api_key = api_key.strip()

    def clear_api_key(self) -> bool:
        """Clear API key and return whether one existed."""

        existed = self._api_key is not None
        self._api_key = None
        return existed


@dataclass
class FakeServices:
    """Service doubles the CLI receives from the provider factory."""

    classifier: FakeClassifier = field(default_factory=FakeClassifier)
    synthesizer: FakeSynthesizer = field(default_factory=FakeSynthesizer)
    credential_store: InMemoryCredentialStore = field(default_factory=InMemoryCredentialStore)
    configs: list[PipelineConfig] = field(default_factory=list)


@pytest.fixture(autouse=True)
def fake_services(monkeypatch: pytest.MonkeyPatch) -> FakeServices:
    """Route CLI provider construction and credential storage to in-memory fakes."""

    services = FakeServices()
    for name in list(os.environ):
        if name.startswith("AMBISCENE_"):
            monkeypatch.delenv(name)

    def _create_classifier(config: PipelineConfig, rate_limiter: Any = None) -> FakeClassifier:
        services.configs.append(config)
        return services.classifier

    def _create_synthesizer(config: PipelineConfig, rate_limiter: Any = None) -> FakeSynthesizer:
        return services.synthesizer

    monkeypatch.setattr(ProviderFactory, "create_classifier", staticmethod(_create_classifier))
    monkeypatch.setattr(ProviderFactory, "create_synthesizer", staticmethod(_create_synthesizer))
    monkeypatch.setattr("ambiscene.cli.create_credential_store", lambda: services.credential_store)
    return services

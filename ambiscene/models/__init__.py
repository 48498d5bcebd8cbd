"""Typed records shared across pipeline stages."""

from .datatypes import (
    DESCRIPTOR_KEYS,
    Book,
    BookReport,
    BookStatus,
    DescriptorSet,
    ErrorRecord,
    Fingerprint,
    OutcomeStatus,
    Page,
    PageOutcome,
    Scene,
    SceneOutcome,
    Soundscape,
    SoundscapeSource,
)

__all__ = [
    "DESCRIPTOR_KEYS",
    "Book",
    "BookReport",
    "BookStatus",
    "DescriptorSet",
    "ErrorRecord",
    "Fingerprint",
    "OutcomeStatus",
    "Page",
    "PageOutcome",
    "Scene",
    "SceneOutcome",
    "Soundscape",
    "SoundscapeSource",
]

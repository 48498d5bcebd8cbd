"""Audio synthesis, job polling, prompting, and soundscape reuse.

This package contains the synthesis client contract, the job runner that
drives it, and the fingerprint cache for generated assets.
"""

from .cache import CacheEntry, SoundscapeCache
from .jobs import CompletedJob, PollSchedule, SynthesisJobRunner
from .prompting import build_soundscape_prompt, extract_tags
from .synthesizer import (
    AudioSynthesisClient,
    JobHandle,
    JobState,
    JobStatus,
    PredictionApiSynthesizer,
)

__all__ = [
    "AudioSynthesisClient",
    "JobHandle",
    "JobState",
    "JobStatus",
    "PredictionApiSynthesizer",
    "PollSchedule",
    "CompletedJob",
    "SynthesisJobRunner",
    "SoundscapeCache",
    "CacheEntry",
    "build_soundscape_prompt",
    "extract_tags",
]

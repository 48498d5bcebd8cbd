"""Top-level package for Ambiscene.

This package turns extracted book pages into scenes and attaches a reused or
newly synthesized ambient soundscape to each one. The main orchestration entry
point is `SoundscapePipeline`.
"""

from .pipeline import SoundscapePipeline

__all__ = ["SoundscapePipeline", "__version__"]

__version__ = "0.1.0"

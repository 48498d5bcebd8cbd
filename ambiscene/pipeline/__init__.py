"""Ambiscene pipeline package.

This package contains the book orchestrator, its analyzing and mapping stage
helpers, the terminal status decision, and the multi-book scheduler.
"""

from .orchestrator import SoundscapePipeline
from .scheduler import BookJob, BookScheduler
from .status import derive_terminal_status

__all__ = ["SoundscapePipeline", "BookJob", "BookScheduler", "derive_terminal_status"]

"""Telemetry and observability.

This package tracks billable usage and run events for deterministic auditing.
"""

from .cost_tracker import CostTracker
from .logger import RunLogger

__all__ = ["CostTracker", "RunLogger"]

"""Scene segmentation: similarity, boundaries, and descriptor aggregation."""

from .aggregation import aggregate_descriptors
from .boundaries import DEFAULT_BOUNDARY_THRESHOLD, SceneBuilder, detect_boundaries
from .similarity import similarity

__all__ = [
    "DEFAULT_BOUNDARY_THRESHOLD",
    "SceneBuilder",
    "aggregate_descriptors",
    "detect_boundaries",
    "similarity",
]

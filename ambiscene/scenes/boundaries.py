"""Scene boundary detection and scene assembly.

Responsibilities:
- Declare a boundary wherever adjacent units fall below a similarity threshold.
- Build ordered `Scene` records whose page ranges partition the book.
"""

from __future__ import annotations

from typing import Sequence

from ..models.datatypes import DescriptorSet, Scene
from .aggregation import aggregate_descriptors
from .similarity import similarity

DEFAULT_BOUNDARY_THRESHOLD = 0.6


def detect_boundaries(
    descriptors: Sequence[DescriptorSet],
    threshold: float = DEFAULT_BOUNDARY_THRESHOLD,
) -> list[int]:
    """Return 0-based indices where a new scene starts.

    Index `0` always starts a scene when the input is non-empty. Index `i + 1`
    starts one when `similarity(descriptors[i], descriptors[i + 1]) < threshold`.
    """

    if not descriptors:
        return []
    starts = [0]
    for index in range(1, len(descriptors)):
        if similarity(descriptors[index - 1], descriptors[index]) < threshold:
            starts.append(index)
    return starts


class SceneBuilder:
    """Group classified pages into scenes."""

    def __init__(self, threshold: float = DEFAULT_BOUNDARY_THRESHOLD) -> None:
        """Initialize the boundary threshold."""

        if not 0.0 <= threshold <= 1.0:
            raise ValueError("Boundary threshold must be between 0 and 1.")
        self.threshold = threshold

    def build(
        self,
        book_id: str,
        page_descriptors: Sequence[tuple[int, DescriptorSet]],
    ) -> list[Scene]:
        """Build scenes from `(page_number, descriptors)` pairs in reading order."""

        ordered = sorted(page_descriptors, key=lambda item: item[0])
        starts = detect_boundaries([item[1] for item in ordered], self.threshold)
        scenes: list[Scene] = []
        for scene_index, start in enumerate(starts):
            end = starts[scene_index + 1] if scene_index + 1 < len(starts) else len(ordered)
            members = ordered[start:end]
            page_numbers = tuple(page_number for page_number, _ in members)
            scenes.append(
                Scene(
                    book_id=book_id,
                    scene_number=scene_index + 1,
                    start_page=page_numbers[0],
                    end_page=page_numbers[-1],
                    page_numbers=page_numbers,
                    descriptors=aggregate_descriptors([item for _, item in members]),
                )
            )
        return scenes

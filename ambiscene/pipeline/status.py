"""Terminal status decision for a book run."""

from __future__ import annotations

from typing import Sequence

from ..models.datatypes import BookStatus, OutcomeStatus, PageOutcome, SceneOutcome


def derive_terminal_status(
    scene_outcomes: Sequence[SceneOutcome],
    page_outcomes: Sequence[PageOutcome] = (),
) -> tuple[BookStatus, bool]:
    """Return the terminal status and warning flag implied by item outcomes.

    A book with no successful scene is `FAILED`. Otherwise it is
    `READY_FOR_REVIEW`, flagged with warnings when any page or scene failed.
    """

    succeeded = [item for item in scene_outcomes if item.status == OutcomeStatus.SUCCEEDED]
    if not succeeded:
        return BookStatus.FAILED, True
    has_warnings = len(succeeded) < len(scene_outcomes) or any(
        item.error is not None for item in page_outcomes
    )
    return BookStatus.READY_FOR_REVIEW, has_warnings

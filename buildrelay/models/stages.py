"""Promotion state machine models: forward-only transitions.

Every non-terminal state has exactly one successor on success and may
move to FAILED on error.  PUSHED and FAILED are terminal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PromotionState(str, Enum):
    """States of a pipeline run, in promotion order."""

    REQUESTED = "requested"
    COMPILED = "compiled"
    TESTED = "tested"
    PACKAGED = "packaged"
    CONTEXT_BUNDLED = "context_bundled"
    PUBLISHED = "published"
    DOWNLOADED = "downloaded"
    IMAGE_BUILT = "image_built"
    TAGGED = "tagged"
    PUSHED = "pushed"
    FAILED = "failed"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# Success path, in order.  FAILED is not part of it.
PROMOTION_ORDER: tuple[PromotionState, ...] = (
    PromotionState.REQUESTED,
    PromotionState.COMPILED,
    PromotionState.TESTED,
    PromotionState.PACKAGED,
    PromotionState.CONTEXT_BUNDLED,
    PromotionState.PUBLISHED,
    PromotionState.DOWNLOADED,
    PromotionState.IMAGE_BUILT,
    PromotionState.TAGGED,
    PromotionState.PUSHED,
)

TERMINAL_STATES: frozenset[PromotionState] = frozenset(
    {PromotionState.PUSHED, PromotionState.FAILED}
)

# Pipeline 2 is admitted at PUBLISHED from a handoff payload.
HANDOFF_ENTRY_STATE = PromotionState.PUBLISHED


def _build_transitions() -> dict[PromotionState, set[PromotionState]]:
    table: dict[PromotionState, set[PromotionState]] = {}
    for current, successor in zip(PROMOTION_ORDER, PROMOTION_ORDER[1:]):
        table[current] = {successor, PromotionState.FAILED}
    for terminal in TERMINAL_STATES:
        table[terminal] = set()
    return table


# Valid state transitions, enforced structurally by PromotionStateMachine.
VALID_TRANSITIONS: dict[PromotionState, set[PromotionState]] = _build_transitions()


def next_state(state: PromotionState) -> PromotionState | None:
    """Return the success successor of *state*, or None if terminal."""
    if state in TERMINAL_STATES:
        return None
    return PROMOTION_ORDER[PROMOTION_ORDER.index(state) + 1]


class StateTransition(BaseModel):
    """Records a single state transition for the audit trail."""

    model_config = ConfigDict(frozen=True)

    from_state: PromotionState
    to_state: PromotionState
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: Outcome = Outcome.SUCCESS
    detail: str = ""

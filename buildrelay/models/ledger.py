"""Run ledger entry models (append-only, hash-chained).

One ``RunRecord`` per run, written once when the run is accepted, and one
``LedgerEntry`` per state transition.  Entries link to their predecessor
in the same run via SHA-256, so a rewritten history is detectable.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from buildrelay.models.stages import Outcome, PromotionState


class RunRecord(BaseModel):
    """The immutable header of a pipeline run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    base_version: str
    build_label: str
    group_id: str
    artifact_id: str
    entry_state: PromotionState
    created_at: datetime


class LedgerEntry(BaseModel):
    """A single state transition in the append-only Run Ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    from_state: PromotionState
    to_state: PromotionState
    outcome: Outcome = Outcome.SUCCESS
    detail: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    artifact_references: list[dict[str, Any]] = []  # ArtifactRef dumps
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed on append, seals this entry

    @property
    def state_transition(self) -> str:
        return f"{self.from_state.value}->{self.to_state.value}"

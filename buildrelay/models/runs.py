"""Pipeline run and cross-pipeline handoff models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator

from buildrelay.models.artifacts import ArtifactCoordinates, ArtifactKind, ArtifactRef
from buildrelay.models.stages import (
    PROMOTION_ORDER,
    TERMINAL_STATES,
    PromotionState,
    StateTransition,
)
from buildrelay.models.versioning import VersionIdentifier


def new_run_id(now: datetime | None = None) -> str:
    ts = (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")
    return f"br-{ts}-{uuid.uuid4().hex[:6]}"


class PipelineRun(BaseModel):
    """One execution instance, owned by the PromotionController.

    The model is frozen: every transition produces a new ``PipelineRun``
    whose ``history`` is the previous history plus one entry.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    version: VersionIdentifier
    coordinates: ArtifactCoordinates
    state: PromotionState = PromotionState.REQUESTED
    entry_state: PromotionState = PromotionState.REQUESTED
    history: tuple[StateTransition, ...] = ()
    artifacts: tuple[ArtifactRef, ...] = ()
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self.state is PromotionState.FAILED

    @property
    def visited_states(self) -> list[PromotionState]:
        """Entry state followed by every state entered, in order."""
        return [self.entry_state, *(t.to_state for t in self.history)]

    def artifact(self, kind: ArtifactKind) -> ArtifactRef | None:
        """Most recently recorded artifact of *kind*, if any."""
        for ref in reversed(self.artifacts):
            if ref.kind is kind:
                return ref
        return None

    def failure_detail(self) -> str | None:
        if not self.failed or not self.history:
            return None
        return self.history[-1].detail


class HandoffPayload(BaseModel):
    """Everything pipeline 2 needs, and nothing from pipeline 1's memory."""

    model_config = ConfigDict(frozen=True)

    full: str
    build_label: str
    artifact_id: str
    group_id: str

    @model_validator(mode="after")
    def _label_matches_version(self) -> HandoffPayload:
        if not self.full.endswith(f"-{self.build_label}"):
            raise ValueError(
                f"full version {self.full!r} does not end with build label "
                f"{self.build_label!r}"
            )
        return self

    @classmethod
    def for_run(cls, run: PipelineRun) -> HandoffPayload:
        return cls(
            full=run.version.full,
            build_label=run.version.build_label,
            artifact_id=run.coordinates.artifact_id,
            group_id=run.coordinates.group_id,
        )

    def to_job_params(self) -> dict[str, str]:
        """Parameters for the CI orchestrator's pipeline-2 job."""
        return {
            "FULL_VERSION": self.full,
            "BUILD_LABEL": self.build_label,
            "ARTIFACT_ID": self.artifact_id,
            "GROUP_ID": self.group_id,
        }


def success_path_between(
    start: PromotionState, end: PromotionState
) -> list[PromotionState]:
    """States strictly after *start* up to and including *end*."""
    i, j = PROMOTION_ORDER.index(start), PROMOTION_ORDER.index(end)
    return list(PROMOTION_ORDER[i + 1 : j + 1])

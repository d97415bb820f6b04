"""buildrelay data models: all Pydantic v2, all frozen (immutable)."""

from buildrelay.models.artifacts import (
    LATEST_TAG,
    ArtifactCoordinates,
    ArtifactKind,
    ArtifactRef,
    ImageRef,
    image_tags,
)
from buildrelay.models.config import ConflictPolicy, Credentials, PipelineConfig, Timeouts
from buildrelay.models.ledger import LedgerEntry, RunRecord
from buildrelay.models.reports import TestReport
from buildrelay.models.runs import HandoffPayload, PipelineRun
from buildrelay.models.stages import (
    PROMOTION_ORDER,
    VALID_TRANSITIONS,
    Outcome,
    PromotionState,
    StateTransition,
)
from buildrelay.models.versioning import BuildRequest, VersionIdentifier

__all__ = [
    # versioning
    "BuildRequest",
    "VersionIdentifier",
    # artifacts
    "ArtifactCoordinates",
    "ArtifactKind",
    "ArtifactRef",
    "ImageRef",
    "LATEST_TAG",
    "image_tags",
    # stages
    "PromotionState",
    "Outcome",
    "StateTransition",
    "PROMOTION_ORDER",
    "VALID_TRANSITIONS",
    # runs
    "PipelineRun",
    "HandoffPayload",
    # reports
    "TestReport",
    # config
    "ConflictPolicy",
    "Credentials",
    "PipelineConfig",
    "Timeouts",
    # ledger
    "LedgerEntry",
    "RunRecord",
]

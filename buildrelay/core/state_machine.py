"""Promotion state machine (forward-only, append-only history).

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- No skipped states: success moves to the single successor
- Terminal states (PUSHED, FAILED) accept no further transitions
- Every transition recorded in the Run Ledger
"""

from __future__ import annotations

import logging

from buildrelay.core.clock import Clock, SystemClock
from buildrelay.core.errors import InvalidTransitionError
from buildrelay.core.run_ledger import RunLedger
from buildrelay.models.artifacts import ArtifactCoordinates, ArtifactRef
from buildrelay.models.ledger import LedgerEntry, RunRecord
from buildrelay.models.runs import PipelineRun
from buildrelay.models.stages import (
    VALID_TRANSITIONS,
    Outcome,
    PromotionState,
    StateTransition,
)
from buildrelay.models.versioning import VersionIdentifier

logger = logging.getLogger(__name__)


class PromotionStateMachine:
    """Validates and records transitions of ``PipelineRun`` instances.

    Parameters
    ----------
    ledger:
        The Run Ledger to record runs and transitions into.
    clock:
        Time source for transition timestamps.
    """

    def __init__(self, ledger: RunLedger, clock: Clock | None = None) -> None:
        self._ledger = ledger
        self._clock = clock or SystemClock()

    @property
    def ledger(self) -> RunLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def register(self, run: PipelineRun) -> PipelineRun:
        """Persist the header of a newly created run."""
        self._ledger.register_run(
            RunRecord(
                run_id=run.run_id,
                base_version=run.version.base_version,
                build_label=run.version.build_label,
                group_id=run.coordinates.group_id,
                artifact_id=run.coordinates.artifact_id,
                entry_state=run.entry_state,
                created_at=run.created_at,
            )
        )
        logger.info(
            "Run %s registered: %s at %s", run.run_id, run.version.full, run.entry_state.value
        )
        return run

    def transition(
        self,
        run: PipelineRun,
        target: PromotionState,
        *,
        detail: str = "",
        artifacts: list[ArtifactRef] | None = None,
    ) -> PipelineRun:
        """Move *run* to *target*, returning the new run.

        Raises ``InvalidTransitionError`` if *target* is not allowed from
        the run's recorded state.
        """
        self.check(run, target)

        outcome = Outcome.FAILURE if target is PromotionState.FAILED else Outcome.SUCCESS
        new_artifacts = list(artifacts or [])
        record = StateTransition(
            from_state=run.state,
            to_state=target,
            timestamp=self._clock.now(),
            outcome=outcome,
            detail=detail,
        )
        self._ledger.append(
            LedgerEntry(
                run_id=run.run_id,
                from_state=record.from_state,
                to_state=record.to_state,
                outcome=record.outcome,
                detail=record.detail,
                timestamp_utc=record.timestamp,
                artifact_references=[a.model_dump(mode="json") for a in new_artifacts],
            )
        )

        log = logger.warning if outcome is Outcome.FAILURE else logger.info
        log(
            "Run %s: %s->%s %s",
            run.run_id,
            record.from_state.value,
            target.value,
            detail,
        )

        return run.model_copy(
            update={
                "state": target,
                "history": (*run.history, record),
                "artifacts": (*run.artifacts, *new_artifacts),
            }
        )

    def recorded_state(self, run_id: str) -> PromotionState:
        """The run's state according to the ledger, not to any in-memory copy."""
        latest = self._ledger.get_latest_entry(run_id)
        if latest is not None:
            return latest.to_state
        record = self._ledger.get_run(run_id)
        if record is None:
            raise InvalidTransitionError(f"Run {run_id} is not registered")
        return record.entry_state

    def check(self, run: PipelineRun, target: PromotionState) -> None:
        """Raise ``InvalidTransitionError`` unless *run* may enter *target* now.

        A stale copy (one whose state lags the ledger) is refused outright,
        so a failed or published run cannot be replayed forward.
        """
        recorded = self.recorded_state(run.run_id)
        if recorded is not run.state:
            raise InvalidTransitionError(
                f"Run {run.run_id} is {recorded.value} in the ledger, "
                f"not {run.state.value}; reload it before continuing"
            )
        allowed = VALID_TRANSITIONS.get(run.state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition run {run.run_id} from {run.state.value} "
                f"to {target.value}. Allowed: {sorted(s.value for s in allowed)}"
            )

    def fail(self, run: PipelineRun, detail: str) -> PipelineRun:
        """Move a non-terminal run to FAILED."""
        return self.transition(run, PromotionState.FAILED, detail=detail)

    # ------------------------------------------------------------------
    # Rebuild from ledger
    # ------------------------------------------------------------------

    def load(self, run_id: str) -> PipelineRun:
        """Rebuild a run from the ledger (for status and audit)."""
        record = self._ledger.get_run(run_id)
        if record is None:
            raise KeyError(f"Unknown run {run_id!r}")

        state = record.entry_state
        history: list[StateTransition] = []
        artifacts: list[ArtifactRef] = []
        for entry in self._ledger.get_run_entries(run_id):
            history.append(
                StateTransition(
                    from_state=entry.from_state,
                    to_state=entry.to_state,
                    timestamp=entry.timestamp_utc,
                    outcome=entry.outcome,
                    detail=entry.detail,
                )
            )
            artifacts.extend(ArtifactRef.model_validate(a) for a in entry.artifact_references)
            state = entry.to_state

        return PipelineRun(
            run_id=record.run_id,
            version=VersionIdentifier(
                base_version=record.base_version, build_label=record.build_label
            ),
            coordinates=ArtifactCoordinates(
                group_id=record.group_id, artifact_id=record.artifact_id
            ),
            state=state,
            entry_state=record.entry_state,
            history=tuple(history),
            artifacts=tuple(artifacts),
            created_at=record.created_at,
        )

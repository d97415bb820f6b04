"""Error taxonomy for the promotion pipeline.

Every error that ends a run derives from ``PromotionError`` and its
message becomes the ``detail`` of the run's terminal transition.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from buildrelay.models.reports import TestReport
    from buildrelay.models.runs import PipelineRun


class PromotionError(RuntimeError):
    """Base class for every error surfaced to a run's terminal state.

    When the error ended a run, the controller attaches the FAILED run as
    ``run`` before re-raising.
    """

    run: PipelineRun | None = None


class ValidationError(PromotionError):
    """Missing or malformed required parameters.  Raised before side effects."""


class BuildError(PromotionError):
    """Compile, test or package failure.

    When tests ran, ``report`` carries the collected ``TestReport`` so the
    results are surfaced even though the run failed.
    """

    def __init__(self, message: str, *, report: TestReport | None = None) -> None:
        super().__init__(message)
        self.report = report


class TransferError(PromotionError):
    """Upload or download failure against the artifact store.

    ``retriable`` is decided by the store client (e.g. a 503 or a timeout);
    the controller never retries on its own.
    """

    def __init__(self, message: str, *, retriable: bool = False) -> None:
        super().__init__(message)
        self.retriable = retriable


class ImageError(PromotionError):
    """Container build, tag, login or push failure."""


class ConflictError(PromotionError):
    """An artifact key ``(kind, version)`` already exists under the reject policy."""


class TriggerError(PromotionError):
    """The CI orchestrator refused or failed to queue a job."""


class InvalidTransitionError(PromotionError):
    """A requested state transition is not allowed by the state machine."""


class LedgerIntegrityError(PromotionError):
    """Raised when the run ledger hash chain is broken."""

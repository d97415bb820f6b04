"""Promotion controller: drives a run from request to pushed image.

The controller wires the state machine to the collaborator capabilities
(build tool, artifact store, container builder, registry, CI orchestrator)
and owns every ``PipelineRun`` it creates.

Pipeline 1 runs ``Requested -> ... -> Published`` and publishes a handoff
manifest next to the artifacts.  Pipeline 2 is admitted from a
``HandoffPayload`` alone and runs ``Published -> ... -> Pushed``.  The two
share nothing but the artifact store.

Any stage error moves the run to FAILED and is re-raised with the failed
run attached as ``exc.run``.  Nothing is retried here.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from buildrelay.core.capabilities import (
    ArtifactStore,
    BuildTool,
    CIOrchestrator,
    ContainerBuilder,
    Registry,
)
from buildrelay.core.clock import Clock, SystemClock
from buildrelay.core.context_bundle import build_context_bundle, unpack_bundle, verify_bundle
from buildrelay.core.errors import (
    BuildError,
    ConflictError,
    PromotionError,
    TransferError,
    ValidationError,
)
from buildrelay.core.hasher import sha256_hex
from buildrelay.core.run_ledger import RunLedger
from buildrelay.core.state_machine import PromotionStateMachine
from buildrelay.models.artifacts import (
    ArtifactCoordinates,
    ArtifactKind,
    ArtifactRef,
    ImageRef,
    image_tags,
)
from buildrelay.models.config import ConflictPolicy, PipelineConfig
from buildrelay.models.runs import HandoffPayload, PipelineRun, new_run_id
from buildrelay.models.stages import (
    HANDOFF_ENTRY_STATE,
    PromotionState,
)
from buildrelay.models.versioning import BuildRequest, VersionIdentifier

logger = logging.getLogger(__name__)

# Build-arg names that would leak credentials into image metadata.
_SECRET_ARG = re.compile(r"(?i)(passw|secret|token|credential|api_?key|user)")

_PUBLISH_ORDER: tuple[ArtifactKind, ...] = (
    ArtifactKind.JAR,
    ArtifactKind.CONTEXT_BUNDLE,
    ArtifactKind.HANDOFF,
)


@dataclass
class StepResult:
    detail: str = ""
    artifacts: list[ArtifactRef] = field(default_factory=list)


@dataclass
class PipelineOneResult:
    """Outcome of pipeline 1.

    ``trigger_error`` is set when the optional pipeline-2 trigger failed;
    the run itself is still PUBLISHED.
    """

    run: PipelineRun
    handoff: HandoffPayload
    trigger_ref: str | None = None
    trigger_error: str | None = None


class PromotionController:
    """Central promotion controller.

    Parameters
    ----------
    config:
        Project configuration (coordinates, policy, timeouts, recipe files).
    store:
        Artifact store shared by both pipelines.
    build_tool, container_builder, registry:
        Collaborators; only required by the stages that use them.
    orchestrator:
        Optional CI orchestrator used to fire pipeline 2 after publishing.
    clock:
        Time source, read once per run at creation.
    ledger:
        Run ledger; opened from ``config.ledger_db_path`` if not given.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        store: ArtifactStore,
        build_tool: BuildTool | None = None,
        container_builder: ContainerBuilder | None = None,
        registry: Registry | None = None,
        orchestrator: CIOrchestrator | None = None,
        clock: Clock | None = None,
        ledger: RunLedger | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.store = store
        self.build_tool = build_tool
        self.container_builder = container_builder
        self.registry = registry
        self.orchestrator = orchestrator
        self.clock = clock or SystemClock()
        self.ledger = ledger or RunLedger(self.config.ledger_db_path)
        self.state_machine = PromotionStateMachine(self.ledger, self.clock)

    # ------------------------------------------------------------------
    # Run creation
    # ------------------------------------------------------------------

    def derive_version(
        self, base_version: str, timestamp: datetime | None = None
    ) -> VersionIdentifier:
        """Version identifier for *base_version* at *timestamp* (or now)."""
        request = BuildRequest.accept(base_version, timestamp or self.clock.now())
        return VersionIdentifier.derive(request)

    def create_run(
        self,
        base_version: str,
        timestamp: datetime | None = None,
        *,
        coordinates: ArtifactCoordinates | None = None,
    ) -> PipelineRun:
        """Accept a build request and create a run in REQUESTED.

        The clock is read here, once; the build label never changes after.
        Raises ``ValidationError`` before anything is recorded.
        """
        now = self.clock.now()
        request = BuildRequest.accept(base_version, timestamp or now)
        run = PipelineRun(
            run_id=new_run_id(now),
            version=VersionIdentifier.derive(request),
            coordinates=coordinates or self.config.coordinates,
            created_at=now,
        )
        return self.state_machine.register(run)

    def admit_handoff(self, payload: HandoffPayload | dict[str, str]) -> PipelineRun:
        """Create a pipeline-2 run from a handoff payload alone.

        The run enters at PUBLISHED; the artifact store holds the evidence
        of the earlier stages.
        """
        try:
            if not isinstance(payload, HandoffPayload):
                payload = HandoffPayload.model_validate(payload)
            version = VersionIdentifier.parse(payload.full, payload.build_label)
            coordinates = ArtifactCoordinates(
                group_id=payload.group_id, artifact_id=payload.artifact_id
            )
        except ValueError as exc:
            raise ValidationError(f"Invalid handoff payload: {exc}") from exc

        now = self.clock.now()
        run = PipelineRun(
            run_id=new_run_id(now),
            version=version,
            coordinates=coordinates,
            state=HANDOFF_ENTRY_STATE,
            entry_state=HANDOFF_ENTRY_STATE,
            created_at=now,
        )
        return self.state_machine.register(run)

    def load_run(self, run_id: str) -> PipelineRun:
        return self.state_machine.load(run_id)

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    def _step(
        self,
        run: PipelineRun,
        target: PromotionState,
        action: Callable[[], StepResult],
    ) -> PipelineRun:
        """Run one stage: check the edge, act, then record success or failure."""
        self.state_machine.check(run, target)

        try:
            result = action()
        except PromotionError as exc:
            detail = f"{type(exc).__name__}: {exc}"
            report = getattr(exc, "report", None)
            if report is not None:
                detail = f"{detail} [{report.summary()}]"
            exc.run = self.state_machine.fail(run, detail)
            raise
        except Exception as exc:
            self.state_machine.fail(run, f"{type(exc).__name__}: {exc}")
            raise

        return self.state_machine.transition(
            run, target, detail=result.detail, artifacts=result.artifacts
        )

    def _require(self, collaborator: object | None, name: str) -> None:
        if collaborator is None:
            raise ValidationError(f"No {name} configured for this controller")

    def _staging(self, run: PipelineRun) -> Path:
        return Path(self.config.staging_dir) / run.run_id

    def _staged_path(self, run: PipelineRun, kind: ArtifactKind) -> Path:
        return self._staging(run) / run.coordinates.filename(kind, run.version)

    def _staged_ref(self, run: PipelineRun, kind: ArtifactKind, path: Path) -> ArtifactRef:
        data = path.read_bytes()
        return ArtifactRef(
            kind=kind,
            name=path.name,
            version=run.version,
            location=path.resolve().as_uri(),
            sha256=sha256_hex(data),
            size_bytes=len(data),
        )

    # ------------------------------------------------------------------
    # Pipeline 1: Requested -> Published
    # ------------------------------------------------------------------

    def run_pipeline_one(
        self,
        run: PipelineRun,
        source_dir: Path,
        recipe_dir: Path,
        *,
        trigger: bool = True,
    ) -> PipelineOneResult:
        """Compile, test, package, bundle and publish; then fire pipeline 2."""
        source_dir, recipe_dir = Path(source_dir), Path(recipe_dir)
        timeouts = self.config.timeouts

        def compile_() -> StepResult:
            if not source_dir.is_dir():
                raise ValidationError(f"Source checkout {source_dir} is not available")
            if not recipe_dir.is_dir():
                raise ValidationError(f"Recipe directory {recipe_dir} is not available")
            self._require(self.build_tool, "build tool")
            self._check_unpublished(run)
            self.build_tool.compile(source_dir, timeout=timeouts.compile)
            return StepResult(detail="compile succeeded")

        def test() -> StepResult:
            report = self.build_tool.test(source_dir, timeout=timeouts.test)
            if not report.passed:
                raise BuildError("tests failed", report=report)
            return StepResult(detail=report.summary())

        def package() -> StepResult:
            built = Path(self.build_tool.package(source_dir, timeout=timeouts.package))
            if not built.is_file():
                raise BuildError(f"Build tool reported {built} but no jar exists there")
            target = self._staged_path(run, ArtifactKind.JAR)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(built, target)
            return StepResult(
                detail=target.name,
                artifacts=[self._staged_ref(run, ArtifactKind.JAR, target)],
            )

        def bundle() -> StepResult:
            if not self._staged_path(run, ArtifactKind.JAR).is_file():
                raise BuildError("Jar is missing from staging; cannot bundle")
            data = build_context_bundle(recipe_dir, self.config.recipe_files)
            target = self._staged_path(run, ArtifactKind.CONTEXT_BUNDLE)
            target.write_bytes(data)
            return StepResult(
                detail=target.name,
                artifacts=[self._staged_ref(run, ArtifactKind.CONTEXT_BUNDLE, target)],
            )

        def publish() -> StepResult:
            return StepResult(
                detail=f"published {run.version.full}",
                artifacts=self._publish(run),
            )

        run = self._step(run, PromotionState.COMPILED, compile_)
        run = self._step(run, PromotionState.TESTED, test)
        run = self._step(run, PromotionState.PACKAGED, package)
        run = self._step(run, PromotionState.CONTEXT_BUNDLED, bundle)
        run = self._step(run, PromotionState.PUBLISHED, publish)

        result = PipelineOneResult(run=run, handoff=HandoffPayload.for_run(run))
        if trigger:
            self._trigger_downstream(result)
        return result

    def _publish(self, run: PipelineRun) -> list[ArtifactRef]:
        """Upload jar, bundle and handoff manifest, all or nothing."""
        coords, version = run.coordinates, run.version
        timeout = self.config.timeouts.transfer

        payloads: dict[ArtifactKind, bytes] = {}
        for kind in (ArtifactKind.JAR, ArtifactKind.CONTEXT_BUNDLE):
            path = self._staged_path(run, kind)
            if not path.is_file():
                raise BuildError(f"{path.name} is missing from staging; cannot publish")
            payloads[kind] = path.read_bytes()
        payloads[ArtifactKind.HANDOFF] = json.dumps(
            HandoffPayload.for_run(run).model_dump(), indent=2, sort_keys=True
        ).encode("utf-8")

        self._check_unpublished(run)
        overwrite = self.config.conflict_policy is ConflictPolicy.OVERWRITE

        uploaded: list[ArtifactRef] = []
        try:
            # The handoff manifest goes last; its presence marks a complete publish.
            # An earlier publish of this version stops being complete before any
            # of its files is replaced.
            if overwrite:
                self.store.delete(coords, ArtifactKind.HANDOFF, version, timeout=timeout)
            for kind in _PUBLISH_ORDER:
                ref = ArtifactRef(
                    kind=kind,
                    name=coords.filename(kind, version),
                    version=version,
                    location=self.store.location(coords, kind, version),
                )
                uploaded.append(
                    self.store.upload(coords, ref, payloads[kind], timeout=timeout)
                )
        except PromotionError as exc:
            # Under overwrite the version's remaining files may mix two builds,
            # so none of them is kept.
            kinds = list(_PUBLISH_ORDER) if overwrite else [ref.kind for ref in uploaded]
            leftovers = self._rollback(coords, version, kinds)
            if leftovers:
                raise TransferError(
                    f"{exc}; rollback left {', '.join(leftovers)} in the store"
                ) from exc
            raise
        return uploaded

    def _check_unpublished(self, run: PipelineRun) -> None:
        """Under the reject policy, fail if any key of this version exists."""
        if self.config.conflict_policy is not ConflictPolicy.REJECT:
            return
        coords, version = run.coordinates, run.version
        taken = [
            kind.value
            for kind in _PUBLISH_ORDER
            if self.store.exists(
                coords, kind, version, timeout=self.config.timeouts.transfer
            )
        ]
        if taken:
            raise ConflictError(
                f"Version {version.full} already exists in the artifact store "
                f"({', '.join(taken)})"
            )

    def _rollback(
        self,
        coords: ArtifactCoordinates,
        version: VersionIdentifier,
        kinds: list[ArtifactKind],
    ) -> list[str]:
        """Delete *kinds* of *version*, newest first; return names left behind."""
        leftovers: list[str] = []
        for kind in reversed(kinds):
            name = coords.filename(kind, version)
            try:
                self.store.delete(coords, kind, version, timeout=self.config.timeouts.transfer)
            except PromotionError as exc:
                logger.error("Rollback of %s failed: %s", name, exc)
                leftovers.append(name)
        return leftovers

    def _trigger_downstream(self, result: PipelineOneResult) -> None:
        """Fire-and-forget pipeline-2 trigger.  Never fails pipeline 1."""
        job = self.config.downstream_job
        if not job or self.orchestrator is None:
            return
        try:
            result.trigger_ref = self.orchestrator.trigger_job(
                job,
                result.handoff.to_job_params(),
                wait=False,
                timeout=self.config.timeouts.trigger,
            )
            logger.info("Triggered %s for %s", job, result.handoff.full)
        except PromotionError as exc:
            result.trigger_error = f"{type(exc).__name__}: {exc}"
            logger.warning(
                "Run %s published but %s was not triggered: %s",
                result.run.run_id,
                job,
                exc,
            )

    # ------------------------------------------------------------------
    # Pipeline 2: Published -> Pushed
    # ------------------------------------------------------------------

    def run_pipeline_two(self, run: PipelineRun, work_dir: Path | None = None) -> PipelineRun:
        """Download the bundle, build, tag and push the image."""
        coords, version = run.coordinates, run.version
        timeouts = self.config.timeouts
        context_dir = Path(work_dir or self._staging(run)) / "context"
        image: ImageRef | None = None

        def download() -> StepResult:
            self._check_handoff(run)
            data = self.store.download(
                coords, ArtifactKind.CONTEXT_BUNDLE, version, timeout=timeouts.transfer
            )
            problems = verify_bundle(data, self.config.recipe_files)
            if problems:
                raise TransferError(
                    "Downloaded context bundle is invalid: " + "; ".join(problems)
                )
            if not self.store.exists(coords, ArtifactKind.JAR, version, timeout=timeouts.transfer):
                raise TransferError(
                    f"{coords.filename(ArtifactKind.JAR, version)} is not in the artifact store"
                )
            if context_dir.exists():
                shutil.rmtree(context_dir)
            unpack_bundle(data, context_dir)
            ref = ArtifactRef(
                kind=ArtifactKind.CONTEXT_BUNDLE,
                name=coords.filename(ArtifactKind.CONTEXT_BUNDLE, version),
                version=version,
                location=self.store.location(coords, ArtifactKind.CONTEXT_BUNDLE, version),
                sha256=sha256_hex(data),
                size_bytes=len(data),
            )
            return StepResult(detail=f"unpacked to {context_dir}", artifacts=[ref])

        def build_image() -> StepResult:
            nonlocal image
            self._require(self.container_builder, "container builder")
            image = self.container_builder.build(
                context_dir,
                repository=self.config.image_repository,
                build_args=self.build_args(run),
                secrets=self.build_secrets(),
                timeout=timeouts.image_build,
            )
            return StepResult(detail=image.image_id or image.repository)

        def tag() -> StepResult:
            nonlocal image
            self._require(self.registry, "registry")
            for name in image_tags(version):
                image = self.registry.tag(image, name, timeout=timeouts.tag)
            return StepResult(detail=", ".join(image.reference(t) for t in image.tags))

        def push() -> StepResult:
            refs: list[ArtifactRef] = []
            with self.registry.session(
                self.config.registry_credentials, timeout=timeouts.registry_login
            ):
                for name in image_tags(version):
                    self.registry.push(image, name, timeout=timeouts.push)
                    refs.append(
                        ArtifactRef(
                            kind=ArtifactKind.IMAGE,
                            name=image.repository,
                            version=version,
                            location=image.reference(name),
                        )
                    )
            return StepResult(detail=f"pushed {len(refs)} tags", artifacts=refs)

        run = self._step(run, PromotionState.DOWNLOADED, download)
        run = self._step(run, PromotionState.IMAGE_BUILT, build_image)
        run = self._step(run, PromotionState.TAGGED, tag)
        run = self._step(run, PromotionState.PUSHED, push)
        return run

    def _check_handoff(self, run: PipelineRun) -> None:
        """Fail unless the store holds a handoff manifest matching *run*.

        The manifest is written last, so without it the jar and bundle may
        belong to an unfinished or rolled-back publish.
        """
        coords, version = run.coordinates, run.version
        timeout = self.config.timeouts.transfer
        name = coords.filename(ArtifactKind.HANDOFF, version)
        if not self.store.exists(coords, ArtifactKind.HANDOFF, version, timeout=timeout):
            raise TransferError(f"Publish of {version.full} is incomplete: {name} is missing")
        data = self.store.download(coords, ArtifactKind.HANDOFF, version, timeout=timeout)
        try:
            recorded = HandoffPayload.model_validate(json.loads(data))
        except ValueError as exc:
            raise TransferError(f"{name} is not a valid handoff manifest: {exc}") from exc
        expected = HandoffPayload.for_run(run)
        if recorded != expected:
            raise TransferError(
                f"{name} describes {recorded.group_id}:{recorded.artifact_id}:"
                f"{recorded.full}, not {expected.group_id}:{expected.artifact_id}:"
                f"{expected.full}"
            )

    def build_args(self, run: PipelineRun) -> dict[str, str]:
        """Non-secret build arguments for the image build.

        Credential-like names are rejected; credentials travel as secrets.
        """
        coords, version = run.coordinates, run.version
        args = {
            "ARTIFACT_URL": self.store.location(coords, ArtifactKind.JAR, version),
            "JAR_FILE": coords.filename(ArtifactKind.JAR, version),
            "FULL_VERSION": version.full,
            "BUILD_LABEL": version.build_label,
            "ARTIFACT_ID": coords.artifact_id,
            "GROUP_ID": coords.group_id,
        }
        args.update(self.config.extra_build_args)
        leaking = sorted(name for name in args if _SECRET_ARG.search(name))
        if leaking:
            raise ValidationError(
                f"Build args {', '.join(leaking)} look like credentials; "
                "pass them as build secrets instead"
            )
        return args

    def build_secrets(self) -> dict[str, str]:
        """Build-time-only secrets for fetching the jar from the store."""
        creds = self.config.store_credentials
        if creds is None:
            return {}
        return {
            "artifact_store_user": creds.username,
            "artifact_store_password": creds.password.get_secret_value(),
        }

    # ------------------------------------------------------------------
    # End to end
    # ------------------------------------------------------------------

    def promote(
        self,
        base_version: str,
        source_dir: Path,
        recipe_dir: Path,
        *,
        timestamp: datetime | None = None,
        work_dir: Path | None = None,
    ) -> PipelineRun:
        """Run both pipelines in-process on a single run."""
        run = self.create_run(base_version, timestamp)
        published = self.run_pipeline_one(run, source_dir, recipe_dir, trigger=False).run
        return self.run_pipeline_two(published, work_dir)

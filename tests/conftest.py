"""Shared test fixtures for buildrelay."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from buildrelay.core.artifact_store import LocalArtifactStore
from buildrelay.core.clock import FixedClock
from buildrelay.core.controller import PromotionController
from buildrelay.core.errors import BuildError, ImageError, TriggerError
from buildrelay.core.run_ledger import RunLedger
from buildrelay.core.state_machine import PromotionStateMachine
from buildrelay.models.artifacts import ArtifactCoordinates, ImageRef
from buildrelay.models.config import ConflictPolicy, Credentials, PipelineConfig
from buildrelay.models.reports import TestReport
from buildrelay.models.versioning import VersionIdentifier

BUILD_INSTANT = datetime(2026, 1, 29, 10, 15, 0, tzinfo=timezone.utc)
JAR_BYTES = b"PK\x03\x04 fake application jar"


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeBuildTool:
    """Records calls; writes a jar into ``target/`` on package."""

    def __init__(
        self,
        *,
        report: TestReport | None = None,
        fail_on: str | None = None,
    ) -> None:
        self.report = report or TestReport(tests_run=12, skipped=1)
        self.fail_on = fail_on
        self.calls: list[tuple[str, float]] = []

    def _record(self, step: str, timeout: float) -> None:
        self.calls.append((step, timeout))
        if self.fail_on == step:
            raise BuildError(f"{step} failed")

    def compile(self, source_dir: Path, *, timeout: float) -> None:
        self._record("compile", timeout)

    def test(self, source_dir: Path, *, timeout: float) -> TestReport:
        self._record("test", timeout)
        return self.report

    def package(self, source_dir: Path, *, timeout: float) -> Path:
        self._record("package", timeout)
        target = Path(source_dir) / "target"
        target.mkdir(exist_ok=True)
        jar = target / "app-1.0.0.jar"
        jar.write_bytes(JAR_BYTES)
        return jar


class FakeContainerBuilder:
    """Captures what a real image build would receive."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.builds: list[dict[str, Any]] = []

    def build(
        self,
        recipe_dir: Path,
        *,
        repository: str,
        build_args: Mapping[str, str],
        secrets: Mapping[str, str],
        timeout: float,
    ) -> ImageRef:
        self.builds.append(
            {
                "recipe_dir": Path(recipe_dir),
                "context_files": sorted(p.name for p in Path(recipe_dir).iterdir()),
                "repository": repository,
                "build_args": dict(build_args),
                "secrets": dict(secrets),
                "timeout": timeout,
            }
        )
        if self.fail:
            raise ImageError("docker build exited with 1")
        return ImageRef(repository=repository, image_id="sha256:0123456789abcdef")


class FakeRegistry:
    """Logs every registry interaction, in order, into ``events``."""

    def __init__(self, *, fail_push_tag: str | None = None) -> None:
        self.fail_push_tag = fail_push_tag
        self.events: list[str] = []
        self.logged_in = False

    @contextmanager
    def session(self, credentials: Credentials | None, *, timeout: float) -> Iterator[None]:
        self.events.append("login")
        self.logged_in = True
        try:
            yield
        finally:
            self.logged_in = False
            self.events.append("logout")

    def tag(self, image: ImageRef, tag: str, *, timeout: float) -> ImageRef:
        self.events.append(f"tag {image.reference(tag)}")
        return image.with_tag(tag)

    def push(self, image: ImageRef, tag: str, *, timeout: float) -> None:
        if not self.logged_in:
            raise ImageError("push outside a login session")
        if tag == self.fail_push_tag:
            raise ImageError(f"push of {image.reference(tag)} was denied")
        self.events.append(f"push {image.reference(tag)}")


class FakeOrchestrator:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict[str, Any]] = []

    def trigger_job(
        self, name: str, params: Mapping[str, str], *, wait: bool, timeout: float
    ) -> str | None:
        self.calls.append({"name": name, "params": dict(params), "wait": wait, "timeout": timeout})
        if self.fail:
            raise TriggerError(f"Jenkins refused to trigger {name}: HTTP 500")
        return "https://ci.example.com/queue/item/42/"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def clock() -> FixedClock:
    """A clock frozen on 2026-01-29."""
    return FixedClock(BUILD_INSTANT)


@pytest.fixture
def ledger(tmp_dir: Path) -> RunLedger:
    """Provide a fresh RunLedger backed by a temp SQLite database."""
    return RunLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def state_machine(ledger: RunLedger, clock: FixedClock) -> PromotionStateMachine:
    return PromotionStateMachine(ledger, clock)


@pytest.fixture
def coordinates() -> ArtifactCoordinates:
    return ArtifactCoordinates(group_id="com.chat", artifact_id="app")


@pytest.fixture
def version() -> VersionIdentifier:
    return VersionIdentifier(base_version="1.0.0", build_label="20260129")


@pytest.fixture
def artifact_store(tmp_dir: Path) -> LocalArtifactStore:
    """Provide a reject-policy LocalArtifactStore in a temp directory."""
    return LocalArtifactStore(tmp_dir / "repository")


@pytest.fixture
def source_dir(tmp_dir: Path) -> Path:
    """A minimal application checkout."""
    src = tmp_dir / "checkout"
    (src / "src" / "main" / "java").mkdir(parents=True)
    (src / "pom.xml").write_text("<project/>\n")
    (src / "src" / "main" / "java" / "App.java").write_text("class App {}\n")
    return src


@pytest.fixture
def recipe_dir(tmp_dir: Path) -> Path:
    """Recipe directory holding the allow-listed files plus clutter."""
    recipe = tmp_dir / "docker"
    recipe.mkdir()
    (recipe / "Dockerfile").write_text(
        "FROM eclipse-temurin:21-jre\n"
        "ARG ARTIFACT_URL\n"
        "RUN --mount=type=secret,id=artifact_store_password curl -o /app.jar $ARTIFACT_URL\n"
        "COPY entrypoint.sh /entrypoint.sh\n"
        'ENTRYPOINT ["/entrypoint.sh"]\n'
    )
    entrypoint = recipe / "entrypoint.sh"
    entrypoint.write_text("#!/bin/sh\nexec java -jar /app.jar\n")
    entrypoint.chmod(0o755)
    (recipe / "README.md").write_text("notes\n")
    (recipe / ".env").write_text("DB_PASSWORD=hunter2\n")
    return recipe


@pytest.fixture
def make_config(tmp_dir: Path) -> Callable[..., PipelineConfig]:
    """Factory fixture: a PipelineConfig rooted in the temp directory."""

    def _factory(**overrides: Any) -> PipelineConfig:
        defaults: dict[str, Any] = {
            "ledger_db_path": tmp_dir / "ledger.db",
            "staging_dir": tmp_dir / "staging",
            "conflict_policy": ConflictPolicy.REJECT,
        }
        defaults.update(overrides)
        return PipelineConfig(**defaults)

    return _factory


@pytest.fixture
def make_controller(
    tmp_dir: Path,
    clock: FixedClock,
    make_config: Callable[..., PipelineConfig],
) -> Callable[..., PromotionController]:
    """Factory fixture: a controller wired to fakes and a local store.

    Keyword overrides replace individual collaborators; anything else is
    passed to ``make_config``.
    """

    def _factory(**overrides: Any) -> PromotionController:
        collaborators: dict[str, Any] = {
            "build_tool": FakeBuildTool(),
            "container_builder": FakeContainerBuilder(),
            "registry": FakeRegistry(),
            "orchestrator": FakeOrchestrator(),
            "clock": clock,
        }
        for name in list(collaborators) + ["store"]:
            if name in overrides:
                collaborators[name] = overrides.pop(name)
        config = make_config(**overrides)
        if "store" not in collaborators:
            collaborators["store"] = LocalArtifactStore(
                tmp_dir / "repository", config.conflict_policy
            )
        return PromotionController(config, **collaborators)

    return _factory


@pytest.fixture
def controller(make_controller: Callable[..., PromotionController]) -> PromotionController:
    """Convenience: a ready-made controller with test defaults."""
    return make_controller(downstream_job="chat-app-image")


@pytest.fixture
def fakes() -> SimpleNamespace:
    """The fake collaborator classes, for tests that configure their own."""
    return SimpleNamespace(
        BuildTool=FakeBuildTool,
        ContainerBuilder=FakeContainerBuilder,
        Registry=FakeRegistry,
        Orchestrator=FakeOrchestrator,
    )

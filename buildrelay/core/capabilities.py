"""Capability interfaces of the external collaborators.

The controller only talks to these protocols.  Every blocking call takes a
caller-supplied ``timeout`` in seconds.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol, runtime_checkable

from buildrelay.models.artifacts import (
    ArtifactCoordinates,
    ArtifactKind,
    ArtifactRef,
    ImageRef,
)
from buildrelay.models.config import Credentials
from buildrelay.models.reports import TestReport
from buildrelay.models.versioning import VersionIdentifier


@runtime_checkable
class BuildTool(Protocol):
    """Compiles, tests and packages the application source."""

    def compile(self, source_dir: Path, *, timeout: float) -> None: ...

    def test(self, source_dir: Path, *, timeout: float) -> TestReport: ...

    def package(self, source_dir: Path, *, timeout: float) -> Path:
        """Return the path of the built application jar."""
        ...


@runtime_checkable
class ArtifactStore(Protocol):
    """Repository addressed by ``{root}/{group}/{artifact}/{version}/{file}``."""

    def location(
        self, coordinates: ArtifactCoordinates, kind: ArtifactKind, version: VersionIdentifier
    ) -> str: ...

    def exists(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bool: ...

    def upload(
        self,
        coordinates: ArtifactCoordinates,
        ref: ArtifactRef,
        data: bytes,
        *,
        timeout: float,
    ) -> ArtifactRef: ...

    def download(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bytes: ...

    def delete(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> None: ...


@runtime_checkable
class ContainerBuilder(Protocol):
    """Builds an image from a recipe directory.

    ``build_args`` end up visible in image metadata; ``secrets`` are
    exposed to the build only and never reach a layer.
    """

    def build(
        self,
        recipe_dir: Path,
        *,
        repository: str,
        build_args: Mapping[str, str],
        secrets: Mapping[str, str],
        timeout: float,
    ) -> ImageRef: ...


@runtime_checkable
class Registry(Protocol):
    """Tags and pushes images.  Pushes happen inside a login session."""

    def session(
        self, credentials: Credentials | None, *, timeout: float
    ) -> AbstractContextManager[None]: ...

    def tag(self, image: ImageRef, tag: str, *, timeout: float) -> ImageRef: ...

    def push(self, image: ImageRef, tag: str, *, timeout: float) -> None: ...


@runtime_checkable
class CIOrchestrator(Protocol):
    """Triggers CI jobs by name."""

    def trigger_job(
        self, name: str, params: Mapping[str, str], *, wait: bool, timeout: float
    ) -> str | None:
        """Return a queue/build reference if the orchestrator gives one."""
        ...


__all__ = [
    "ArtifactStore",
    "BuildTool",
    "CIOrchestrator",
    "ContainerBuilder",
    "Registry",
]

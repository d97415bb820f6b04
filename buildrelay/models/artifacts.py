"""Artifact identity models and naming conventions.

``(kind, version)`` is the unique key of an artifact within a repository.
File names and store paths are bit-exact external contracts:

- Jar:            ``{artifact_id}-{full}.jar``
- Context bundle: ``docker-context-{full}.zip``
- Handoff:        ``handoff-{full}.json``
- Store path:     ``{repo_root}/{group path}/{artifact_id}/{full}/{filename}``
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

from buildrelay.models.versioning import VersionIdentifier

LATEST_TAG = "latest"

# Files allowed in the context bundle.  Explicit allow-list, never a snapshot.
DEFAULT_RECIPE_FILES: tuple[str, ...] = ("Dockerfile", "entrypoint.sh")


class ArtifactKind(str, Enum):
    """Kinds of object the pipeline publishes."""

    JAR = "jar"
    CONTEXT_BUNDLE = "context_bundle"
    IMAGE = "image"
    HANDOFF = "handoff"


class ArtifactCoordinates(BaseModel):
    """Repository coordinates of the application being promoted."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    artifact_id: str

    @field_validator("group_id", "artifact_id")
    @classmethod
    def _no_path_separators(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or "\\" in value or ".." in value:
            raise ValueError(f"invalid coordinate {value!r}")
        return value

    @property
    def group_path(self) -> str:
        """``com.chat`` -> ``com/chat`` (Maven repository layout)."""
        return self.group_id.replace(".", "/")

    def filename(self, kind: ArtifactKind, version: VersionIdentifier) -> str:
        """Return the bit-exact file name for an artifact kind."""
        if kind is ArtifactKind.JAR:
            return f"{self.artifact_id}-{version.full}.jar"
        if kind is ArtifactKind.CONTEXT_BUNDLE:
            return f"docker-context-{version.full}.zip"
        if kind is ArtifactKind.HANDOFF:
            return f"handoff-{version.full}.json"
        raise ValueError(f"{kind.value} artifacts are not stored as files")

    def store_path(self, kind: ArtifactKind, version: VersionIdentifier) -> str:
        """Relative store path below the repository root."""
        return "/".join(
            [self.group_path, self.artifact_id, version.full, self.filename(kind, version)]
        )


class ArtifactRef(BaseModel):
    """One published (or locally staged) object."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    name: str
    version: VersionIdentifier
    location: str  # URI: file://... or https://...
    sha256: str = ""
    size_bytes: int = 0

    @property
    def key(self) -> tuple[ArtifactKind, str]:
        return (self.kind, self.version.full)


class ImageRef(BaseModel):
    """A container image produced by the builder."""

    model_config = ConfigDict(frozen=True)

    repository: str  # e.g. "registry.example.com/chat-app"
    image_id: str = ""
    tags: tuple[str, ...] = ()

    def reference(self, tag: str) -> str:
        return f"{self.repository}:{tag}"

    def with_tag(self, tag: str) -> ImageRef:
        if tag in self.tags:
            return self
        return self.model_copy(update={"tags": (*self.tags, tag)})


def image_tags(version: VersionIdentifier) -> tuple[str, str]:
    """The two tags every pushed image carries: ``{full}`` and ``latest``."""
    return (version.full, LATEST_TAG)

"""Pipeline configuration models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from buildrelay.models.artifacts import DEFAULT_RECIPE_FILES, ArtifactCoordinates


class ConflictPolicy(str, Enum):
    """What publishing an existing ``(kind, version)`` key does."""

    REJECT = "reject"  # raise ConflictError, upload nothing
    OVERWRITE = "overwrite"  # replace the same keys deterministically


class Credentials(BaseModel):
    """Username/password pair.  The password never prints."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr


class Timeouts(BaseModel):
    """Seconds allowed for each blocking collaborator call."""

    model_config = ConfigDict(frozen=True)

    compile: float = 900.0
    test: float = 1800.0
    package: float = 900.0
    transfer: float = 300.0
    image_build: float = 1800.0
    tag: float = 60.0
    push: float = 900.0
    registry_login: float = 60.0
    trigger: float = 30.0

    @field_validator("*")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value


class PipelineConfig(BaseModel):
    """Project-level configuration for a promotion pipeline."""

    model_config = ConfigDict(frozen=True)

    coordinates: ArtifactCoordinates = ArtifactCoordinates(
        group_id="com.chat", artifact_id="app"
    )
    image_repository: str = "chat-app"
    conflict_policy: ConflictPolicy = ConflictPolicy.REJECT
    recipe_files: tuple[str, ...] = DEFAULT_RECIPE_FILES
    timeouts: Timeouts = Timeouts()
    ledger_db_path: Path = Path(".buildrelay/ledger.db")
    staging_dir: Path = Path(".buildrelay/staging")
    # Pipeline 2 auto-trigger (fire-and-forget); empty disables it.
    downstream_job: str = ""
    store_credentials: Credentials | None = None
    registry_credentials: Credentials | None = None
    extra_build_args: dict[str, str] = Field(default_factory=dict)

    @field_validator("recipe_files")
    @classmethod
    def _plain_file_names(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("recipe_files must not be empty")
        for name in value:
            if "/" in name or "\\" in name or name in ("", ".", ".."):
                raise ValueError(f"recipe file {name!r} must be a plain file name")
        if len(set(value)) != len(value):
            raise ValueError("recipe_files contains duplicates")
        return value

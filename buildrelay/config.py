"""Runtime configuration: env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
BUILDRELAY_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from buildrelay.models.artifacts import DEFAULT_RECIPE_FILES, ArtifactCoordinates
from buildrelay.models.config import (
    ConflictPolicy,
    Credentials,
    PipelineConfig,
    Timeouts,
)


def _credentials(username: str, password: SecretStr) -> Credentials | None:
    if not username:
        return None
    return Credentials(username=username, password=password)


class RelayConfig(BaseSettings):
    """Runtime configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BUILDRELAY_STORE_URL=https://artifactory.example.com/artifactory
        export BUILDRELAY_STORE_USERNAME=ci
        export BUILDRELAY_STORE_PASSWORD=...
        export BUILDRELAY_CONFLICT_POLICY=overwrite

    Or via .env file::

        BUILDRELAY_GROUP_ID=com.chat
        BUILDRELAY_ARTIFACT_ID=app
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BUILDRELAY_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Local state
    ledger_path: Path = Path(".buildrelay/ledger.db")
    staging_path: Path = Path(".buildrelay/staging")
    artifact_store_path: Path = Path(".buildrelay/repository")

    # Project coordinates
    group_id: str = "com.chat"
    artifact_id: str = "app"
    image_repository: str = "chat-app"
    recipe_files: list[str] = list(DEFAULT_RECIPE_FILES)
    conflict_policy: ConflictPolicy = ConflictPolicy.REJECT

    # Artifact store; empty URL selects the local store
    store_url: str = ""
    store_repo_root: str = "libs-release-local"
    store_username: str = ""
    store_password: SecretStr = SecretStr("")
    store_retries: int = 3

    # Build tool and container engine
    maven_executable: str = "mvn"
    docker_executable: str = "docker"
    registry: str = ""
    registry_username: str = ""
    registry_password: SecretStr = SecretStr("")

    # CI orchestrator (pipeline-2 auto-trigger)
    jenkins_url: str = ""
    jenkins_username: str = ""
    jenkins_token: SecretStr = SecretStr("")
    downstream_job: str = ""

    # Timeouts (seconds)
    compile_timeout: float = 900.0
    test_timeout: float = 1800.0
    package_timeout: float = 900.0
    transfer_timeout: float = 300.0
    image_build_timeout: float = 1800.0
    tag_timeout: float = 60.0
    push_timeout: float = 900.0
    registry_login_timeout: float = 60.0
    trigger_timeout: float = 30.0

    @property
    def store_credentials(self) -> Credentials | None:
        return _credentials(self.store_username, self.store_password)

    @property
    def registry_credentials(self) -> Credentials | None:
        return _credentials(self.registry_username, self.registry_password)

    @property
    def jenkins_credentials(self) -> Credentials | None:
        return _credentials(self.jenkins_username, self.jenkins_token)

    def timeouts(self) -> Timeouts:
        return Timeouts(
            compile=self.compile_timeout,
            test=self.test_timeout,
            package=self.package_timeout,
            transfer=self.transfer_timeout,
            image_build=self.image_build_timeout,
            tag=self.tag_timeout,
            push=self.push_timeout,
            registry_login=self.registry_login_timeout,
            trigger=self.trigger_timeout,
        )

    def pipeline_config(self, **overrides: object) -> PipelineConfig:
        """Project-level ``PipelineConfig`` derived from these settings."""
        values: dict[str, object] = {
            "coordinates": ArtifactCoordinates(
                group_id=self.group_id, artifact_id=self.artifact_id
            ),
            "image_repository": self.image_repository,
            "conflict_policy": self.conflict_policy,
            "recipe_files": tuple(self.recipe_files),
            "timeouts": self.timeouts(),
            "ledger_db_path": self.ledger_path,
            "staging_dir": self.staging_path,
            "downstream_job": self.downstream_job if self.jenkins_url else "",
            "store_credentials": self.store_credentials,
            "registry_credentials": self.registry_credentials,
        }
        values.update(overrides)
        return PipelineConfig(**values)

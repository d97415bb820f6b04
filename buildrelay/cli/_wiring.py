"""Build a ``PromotionController`` and its adapters from ``RelayConfig``."""

from __future__ import annotations

from buildrelay.adapters.docker_cli import DockerCli
from buildrelay.adapters.http_store import HttpArtifactStore
from buildrelay.adapters.jenkins import JenkinsTrigger
from buildrelay.adapters.maven import MavenBuildTool
from buildrelay.config import RelayConfig
from buildrelay.core.artifact_store import LocalArtifactStore
from buildrelay.core.capabilities import ArtifactStore
from buildrelay.core.controller import PromotionController
from buildrelay.models.config import PipelineConfig


def make_store(settings: RelayConfig) -> ArtifactStore:
    """HTTP store when a URL is configured, otherwise the local repository."""
    if settings.store_url:
        return HttpArtifactStore(
            settings.store_url,
            settings.store_repo_root,
            credentials=settings.store_credentials,
            policy=settings.conflict_policy,
            retries=settings.store_retries,
        )
    return LocalArtifactStore(settings.artifact_store_path, settings.conflict_policy)


def make_controller(
    settings: RelayConfig, pipeline: PipelineConfig | None = None
) -> PromotionController:
    docker = DockerCli(settings.registry, executable=settings.docker_executable)
    orchestrator = None
    if settings.jenkins_url:
        orchestrator = JenkinsTrigger(
            settings.jenkins_url, credentials=settings.jenkins_credentials
        )
    return PromotionController(
        pipeline or settings.pipeline_config(),
        store=make_store(settings),
        build_tool=MavenBuildTool(settings.maven_executable),
        container_builder=docker,
        registry=docker,
        orchestrator=orchestrator,
    )

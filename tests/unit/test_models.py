"""Tests for the Pydantic data models: naming, runs, handoff, reports."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from buildrelay.models.artifacts import (
    ArtifactCoordinates,
    ArtifactKind,
    ArtifactRef,
    ImageRef,
    image_tags,
)
from buildrelay.models.config import Credentials, PipelineConfig, Timeouts
from buildrelay.models.reports import TestReport
from buildrelay.models.runs import HandoffPayload, PipelineRun, success_path_between
from buildrelay.models.stages import (
    PROMOTION_ORDER,
    VALID_TRANSITIONS,
    PromotionState,
    StateTransition,
    next_state,
)
from buildrelay.models.versioning import VersionIdentifier


class TestArtifactNaming:
    def test_jar_name(self, coordinates, version):
        assert coordinates.filename(ArtifactKind.JAR, version) == "app-1.0.0-20260129.jar"

    def test_bundle_name(self, coordinates, version):
        assert (
            coordinates.filename(ArtifactKind.CONTEXT_BUNDLE, version)
            == "docker-context-1.0.0-20260129.zip"
        )

    def test_handoff_name(self, coordinates, version):
        assert coordinates.filename(ArtifactKind.HANDOFF, version) == "handoff-1.0.0-20260129.json"

    def test_images_have_no_file_name(self, coordinates, version):
        with pytest.raises(ValueError):
            coordinates.filename(ArtifactKind.IMAGE, version)

    def test_store_path_follows_repository_layout(self, coordinates, version):
        assert (
            coordinates.store_path(ArtifactKind.JAR, version)
            == "com/chat/app/1.0.0-20260129/app-1.0.0-20260129.jar"
        )

    @pytest.mark.parametrize("bad", ["", "com/chat", "..", "com..chat", "a\\b"])
    def test_coordinates_reject_path_tricks(self, bad: str):
        with pytest.raises(ValueError):
            ArtifactCoordinates(group_id=bad, artifact_id="app")

    def test_image_tags_are_full_and_latest(self, version):
        assert image_tags(version) == ("1.0.0-20260129", "latest")

    def test_artifact_key_is_kind_and_version(self, version):
        ref = ArtifactRef(kind=ArtifactKind.JAR, name="app.jar", version=version, location="x")
        assert ref.key == (ArtifactKind.JAR, "1.0.0-20260129")


class TestImageRef:
    def test_reference(self):
        assert ImageRef(repository="chat-app").reference("latest") == "chat-app:latest"

    def test_with_tag_is_idempotent(self):
        image = ImageRef(repository="chat-app").with_tag("latest")
        assert image.with_tag("latest").tags == ("latest",)


class TestStages:
    def test_order_has_ten_states(self):
        assert len(PROMOTION_ORDER) == 10
        assert PROMOTION_ORDER[0] is PromotionState.REQUESTED
        assert PROMOTION_ORDER[-1] is PromotionState.PUSHED

    def test_each_state_has_one_successor_plus_failed(self):
        for current, successor in zip(PROMOTION_ORDER, PROMOTION_ORDER[1:]):
            assert VALID_TRANSITIONS[current] == {successor, PromotionState.FAILED}

    def test_terminal_states_have_no_exits(self):
        assert VALID_TRANSITIONS[PromotionState.PUSHED] == set()
        assert VALID_TRANSITIONS[PromotionState.FAILED] == set()

    def test_next_state(self):
        assert next_state(PromotionState.PUBLISHED) is PromotionState.DOWNLOADED
        assert next_state(PromotionState.PUSHED) is None
        assert next_state(PromotionState.FAILED) is None

    def test_success_path_between(self):
        assert success_path_between(PromotionState.PUBLISHED, PromotionState.PUSHED) == [
            PromotionState.DOWNLOADED,
            PromotionState.IMAGE_BUILT,
            PromotionState.TAGGED,
            PromotionState.PUSHED,
        ]


class TestPipelineRun:
    def _run(self, version, coordinates, **kwargs) -> PipelineRun:
        return PipelineRun(
            run_id="br-test-001", version=version, coordinates=coordinates, **kwargs
        )

    def test_defaults(self, version, coordinates):
        run = self._run(version, coordinates)
        assert run.state is PromotionState.REQUESTED
        assert run.history == ()
        assert not run.is_terminal
        assert run.visited_states == [PromotionState.REQUESTED]

    def test_failure_detail(self, version, coordinates):
        run = self._run(
            version,
            coordinates,
            state=PromotionState.FAILED,
            history=(
                StateTransition(
                    from_state=PromotionState.REQUESTED,
                    to_state=PromotionState.FAILED,
                    detail="BuildError: boom",
                ),
            ),
        )
        assert run.failed and run.is_terminal
        assert run.failure_detail() == "BuildError: boom"

    def test_artifact_returns_latest_of_kind(self, version, coordinates):
        first = ArtifactRef(kind=ArtifactKind.JAR, name="a", version=version, location="1")
        second = ArtifactRef(kind=ArtifactKind.JAR, name="a", version=version, location="2")
        run = self._run(version, coordinates, artifacts=(first, second))
        assert run.artifact(ArtifactKind.JAR) == second
        assert run.artifact(ArtifactKind.IMAGE) is None


class TestHandoffPayload:
    def test_for_run(self, version, coordinates):
        run = PipelineRun(run_id="r", version=version, coordinates=coordinates)
        payload = HandoffPayload.for_run(run)
        assert payload.model_dump() == {
            "full": "1.0.0-20260129",
            "build_label": "20260129",
            "artifact_id": "app",
            "group_id": "com.chat",
        }

    def test_job_params(self):
        payload = HandoffPayload(
            full="1.0.0-20260129", build_label="20260129", artifact_id="app", group_id="com.chat"
        )
        assert payload.to_job_params() == {
            "FULL_VERSION": "1.0.0-20260129",
            "BUILD_LABEL": "20260129",
            "ARTIFACT_ID": "app",
            "GROUP_ID": "com.chat",
        }

    def test_label_must_match_full(self):
        with pytest.raises(ValueError, match="does not end with build label"):
            HandoffPayload(
                full="1.0.0-20260129",
                build_label="20260130",
                artifact_id="app",
                group_id="com.chat",
            )


class TestTestReport:
    def test_passed(self):
        assert TestReport(tests_run=3).passed
        assert not TestReport(tests_run=3, failures=1).passed
        assert not TestReport(tests_run=3, errors=1).passed

    def test_merge_sums_counts(self):
        merged = TestReport(tests_run=2, failures=1, report_files=["a"]).merge(
            TestReport(tests_run=3, skipped=1, report_files=["b"])
        )
        assert merged.summary() == "tests=5 failures=1 errors=0 skipped=1"
        assert merged.report_files == ["a", "b"]


class TestConfigModels:
    def test_credentials_hide_password(self):
        creds = Credentials(username="ci", password="s3cret")
        assert "s3cret" not in repr(creds)
        assert "s3cret" not in str(creds.model_dump())
        assert creds.password.get_secret_value() == "s3cret"

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValueError):
            Timeouts(push=0)

    def test_recipe_files_must_be_plain_names(self):
        with pytest.raises(ValueError):
            PipelineConfig(recipe_files=("Dockerfile", "../pom.xml"))
        with pytest.raises(ValueError):
            PipelineConfig(recipe_files=())
        with pytest.raises(ValueError):
            PipelineConfig(recipe_files=("Dockerfile", "Dockerfile"))

    def test_default_pipeline_config(self):
        config = PipelineConfig()
        assert config.coordinates.artifact_id == "app"
        assert config.image_repository == "chat-app"
        assert config.recipe_files == ("Dockerfile", "entrypoint.sh")


def test_version_identifier_is_hashable():
    seen = {VersionIdentifier(base_version="1.0.0", build_label="20260129")}
    assert VersionIdentifier.parse("1.0.0-20260129") in seen


def test_state_transition_defaults_to_utc_now():
    t = StateTransition(from_state=PromotionState.REQUESTED, to_state=PromotionState.COMPILED)
    assert t.timestamp.tzinfo is not None
    assert t.timestamp <= datetime.now(timezone.utc)

"""Tests for the filesystem artifact store."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildrelay.core.artifact_store import LocalArtifactStore
from buildrelay.core.errors import ConflictError, TransferError
from buildrelay.core.hasher import sha256_hex
from buildrelay.models.artifacts import ArtifactKind, ArtifactRef
from buildrelay.models.config import ConflictPolicy


def _ref(coordinates, version, kind: ArtifactKind = ArtifactKind.JAR) -> ArtifactRef:
    return ArtifactRef(
        kind=kind,
        name=coordinates.filename(kind, version),
        version=version,
        location="",
    )


class TestLocalArtifactStore:
    def test_upload_uses_repository_layout(self, artifact_store, coordinates, version, tmp_dir):
        stored = artifact_store.upload(
            coordinates, _ref(coordinates, version), b"jar-bytes", timeout=5
        )
        expected = tmp_dir / "repository/com/chat/app/1.0.0-20260129/app-1.0.0-20260129.jar"
        assert expected.read_bytes() == b"jar-bytes"
        assert stored.location == expected.resolve().as_uri()
        assert stored.sha256 == sha256_hex(b"jar-bytes")
        assert stored.size_bytes == 9

    def test_location_matches_upload(self, artifact_store, coordinates, version):
        stored = artifact_store.upload(coordinates, _ref(coordinates, version), b"x", timeout=5)
        assert artifact_store.location(coordinates, ArtifactKind.JAR, version) == stored.location

    def test_exists(self, artifact_store, coordinates, version):
        assert not artifact_store.exists(coordinates, ArtifactKind.JAR, version, timeout=5)
        artifact_store.upload(coordinates, _ref(coordinates, version), b"x", timeout=5)
        assert artifact_store.exists(coordinates, ArtifactKind.JAR, version, timeout=5)
        assert not artifact_store.exists(
            coordinates, ArtifactKind.CONTEXT_BUNDLE, version, timeout=5
        )

    def test_download_round_trip(self, artifact_store, coordinates, version):
        artifact_store.upload(
            coordinates, _ref(coordinates, version, ArtifactKind.CONTEXT_BUNDLE), b"zip", timeout=5
        )
        assert (
            artifact_store.download(coordinates, ArtifactKind.CONTEXT_BUNDLE, version, timeout=5)
            == b"zip"
        )

    def test_download_missing_raises_transfer_error(self, artifact_store, coordinates, version):
        with pytest.raises(TransferError, match="not found"):
            artifact_store.download(coordinates, ArtifactKind.JAR, version, timeout=5)

    def test_reject_policy_refuses_second_upload(self, artifact_store, coordinates, version):
        artifact_store.upload(coordinates, _ref(coordinates, version), b"first", timeout=5)
        with pytest.raises(ConflictError, match="already exists"):
            artifact_store.upload(coordinates, _ref(coordinates, version), b"second", timeout=5)
        assert (
            artifact_store.download(coordinates, ArtifactKind.JAR, version, timeout=5) == b"first"
        )

    def test_overwrite_policy_replaces(self, tmp_dir: Path, coordinates, version):
        store = LocalArtifactStore(tmp_dir / "repo", ConflictPolicy.OVERWRITE)
        store.upload(coordinates, _ref(coordinates, version), b"first", timeout=5)
        store.upload(coordinates, _ref(coordinates, version), b"second", timeout=5)
        assert store.download(coordinates, ArtifactKind.JAR, version, timeout=5) == b"second"

    def test_no_temporary_files_left(self, artifact_store, coordinates, version, tmp_dir):
        artifact_store.upload(coordinates, _ref(coordinates, version), b"a", timeout=5)
        with pytest.raises(ConflictError):
            artifact_store.upload(coordinates, _ref(coordinates, version), b"b", timeout=5)
        leftovers = list((tmp_dir / "repository").rglob("*.part"))
        assert leftovers == []

    def test_delete(self, artifact_store, coordinates, version):
        artifact_store.upload(coordinates, _ref(coordinates, version), b"x", timeout=5)
        artifact_store.delete(coordinates, ArtifactKind.JAR, version, timeout=5)
        assert not artifact_store.exists(coordinates, ArtifactKind.JAR, version, timeout=5)
        # Deleting a missing key is a no-op.
        artifact_store.delete(coordinates, ArtifactKind.JAR, version, timeout=5)

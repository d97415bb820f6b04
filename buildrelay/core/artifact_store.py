"""Filesystem artifact store following the repository path convention.

Storage layout: {base_path}/{group path}/{artifact_id}/{full}/{filename}

Uploads are written to a temporary file beside the target and then
published atomically, so a reader never sees a partial object under the
final key.  Under the reject policy the publish is an exclusive hard link:
two concurrent runs racing for the same key get exactly one winner.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from buildrelay.core.errors import ConflictError, TransferError
from buildrelay.core.hasher import sha256_hex
from buildrelay.models.artifacts import ArtifactCoordinates, ArtifactKind, ArtifactRef
from buildrelay.models.config import ConflictPolicy
from buildrelay.models.versioning import VersionIdentifier

logger = logging.getLogger(__name__)


class LocalArtifactStore:
    """Artifact store rooted at a local directory.

    Parameters
    ----------
    base_path:
        Repository root.
    policy:
        Behaviour when a key already exists.
    """

    def __init__(
        self, base_path: Path, policy: ConflictPolicy = ConflictPolicy.REJECT
    ) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)
        self.policy = policy

    def _artifact_path(
        self, coordinates: ArtifactCoordinates, kind: ArtifactKind, version: VersionIdentifier
    ) -> Path:
        return self._base / coordinates.store_path(kind, version)

    def location(
        self, coordinates: ArtifactCoordinates, kind: ArtifactKind, version: VersionIdentifier
    ) -> str:
        return self._artifact_path(coordinates, kind, version).resolve().as_uri()

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    def exists(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bool:
        return self._artifact_path(coordinates, kind, version).is_file()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(
        self,
        coordinates: ArtifactCoordinates,
        ref: ArtifactRef,
        data: bytes,
        *,
        timeout: float,
    ) -> ArtifactRef:
        """Publish *data* under the key of *ref* and return the stored ref."""
        path = self._artifact_path(coordinates, ref.kind, ref.version)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())

            if self.policy is ConflictPolicy.REJECT:
                try:
                    os.link(tmp, path)
                except FileExistsError:
                    raise ConflictError(
                        f"{ref.kind.value} {ref.version.full} already exists at {path}"
                    ) from None
            else:
                os.replace(tmp, path)
        except OSError as exc:
            raise TransferError(f"Upload of {path.name} failed: {exc}") from exc
        finally:
            tmp.unlink(missing_ok=True)

        logger.info("Stored %s (%d bytes)", path, len(data))
        return ref.model_copy(
            update={
                "location": path.resolve().as_uri(),
                "sha256": sha256_hex(data),
                "size_bytes": len(data),
            }
        )

    # ------------------------------------------------------------------
    # Download / delete
    # ------------------------------------------------------------------

    def download(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bytes:
        path = self._artifact_path(coordinates, kind, version)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise TransferError(f"Artifact not found: {path}") from None
        except OSError as exc:
            raise TransferError(f"Download of {path} failed: {exc}") from exc

    def delete(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> None:
        path = self._artifact_path(coordinates, kind, version)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise TransferError(f"Delete of {path} failed: {exc}") from exc
        logger.info("Deleted %s", path)

"""HTTP artifact store client (Artifactory-style deploy/fetch REST API).

Objects live at ``{base_url}/{repo_root}/{group path}/{artifact_id}/{full}/{file}``:
``PUT`` deploys, ``GET`` fetches, ``HEAD`` checks, ``DELETE`` removes.

Connection-level retries are configured on the transport; that is the only
retry in the system.  Timeouts and 5xx responses produce a retriable
``TransferError`` so an operator (or an outer job) can decide to re-run.
"""

from __future__ import annotations

import hashlib
import logging

import httpx

from buildrelay.core.errors import ConflictError, TransferError
from buildrelay.models.artifacts import ArtifactCoordinates, ArtifactKind, ArtifactRef
from buildrelay.models.config import ConflictPolicy, Credentials
from buildrelay.models.versioning import VersionIdentifier

logger = logging.getLogger(__name__)


class HttpArtifactStore:
    """Artifact store reached over HTTP.

    Parameters
    ----------
    base_url:
        Server URL, e.g. ``https://artifactory.example.com/artifactory``.
    repo_root:
        Repository key below the base URL, e.g. ``libs-release-local``.
    credentials:
        Basic-auth credentials, if the repository needs them.
    policy:
        Conflict policy; under REJECT an existing key is never overwritten.
    retries:
        Connection retries performed by the HTTP transport.
    transport:
        Injected transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        repo_root: str,
        *,
        credentials: Credentials | None = None,
        policy: ConflictPolicy = ConflictPolicy.REJECT,
        retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._repo_root = repo_root.strip("/")
        self.policy = policy
        auth = None
        if credentials is not None:
            auth = httpx.BasicAuth(
                credentials.username, credentials.password.get_secret_value()
            )
        self._client = httpx.Client(
            base_url=self._base_url,
            auth=auth,
            transport=transport or httpx.HTTPTransport(retries=retries),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpArtifactStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def _path(
        self, coordinates: ArtifactCoordinates, kind: ArtifactKind, version: VersionIdentifier
    ) -> str:
        return f"/{self._repo_root}/{coordinates.store_path(kind, version)}"

    def location(
        self, coordinates: ArtifactCoordinates, kind: ArtifactKind, version: VersionIdentifier
    ) -> str:
        return f"{self._base_url}{self._path(coordinates, kind, version)}"

    def _request(
        self, method: str, path: str, *, timeout: float, **kwargs: object
    ) -> httpx.Response:
        try:
            return self._client.request(method, path, timeout=timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransferError(
                f"{method} {path} timed out after {timeout}s", retriable=True
            ) from exc
        except httpx.TransportError as exc:
            raise TransferError(f"{method} {path} failed: {exc}", retriable=True) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        raise TransferError(
            f"{action} {response.request.url} returned HTTP {status}",
            retriable=status >= 500 or status == 429,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def exists(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bool:
        response = self._request(
            "HEAD", self._path(coordinates, kind, version), timeout=timeout
        )
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "HEAD")
        return True

    def upload(
        self,
        coordinates: ArtifactCoordinates,
        ref: ArtifactRef,
        data: bytes,
        *,
        timeout: float,
    ) -> ArtifactRef:
        path = self._path(coordinates, ref.kind, ref.version)
        if self.policy is ConflictPolicy.REJECT and self.exists(
            coordinates, ref.kind, ref.version, timeout=timeout
        ):
            raise ConflictError(f"{ref.kind.value} {ref.version.full} already exists at {path}")

        sha256 = hashlib.sha256(data).hexdigest()
        response = self._request(
            "PUT",
            path,
            timeout=timeout,
            content=data,
            headers={
                "X-Checksum-Sha256": sha256,
                "X-Checksum-Sha1": hashlib.sha1(data).hexdigest(),
                "Content-Type": "application/octet-stream",
            },
        )
        if response.status_code == 409:
            raise ConflictError(f"{path} was rejected by the server as a duplicate")
        self._raise_for_status(response, "PUT")
        logger.info("Deployed %s (%d bytes)", path, len(data))
        return ref.model_copy(
            update={
                "location": self.location(coordinates, ref.kind, ref.version),
                "sha256": sha256,
                "size_bytes": len(data),
            }
        )

    def download(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> bytes:
        path = self._path(coordinates, kind, version)
        response = self._request("GET", path, timeout=timeout)
        if response.status_code == 404:
            raise TransferError(f"Artifact not found: {path}")
        self._raise_for_status(response, "GET")
        return response.content

    def delete(
        self,
        coordinates: ArtifactCoordinates,
        kind: ArtifactKind,
        version: VersionIdentifier,
        *,
        timeout: float,
    ) -> None:
        path = self._path(coordinates, kind, version)
        response = self._request("DELETE", path, timeout=timeout)
        if response.status_code == 404:
            return
        self._raise_for_status(response, "DELETE")
        logger.info("Deleted %s", path)

"""Jenkins job trigger (CI orchestrator adapter).

Queues a parameterised job with ``POST /job/{name}/buildWithParameters``.
With ``wait=False`` the call returns as soon as Jenkins answers with the
queue item location; the triggered build is never awaited.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from urllib.parse import quote

import httpx

from buildrelay.core.errors import TriggerError
from buildrelay.models.config import Credentials

logger = logging.getLogger(__name__)


class JenkinsTrigger:
    """``CIOrchestrator`` backed by the Jenkins remote API.

    Parameters
    ----------
    base_url:
        Jenkins root URL.
    credentials:
        User and API token.
    poll_interval:
        Seconds between queue polls when ``wait=True``.
    transport:
        Injected transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        credentials: Credentials | None = None,
        poll_interval: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        auth = None
        if credentials is not None:
            auth = httpx.BasicAuth(
                credentials.username, credentials.password.get_secret_value()
            )
        self.poll_interval = poll_interval
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"), auth=auth, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def job_path(name: str) -> str:
        """``folder/job`` -> ``/job/folder/job/job``."""
        return "".join(f"/job/{quote(part, safe='')}" for part in name.split("/") if part)

    def trigger_job(
        self,
        name: str,
        params: Mapping[str, str],
        *,
        wait: bool,
        timeout: float,
    ) -> str | None:
        """Queue *name*; return the queue item URL Jenkins reports."""
        path = f"{self.job_path(name)}/buildWithParameters"
        try:
            response = self._client.post(path, params=dict(params), timeout=timeout)
        except httpx.HTTPError as exc:
            raise TriggerError(f"Could not reach Jenkins to trigger {name}: {exc}") from exc
        if response.status_code not in (200, 201):
            raise TriggerError(
                f"Jenkins refused to trigger {name}: HTTP {response.status_code}"
            )
        queue_url = response.headers.get("Location")
        logger.info("Queued %s at %s", name, queue_url)
        if wait and queue_url:
            return self._wait_for_start(queue_url, timeout)
        return queue_url

    def _wait_for_start(self, queue_url: str, timeout: float) -> str:
        """Poll the queue item until Jenkins assigns a build URL."""
        deadline = time.monotonic() + timeout
        api = queue_url.rstrip("/") + "/api/json"
        while time.monotonic() < deadline:
            try:
                response = self._client.get(api, timeout=timeout)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise TriggerError(f"Could not poll {queue_url}: {exc}") from exc
            item = response.json()
            if item.get("cancelled"):
                raise TriggerError(f"Queue item {queue_url} was cancelled")
            executable = item.get("executable") or {}
            if executable.get("url"):
                return executable["url"]
            time.sleep(self.poll_interval)
        raise TriggerError(f"Job at {queue_url} did not start within {timeout}s")

"""Docker CLI adapter: container builder and registry client.

Build arguments go on the command line and end up in image metadata, so
only identifiers travel that way.  Credentials are handed to BuildKit as
``--secret`` mounts sourced from the subprocess environment; they are
visible to the ``RUN --mount=type=secret`` step that fetches the jar and
never written to a layer.  Registry passwords go through
``--password-stdin``.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from buildrelay.adapters.process import run_command
from buildrelay.core.errors import ImageError
from buildrelay.models.artifacts import ImageRef
from buildrelay.models.config import Credentials

logger = logging.getLogger(__name__)


def secret_env_name(secret_id: str) -> str:
    return "BUILDRELAY_SECRET_" + secret_id.upper().replace("-", "_")


class DockerCli:
    """``ContainerBuilder`` and ``Registry`` backed by the ``docker`` CLI.

    Parameters
    ----------
    registry:
        Registry host for login/logout (empty for Docker Hub).
    executable:
        Docker command.
    dockerfile:
        Recipe file name inside the build context.
    """

    def __init__(
        self,
        registry: str = "",
        *,
        executable: str = "docker",
        dockerfile: str = "Dockerfile",
    ) -> None:
        self.registry = registry
        self.executable = executable
        self.dockerfile = dockerfile

    # ------------------------------------------------------------------
    # ContainerBuilder
    # ------------------------------------------------------------------

    def build_command(
        self,
        recipe_dir: Path,
        *,
        build_args: Mapping[str, str],
        secrets: Mapping[str, str],
        iidfile: Path,
    ) -> tuple[list[str], dict[str, str]]:
        """Return the ``docker build`` argv and the secret environment."""
        args = [
            self.executable,
            "build",
            "--file",
            str(Path(recipe_dir) / self.dockerfile),
            "--iidfile",
            str(iidfile),
        ]
        for name in sorted(build_args):
            args += ["--build-arg", f"{name}={build_args[name]}"]
        env = {"DOCKER_BUILDKIT": "1"}
        for secret_id in sorted(secrets):
            env_name = secret_env_name(secret_id)
            args += ["--secret", f"id={secret_id},env={env_name}"]
            env[env_name] = secrets[secret_id]
        args.append(str(recipe_dir))
        return args, env

    def build(
        self,
        recipe_dir: Path,
        *,
        repository: str,
        build_args: Mapping[str, str],
        secrets: Mapping[str, str],
        timeout: float,
    ) -> ImageRef:
        with tempfile.TemporaryDirectory(prefix="buildrelay-") as tmp:
            iidfile = Path(tmp) / "image.id"
            args, env = self.build_command(
                recipe_dir, build_args=build_args, secrets=secrets, iidfile=iidfile
            )
            run_command(args, timeout=timeout, error_cls=ImageError, env=env)
            try:
                image_id = iidfile.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                raise ImageError("docker build did not report an image id") from None
        logger.info("Built %s as %s", repository, image_id)
        return ImageRef(repository=repository, image_id=image_id)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @contextmanager
    def session(
        self, credentials: Credentials | None, *, timeout: float
    ) -> Iterator[None]:
        """Log in for the duration of the block; always log out."""
        if credentials is None:
            yield
            return

        login = [self.executable, "login", "--username", credentials.username, "--password-stdin"]
        if self.registry:
            login.append(self.registry)
        run_command(
            login,
            timeout=timeout,
            error_cls=ImageError,
            input_text=credentials.password.get_secret_value(),
        )
        try:
            yield
        except BaseException:
            try:
                self._logout(timeout)
            except ImageError as exc:
                logger.error("Logout after failed push also failed: %s", exc)
            raise
        else:
            self._logout(timeout)

    def _logout(self, timeout: float) -> None:
        logout = [self.executable, "logout"]
        if self.registry:
            logout.append(self.registry)
        run_command(logout, timeout=timeout, error_cls=ImageError)

    def tag(self, image: ImageRef, tag: str, *, timeout: float) -> ImageRef:
        source = image.image_id or image.reference(image.tags[0] if image.tags else "latest")
        run_command(
            [self.executable, "tag", source, image.reference(tag)],
            timeout=timeout,
            error_cls=ImageError,
        )
        return image.with_tag(tag)

    def push(self, image: ImageRef, tag: str, *, timeout: float) -> None:
        if tag not in image.tags:
            raise ImageError(f"{image.reference(tag)} has not been tagged; refusing to push")
        run_command(
            [self.executable, "push", image.reference(tag)],
            timeout=timeout,
            error_cls=ImageError,
        )

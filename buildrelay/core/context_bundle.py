"""Context bundle: the minimal container-build recipe archive.

The bundle is built from an explicit allow-list of file names (never a
directory snapshot), so it cannot pick up the application jar, source or
build descriptors.  Archives are byte-reproducible: fixed member order,
fixed timestamps, normalised permissions.
"""

from __future__ import annotations

import io
import logging
import stat
import zipfile
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

from buildrelay.core.errors import BuildError

logger = logging.getLogger(__name__)

_FIXED_DATE = (1980, 1, 1, 0, 0, 0)
_MODE_EXEC = 0o755
_MODE_FILE = 0o644


def build_context_bundle(recipe_dir: Path, allow_list: Sequence[str]) -> bytes:
    """Zip exactly the allow-listed files of *recipe_dir*.

    Raises ``BuildError`` if an allow-listed file is missing or is not a
    regular file.
    """
    recipe_dir = Path(recipe_dir)
    missing = [name for name in allow_list if not (recipe_dir / name).is_file()]
    if missing:
        raise BuildError(
            f"Recipe directory {recipe_dir} is missing required files: {', '.join(missing)}"
        )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name in sorted(allow_list):
            source = recipe_dir / name
            executable = bool(source.stat().st_mode & stat.S_IXUSR)
            info = zipfile.ZipInfo(name, date_time=_FIXED_DATE)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = ((_MODE_EXEC if executable else _MODE_FILE) | stat.S_IFREG) << 16
            zf.writestr(info, source.read_bytes())

    data = buffer.getvalue()
    problems = verify_bundle(data, allow_list)
    if problems:
        raise BuildError("Context bundle failed verification: " + "; ".join(problems))
    logger.info("Built context bundle with %d files (%d bytes)", len(allow_list), len(data))
    return data


def bundle_members(data: bytes) -> list[str]:
    """File names contained in a bundle, in archive order."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return [info.filename for info in zf.infolist() if not info.is_dir()]


def verify_bundle(data: bytes, allow_list: Sequence[str]) -> list[str]:
    """Check the bundle holds exactly the allow-list.

    Returns a list of problems; empty means the bundle is valid.
    """
    try:
        members = bundle_members(data)
    except zipfile.BadZipFile as exc:
        return [f"not a zip archive: {exc}"]

    problems: list[str] = []
    expected = set(allow_list)
    present = set(members)
    for name in sorted(expected - present):
        problems.append(f"missing {name}")
    for name in sorted(present - expected):
        problems.append(f"unexpected {name}")
    if len(members) != len(present):
        problems.append("duplicate members")
    return problems


def unpack_bundle(data: bytes, dest: Path) -> list[Path]:
    """Extract a bundle into *dest*, refusing paths that escape it."""
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            member = PurePosixPath(info.filename)
            if member.is_absolute() or ".." in member.parts or len(member.parts) != 1:
                raise BuildError(f"Refusing to extract bundle member {info.filename!r}")
            target = dest / member.name
            target.write_bytes(zf.read(info))
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                target.chmod(mode)
            written.append(target)
    return written

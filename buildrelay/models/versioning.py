"""Build identity models: base version + date label (deterministic).

``full = f"{base_version}-{build_label}"`` where ``build_label`` is the
``YYYYMMDD`` date of the request timestamp.  The same
``(base_version, timestamp date)`` always yields the same identifier, so a
re-run on the same day reproduces the same artifact keys.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, field_validator

from buildrelay.core.errors import ValidationError

# MAJOR.MINOR.PATCH with an optional pre-release suffix; no +build metadata.
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z]+(?:\.[0-9A-Za-z]+)*)?$"
)
BUILD_LABEL_PATTERN = re.compile(r"^\d{8}$")
BUILD_LABEL_FORMAT = "%Y%m%d"


def build_label_for(moment: date | datetime) -> str:
    """Return the ``YYYYMMDD`` label for a date or datetime."""
    return moment.strftime(BUILD_LABEL_FORMAT)


class BuildRequest(BaseModel):
    """Caller-supplied input to pipeline 1.  Immutable once accepted."""

    model_config = ConfigDict(frozen=True)

    base_version: str
    timestamp: datetime

    @field_validator("base_version")
    @classmethod
    def _check_semver(cls, value: str) -> str:
        value = value.strip()
        if not SEMVER_PATTERN.match(value):
            raise ValueError(
                f"base_version {value!r} is not a semantic version (MAJOR.MINOR.PATCH)"
            )
        return value

    @classmethod
    def accept(cls, base_version: str, timestamp: datetime) -> BuildRequest:
        """Validate and build a request, raising our ``ValidationError``."""
        try:
            return cls(base_version=base_version, timestamp=timestamp)
        except ValueError as exc:
            raise ValidationError(f"Invalid build request: {exc}") from exc


class VersionIdentifier(BaseModel):
    """Derived, immutable version identity of a build."""

    model_config = ConfigDict(frozen=True)

    base_version: str
    build_label: str

    @property
    def full(self) -> str:
        return f"{self.base_version}-{self.build_label}"

    def __str__(self) -> str:
        return self.full

    @classmethod
    def derive(cls, request: BuildRequest) -> VersionIdentifier:
        """Compute the identifier for a request.  Pure; no clock access."""
        return cls(
            base_version=request.base_version,
            build_label=build_label_for(request.timestamp),
        )

    @classmethod
    def parse(cls, full: str, build_label: str | None = None) -> VersionIdentifier:
        """Split a full identifier back into base version and label.

        When *build_label* is given it must match the suffix of *full*.
        """
        base, sep, label = full.rpartition("-")
        if not sep or not BUILD_LABEL_PATTERN.match(label):
            raise ValidationError(
                f"Version {full!r} does not end with a -YYYYMMDD build label"
            )
        if build_label is not None and build_label != label:
            raise ValidationError(
                f"Build label {build_label!r} does not match version {full!r}"
            )
        if not SEMVER_PATTERN.match(base):
            raise ValidationError(
                f"Version {full!r} has a malformed base version {base!r}"
            )
        try:
            datetime.strptime(label, BUILD_LABEL_FORMAT)
        except ValueError as exc:
            raise ValidationError(f"Build label {label!r} is not a date") from exc
        return cls(base_version=base, build_label=label)

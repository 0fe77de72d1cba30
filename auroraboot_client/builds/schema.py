"""Pydantic models for build API payloads.

These models parse server JSON leniently: a build snapshot never fails
validation because of an unknown status or a malformed timestamp. Bad
values are coerced to safe defaults instead.
"""

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from auroraboot_client.types import BuildStatus

# Go trims trailing zeros and may go down to nanoseconds; fromisoformat on
# Python 3.10 wants exactly 3 or 6 fraction digits
_FRACTION_RE = re.compile(r"(?<=\d\d:\d\d)\.(\d+)")


def _six_digit_fraction(match: re.Match[str]) -> str:
    return "." + match.group(1).ljust(6, "0")[:6]


TIMESTAMP_FIELDS = ("created_at", "updated_at", "started_at", "completed_at")
DESCRIPTIVE_FIELDS = ("image", "architecture", "model", "variant", "version")


def parse_timestamp(value: object) -> datetime | None:
    """Parse a server timestamp into an aware datetime.

    Args:
        value: ISO 8601 / RFC 3339 string, datetime, or anything else.

    Returns:
        Timezone-aware datetime, or None if the value is absent or invalid.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(_six_digit_fraction, text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_optional_str(value: object) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    return None


class BuildSnapshot(BaseModel):
    """One server-side snapshot of a build.

    ``model_fields_set`` records which fields the server actually sent,
    so a consumer can tell "absent" from "explicitly null".

    Attributes:
        id: Build identifier (``uuid`` on the wire, ``id`` accepted).
        image: Base container image.
        architecture: Target CPU architecture.
        model: Target board model.
        variant: Kairos variant (core, standard).
        version: Requested release version.
        status: Build status, coerced onto the closed set.
        created_at: When the build was queued.
        updated_at: When the build last changed.
        started_at: When the build started running.
        completed_at: When the build completed or failed.
        error_message: Failure description.
        worker_id: Worker the build was assigned to.
        config: Build configuration the build was created with.
    """

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, protected_namespaces=()
    )

    id: str | None = Field(
        default=None, validation_alias=AliasChoices("uuid", "id")
    )
    image: str | None = Field(default=None)
    architecture: str | None = Field(default=None)
    model: str | None = Field(default=None)
    variant: str | None = Field(default=None)
    version: str | None = Field(default=None)
    status: BuildStatus = Field(default=BuildStatus.QUEUED)
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    error_message: str | None = Field(default=None)
    worker_id: str | None = Field(default=None)
    config: dict[str, Any] | None = Field(default=None)

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: object) -> BuildStatus:
        """Map unknown status values to queued."""
        return BuildStatus.coerce(v)

    @field_validator(*TIMESTAMP_FIELDS, mode="before")
    @classmethod
    def coerce_timestamp(cls, v: object) -> datetime | None:
        """Drop timestamps that cannot be parsed."""
        return parse_timestamp(v)

    @field_validator(
        "id", *DESCRIPTIVE_FIELDS, "error_message", "worker_id", mode="before"
    )
    @classmethod
    def coerce_text(cls, v: object) -> str | None:
        """Accept scalar values as text, drop anything else."""
        return _as_optional_str(v)

    @field_validator("config", mode="before")
    @classmethod
    def coerce_config(cls, v: object) -> dict[str, Any] | None:
        """Keep only mapping-shaped configuration."""
        if isinstance(v, Mapping):
            return dict(v)
        return None

    @classmethod
    def parse(cls, data: object) -> "BuildSnapshot | None":
        """Parse server data, returning None instead of raising.

        Args:
            data: Decoded JSON object (or an existing snapshot).

        Returns:
            BuildSnapshot, or None if the data is not a build object.
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            return None
        try:
            return cls.model_validate(dict(data))
        except ValidationError:
            return None


class BuildStartResponse(BaseModel):
    """Response of the build creation endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("uuid", "id"))


__all__ = [
    "BuildSnapshot",
    "BuildStartResponse",
    "DESCRIPTIVE_FIELDS",
    "TIMESTAMP_FIELDS",
    "parse_timestamp",
]

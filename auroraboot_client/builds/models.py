"""Build record model.

This module defines the BuildRecord value object: the client's view of
one build's server state. A record is only ever mutated by applying a
fresh server snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from auroraboot_client.builds.schema import DESCRIPTIVE_FIELDS, BuildSnapshot
from auroraboot_client.types import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BuildStatus,
)

logger = logging.getLogger(__name__)

# Statuses at or after the point a build started running
_STARTED_STATUSES = frozenset(
    {BuildStatus.RUNNING, BuildStatus.COMPLETE, BuildStatus.FAILED}
)


def format_relative_time(
    timestamp: datetime | None, now: datetime | None = None
) -> str:
    """Format a timestamp relative to now.

    Args:
        timestamp: Timestamp to format.
        now: Reference time (defaults to the current UTC time).

    Returns:
        'just now', 'Nm ago', 'Nh ago', 'Nd ago', or the ISO date for
        anything a week or older. Empty string if timestamp is None.
    """
    if timestamp is None:
        return ""
    if now is None:
        now = datetime.now(timezone.utc)

    minutes = int((now - timestamp).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return timestamp.date().isoformat()


@dataclass
class BuildRecord:
    """Known server state of one build.

    Attributes:
        id: Opaque build identifier, stable for the build's lifetime.
        image: Base container image.
        architecture: Target CPU architecture.
        model: Target board model.
        variant: Kairos variant.
        version: Requested release version.
        status: Current build status.
        created_at: When the build was queued.
        updated_at: When the build last changed.
        started_at: When the build started running, if it has.
        completed_at: When the build reached a terminal status, if it has.
        error_message: Failure description, only while status is failed.
        worker_id: Worker the build was assigned to, if any.
        config: Build configuration the build was created with.
    """

    id: str
    image: str = ""
    architecture: str = ""
    model: str = ""
    variant: str = ""
    version: str = ""
    status: BuildStatus = BuildStatus.QUEUED
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    worker_id: str | None = None
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, data: object) -> BuildRecord | None:
        """Create a record from a server snapshot.

        Missing fields take their defaults (status queued, timestamps
        absent).

        Args:
            data: Decoded JSON object or BuildSnapshot.

        Returns:
            New BuildRecord, or None if the data carries no build id.
        """
        snapshot = BuildSnapshot.parse(data)
        if snapshot is None or not snapshot.id:
            logger.warning("Ignoring build snapshot without an id")
            return None

        record = cls(id=snapshot.id)
        record.apply_snapshot(snapshot)
        return record

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return f"<BuildRecord(id='{self.id}', status='{self.status.value}')>"

    def apply_snapshot(self, data: object) -> bool:
        """Replace the mutable fields with a fresh server snapshot.

        Never raises: malformed data is ignored, unknown statuses become
        queued, fields missing from the snapshot keep their prior value.
        A terminal build keeps its terminal status.

        Args:
            data: Decoded JSON object or BuildSnapshot.

        Returns:
            True if the status changed.
        """
        snapshot = BuildSnapshot.parse(data)
        if snapshot is None:
            logger.warning("Ignoring malformed snapshot for build %s", self.id)
            return False
        if snapshot.id and snapshot.id != self.id:
            logger.warning(
                "Ignoring snapshot for build %s applied to build %s",
                snapshot.id,
                self.id,
            )
            return False

        sent = snapshot.model_fields_set
        previous = self.status

        status = snapshot.status if "status" in sent else self.status
        if self.is_terminal() and status != previous:
            logger.warning(
                "Build %s is already %s, ignoring status %s",
                self.id,
                previous.value,
                status.value,
            )
            status = previous

        def pick(name: str) -> Any:
            return getattr(snapshot, name) if name in sent else getattr(self, name)

        created_at = pick("created_at")
        updated_at = pick("updated_at")
        started_at = pick("started_at")
        completed_at = pick("completed_at")
        error_message = pick("error_message") or None
        worker_id = pick("worker_id")
        config = snapshot.config if snapshot.config is not None else self.config

        if status not in _STARTED_STATUSES:
            started_at = None
        if status not in TERMINAL_STATUSES:
            completed_at = None
        if status != BuildStatus.FAILED:
            error_message = None

        # Descriptive fields are immutable once known
        for name in DESCRIPTIVE_FIELDS:
            value = getattr(snapshot, name)
            if value and not getattr(self, name):
                setattr(self, name, value)

        self.status = status
        self.created_at = created_at
        self.updated_at = updated_at
        self.started_at = started_at
        self.completed_at = completed_at
        self.error_message = error_message
        self.worker_id = worker_id
        self.config = config

        if status != previous:
            logger.debug(
                "Build %s status %s -> %s", self.id, previous.value, status.value
            )
            return True
        return False

    def is_active(self) -> bool:
        """Check if this build is queued, assigned or running."""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        """Check if this build completed or failed."""
        return self.status in TERMINAL_STATUSES

    def is_success(self) -> bool:
        """Check if this build completed successfully."""
        return self.status == BuildStatus.COMPLETE

    def is_failure(self) -> bool:
        """Check if this build failed."""
        return self.status == BuildStatus.FAILED

    @property
    def title(self) -> str:
        """Human-readable build title."""
        return f"{self.variant} {self.model} ({self.architecture})"

    @property
    def logs_path(self) -> str:
        """Server path of this build's logs."""
        return f"/api/v1/builds/{self.id}/logs"

    @property
    def artifacts_path(self) -> str:
        """Server path of this build's artifact list."""
        return f"/api/v1/builds/{self.id}/artifacts"

    def summary(self, now: datetime | None = None) -> dict[str, str]:
        """Return a label to value table describing the build."""
        return {
            "Base Image": self.image or "N/A",
            "Architecture": self.architecture or "N/A",
            "Model": self.model or "N/A",
            "Variant": self.variant or "N/A",
            "Version": self.version or "N/A",
            "Status": self.status.value,
            "Created": format_relative_time(self.created_at, now),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary, dropping empty values."""
        data: dict[str, Any] = {
            "uuid": self.id,
            "image": self.image,
            "architecture": self.architecture,
            "model": self.model,
            "variant": self.variant,
            "version": self.version,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error_message": self.error_message,
            "worker_id": self.worker_id,
            "config": self.config or None,
        }
        return {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in data.items()
            if value is not None
        }


__all__ = ["BuildRecord", "format_relative_time"]

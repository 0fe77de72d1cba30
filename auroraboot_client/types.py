"""Shared type definitions for auroraboot_client.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class BuildStatus(str, Enum):
    """Status of a remote build job."""

    QUEUED = "queued"
    ASSIGNED = "assigned"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @classmethod
    def coerce(cls, value: object) -> "BuildStatus":
        """Map a raw server value onto the closed status set.

        Unknown or non-string values become QUEUED so that the client
        keeps rendering something reasonable.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.QUEUED


ACTIVE_STATUSES = frozenset(
    {BuildStatus.QUEUED, BuildStatus.ASSIGNED, BuildStatus.RUNNING}
)
TERMINAL_STATUSES = frozenset({BuildStatus.COMPLETE, BuildStatus.FAILED})


class ConnectionState(str, Enum):
    """Connection state of a log stream session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    SUSPECT = "suspect"
    CLOSED = "closed"


class StreamEnd(str, Enum):
    """Reason a log stream session reached the closed state."""

    COMPLETED = "completed"
    LOST = "lost"
    CONNECT_FAILED = "connect_failed"


@dataclass(frozen=True)
class ArtifactEntry:
    """A downloadable output of a completed build.

    Attributes:
        name: Friendly artifact name (e.g. 'ISO image').
        description: Short description of where the artifact is useful.
        url: File name relative to the build's artifact directory.
    """

    name: str
    description: str
    url: str

    def download_path(self, build_id: str) -> str:
        """Return the server path this artifact is downloaded from."""
        return f"/artifacts/{build_id}/{self.url}"


__all__ = [
    "ACTIVE_STATUSES",
    "ArtifactEntry",
    "BuildStatus",
    "ConnectionState",
    "StreamEnd",
    "TERMINAL_STATUSES",
]

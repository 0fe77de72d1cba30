"""Build observation module.

This module handles:
- Build records and server snapshots
- Artifact listing and caching
- Live log streaming sessions and their WebSocket transport
- The session controller behind a build detail view
"""

from auroraboot_client.builds.models import BuildRecord
from auroraboot_client.builds.stream import LogStreamSession

__all__ = ["BuildRecord", "LogStreamSession"]

# Lazy imports for submodules to avoid circular imports
# Access via auroraboot_client.builds.controller, etc.

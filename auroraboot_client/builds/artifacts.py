"""Artifact listing and caching.

This module handles:
- Parsing artifact entries returned by the build API
- Classifying bare artifact file names into friendly names
- Caching the artifact list of each build (ArtifactLoader)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Protocol

from auroraboot_client.errors import ErrorReporter, LoggingErrorReporter
from auroraboot_client.types import ArtifactEntry

logger = logging.getLogger(__name__)

# (suffix, friendly name, description); first match wins, so the
# more specific .gce.tar.gz must come before .tar
ARTIFACT_KINDS = [
    (".gce.tar.gz", "GCE image", "(.tar.gz) For use with Google Compute Engine"),
    (
        ".tar",
        "OCI image",
        "(.tar) For use with Docker or other OCI compatible container runtimes",
    ),
    (".iso", "ISO image", "For generic installations (USB, VM, bare metal)"),
    (
        ".raw",
        "RAW image",
        "For AWS, Raspberry Pi, and any platform that supports RAW images",
    ),
    (".vhd", "VHD image", "For use with Microsoft Azure"),
]


def describe_artifact(filename: str) -> tuple[str, str]:
    """Return the friendly name and description of an artifact file.

    Args:
        filename: Artifact file name.

    Returns:
        (name, description); unknown kinds keep the file name and an
        empty description.
    """
    filename_lower = filename.lower()
    for suffix, name, description in ARTIFACT_KINDS:
        if filename_lower.endswith(suffix):
            return name, description
    return filename, ""


def parse_artifact_entries(data: Iterable[object]) -> list[ArtifactEntry]:
    """Convert decoded artifact JSON into entries.

    Items without a usable ``url`` are skipped. Missing names and
    descriptions are derived from the file name.

    Args:
        data: Decoded JSON list.

    Returns:
        List of ArtifactEntry in server order.
    """
    entries: list[ArtifactEntry] = []
    for item in data:
        if not isinstance(item, Mapping):
            logger.warning("Skipping malformed artifact entry: %r", item)
            continue
        url = item.get("url")
        if not isinstance(url, str) or not url:
            logger.warning("Skipping artifact entry without url: %r", item)
            continue

        default_name, default_description = describe_artifact(url)
        name = item.get("name")
        description = item.get("description")
        entries.append(
            ArtifactEntry(
                name=name if isinstance(name, str) and name else default_name,
                description=(
                    description
                    if isinstance(description, str)
                    else default_description
                ),
                url=url,
            )
        )
    return entries


class ArtifactSource(Protocol):
    """Anything that can fetch the artifact list of a build."""

    async def get_artifacts(self, build_id: str) -> list[ArtifactEntry]: ...


class ArtifactLoader:
    """Per-build cache of artifact lists.

    A successful fetch is cached, including an empty list. A failed
    fetch is reported and returns an empty list without caching, so the
    next load retries.
    """

    def __init__(
        self,
        source: ArtifactSource,
        reporter: ErrorReporter | None = None,
    ) -> None:
        self._source = source
        self._reporter = reporter or LoggingErrorReporter(logger)
        self._cache: dict[str, list[ArtifactEntry]] = {}
        # Bumped by invalidate() so an in-flight fetch cannot repopulate
        self._generations: dict[str, int] = {}

    def cached(self, build_id: str) -> list[ArtifactEntry] | None:
        """Return the cached list, or None if nothing is cached."""
        entries = self._cache.get(build_id)
        return list(entries) if entries is not None else None

    async def load(self, build_id: str) -> list[ArtifactEntry]:
        """Return the artifact list of a build, fetching it at most once.

        Args:
            build_id: Build identifier.

        Returns:
            Artifact entries; empty if the fetch failed.
        """
        if build_id in self._cache:
            return list(self._cache[build_id])

        generation = self._generations.get(build_id, 0)
        try:
            entries = await self._source.get_artifacts(build_id)
        except Exception as e:
            self._reporter.report(f"Loading artifacts of build {build_id}", e)
            return []

        if self._generations.get(build_id, 0) == generation:
            self._cache[build_id] = list(entries)
            logger.debug("Cached %d artifact(s) for build %s", len(entries), build_id)
        return list(entries)

    def invalidate(self, build_id: str) -> None:
        """Drop the cached list so the next load fetches again."""
        self._cache.pop(build_id, None)
        self._generations[build_id] = self._generations.get(build_id, 0) + 1


__all__ = [
    "ARTIFACT_KINDS",
    "ArtifactLoader",
    "ArtifactSource",
    "describe_artifact",
    "parse_artifact_entries",
]

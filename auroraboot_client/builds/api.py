"""HTTP client for the AuroraBoot build API.

This module handles:
- Listing builds and fetching single build snapshots
- Fetching artifact lists and historical logs
- Queueing new builds
- Deriving the WebSocket URL of a build's live log stream

All failures surface as APIError; callers that serve a view absorb them.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from auroraboot_client.builds.artifacts import parse_artifact_entries
from auroraboot_client.builds.models import BuildRecord
from auroraboot_client.builds.schema import BuildStartResponse
from auroraboot_client.config import Settings, get_settings
from auroraboot_client.errors import (
    INVALID_RESPONSE,
    TRANSPORT_ERROR,
    APIError,
    BuildNotFoundError,
)
from auroraboot_client.types import ArtifactEntry, BuildStatus

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@dataclass
class BuildList:
    """One page of builds."""

    builds: list[BuildRecord] = field(default_factory=list)
    total: int = 0


def websocket_url(base_url: str, path: str) -> str:
    """Derive a ws:// or wss:// URL from an http(s) base URL.

    Args:
        base_url: Server base URL (http:// or https://).
        path: Absolute path on the server.

    Returns:
        WebSocket URL for the path.
    """
    url = httpx.URL(base_url)
    scheme = "wss" if url.scheme == "https" else "ws"
    full_path = url.path.rstrip("/") + path
    return str(url.copy_with(scheme=scheme, path=full_path, query=None))


class BuildsAPI:
    """Async client for the build endpoints.

    The client owns its ``httpx.AsyncClient`` unless one is passed in.
    Use as an async context manager or call ``aclose()``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
        )

    async def __aenter__(self) -> BuildsAPI:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise APIError(
                f"{method} {path} returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise APIError(
                f"{method} {path} failed: {e}", code=TRANSPORT_ERROR
            ) from e
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Invalid JSON from {response.request.url}",
                code=INVALID_RESPONSE,
                status_code=response.status_code,
            ) from e

    async def list_builds(
        self,
        status: BuildStatus | str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> BuildList:
        """List builds, newest first.

        Args:
            status: Only return builds with this status.
            limit: Maximum number of builds (server caps at 100).
            offset: Number of builds to skip.

        Returns:
            BuildList with the page of builds and the total count.

        Raises:
            APIError: If the request fails or the response is malformed.
        """
        params: dict[str, str | int] = {
            "limit": limit if limit is not None else self.settings.list_limit
        }
        if status:
            params["status"] = BuildStatus(status).value
        if offset:
            params["offset"] = offset

        response = await self._request("GET", f"{API_PREFIX}/builds", params=params)
        data = self._json(response)
        if not isinstance(data, Mapping):
            raise APIError("Build list is not an object", code=INVALID_RESPONSE)

        builds = []
        for item in data.get("builds") or []:
            record = BuildRecord.from_snapshot(item)
            if record is not None:
                builds.append(record)

        total = data.get("total")
        if not isinstance(total, int):
            total = len(builds)
        return BuildList(builds=builds, total=total)

    async def get_build(self, build_id: str) -> dict[str, Any]:
        """Fetch one build snapshot.

        Args:
            build_id: Build identifier.

        Returns:
            Decoded build snapshot.

        Raises:
            BuildNotFoundError: If the server does not know the build.
            APIError: If the request fails or the response is malformed.
        """
        try:
            response = await self._request("GET", f"{API_PREFIX}/builds/{build_id}")
        except APIError as e:
            if e.status_code == 404:
                raise BuildNotFoundError(build_id) from e
            raise

        data = self._json(response)
        if not isinstance(data, dict):
            raise APIError(
                f"Build {build_id} is not an object", code=INVALID_RESPONSE
            )
        return data

    async def get_artifacts(self, build_id: str) -> list[ArtifactEntry]:
        """Fetch the artifact list of a build.

        Raises:
            APIError: If the request fails or the response is malformed.
        """
        response = await self._request(
            "GET", f"{API_PREFIX}/builds/{build_id}/artifacts"
        )
        data = self._json(response)
        if not isinstance(data, list):
            raise APIError(
                f"Artifacts of build {build_id} are not a list", code=INVALID_RESPONSE
            )
        return parse_artifact_entries(data)

    async def get_logs(self, build_id: str) -> str:
        """Fetch the full historical log text of a build.

        Raises:
            APIError: If the request fails.
        """
        response = await self._request("GET", f"{API_PREFIX}/builds/{build_id}/logs")
        return response.text

    async def start_build(self, build_config: Mapping[str, str]) -> str:
        """Queue a new build.

        Args:
            build_config: Form fields describing the build.

        Returns:
            Identifier of the new build.

        Raises:
            APIError: If the request fails or no id is returned.
        """
        response = await self._request("POST", "/start", data=dict(build_config))
        try:
            started = BuildStartResponse.model_validate(self._json(response))
        except ValidationError as e:
            raise APIError(
                "Build creation response carries no id", code=INVALID_RESPONSE
            ) from e
        logger.info("Queued build %s", started.id)
        return started.id

    def logs_websocket_url(self, build_id: str) -> str:
        """Return the WebSocket URL streaming a build's logs."""
        return websocket_url(
            self.settings.base_url, f"{API_PREFIX}/builds/{build_id}/logs"
        )


__all__ = ["API_PREFIX", "BuildList", "BuildsAPI", "websocket_url"]

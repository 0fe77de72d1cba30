"""Shared fixtures and fakes for auroraboot_client tests."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio
import respx

from auroraboot_client.builds.api import BuildsAPI
from auroraboot_client.builds.stream import CLOSE_ABNORMAL, TransportListener
from auroraboot_client.config import CLOSE_NORMAL, Settings

BASE_URL = "http://auroraboot.test"

# Short enough to keep the suite fast, long enough to act inside it
GRACE = 0.05


class FakeTransport:
    """LogTransport driven by the test instead of a network."""

    def __init__(self) -> None:
        self.url: str | None = None
        self.listener: TransportListener | None = None
        self.closed = False

    def start(self, url: str, listener: TransportListener) -> None:
        self.url = url
        self.listener = listener

    def close(self) -> None:
        self.closed = True

    def open(self) -> None:
        assert self.listener is not None
        self.listener.on_open()

    def send(self, text: str) -> None:
        assert self.listener is not None
        self.listener.on_message(text)

    def drop(self, code: int = CLOSE_ABNORMAL) -> None:
        assert self.listener is not None
        self.listener.on_close(code)

    def finish(self) -> None:
        assert self.listener is not None
        self.listener.on_close(CLOSE_NORMAL)

    def fail(self, error: BaseException) -> None:
        assert self.listener is not None
        self.listener.on_error(error)


class TransportRecorder:
    """Transport factory remembering every transport it created."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class RecordingReporter:
    """ErrorReporter that keeps what it was given."""

    def __init__(self) -> None:
        self.reports: list[tuple[str, BaseException]] = []

    def report(self, context: str, error: BaseException) -> None:
        self.reports.append((context, error))


def build_snapshot(
    status: str = "running", build_id: str = "b-1", **extra: Any
) -> dict[str, Any]:
    """Return a server-shaped build snapshot."""
    data: dict[str, Any] = {
        "uuid": build_id,
        "image": "ubuntu:24.04",
        "architecture": "amd64",
        "model": "generic",
        "variant": "core",
        "version": "v3.2.1",
        "status": status,
        "created_at": "2025-03-01T10:00:00Z",
        "updated_at": "2025-03-01T10:05:00Z",
    }
    if status in ("running", "complete", "failed"):
        data["started_at"] = "2025-03-01T10:01:00Z"
    if status in ("complete", "failed"):
        data["completed_at"] = "2025-03-01T10:20:00Z"
    if status == "failed":
        data["error_message"] = "build step failed"
    data.update(extra)
    return data


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at the mocked server with a short grace period."""
    return Settings(base_url=BASE_URL, grace_period=GRACE, max_reconnects=2)


@pytest.fixture
def transports() -> TransportRecorder:
    """Factory of fake transports."""
    return TransportRecorder()


@pytest.fixture
def reporter() -> RecordingReporter:
    """Error reporter that records absorbed failures."""
    return RecordingReporter()


@pytest.fixture
def router():
    """respx router mounted on the test server."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as mock:
        yield mock


@pytest_asyncio.fixture
async def api(settings):
    """BuildsAPI client for the mocked server."""
    async with BuildsAPI(settings) as client:
        yield client

"""Build session controller.

This module provides the BuildSessionController: the object a build
detail view binds to. It orchestrates, for the one build currently
observed:
- the BuildRecord, refreshed from server snapshots
- the log view: a live LogStreamSession while the build runs, a
  placeholder while it waits, the historical log once it ended
- the artifact list once the build reached a terminal status

All I/O failures are absorbed here and reported; the view only ever
observes state.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Coroutine, Mapping
from typing import Any

from auroraboot_client.builds.api import BuildsAPI
from auroraboot_client.builds.artifacts import ArtifactLoader
from auroraboot_client.builds.models import BuildRecord
from auroraboot_client.builds.stream import LogStreamSession
from auroraboot_client.config import Settings
from auroraboot_client.errors import ErrorReporter, LoggingErrorReporter
from auroraboot_client.types import ArtifactEntry, BuildStatus, StreamEnd

logger = logging.getLogger(__name__)

# ANSI colour sequences emitted by build tooling
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")

PLACEHOLDER_QUEUED = "Build is queued. Waiting for an available worker...\n"
PLACEHOLDER_ASSIGNED = "Build assigned to worker. Starting soon...\n"
PLACEHOLDER_LOGS_ERROR = "Error loading logs.\n"

WAITING_PLACEHOLDERS = {
    BuildStatus.QUEUED: PLACEHOLDER_QUEUED,
    BuildStatus.ASSIGNED: PLACEHOLDER_ASSIGNED,
}

SessionFactory = Callable[..., LogStreamSession]


def strip_ansi(text: str) -> str:
    """Remove ANSI colour sequences from log text."""
    return ANSI_ESCAPE_RE.sub("", text)


class BuildSessionController:
    """Observable state of the build currently being watched.

    Args:
        api: Build API client.
        artifacts: Artifact cache; one is created over ``api`` if omitted.
        settings: Settings; defaults to the API client's settings.
        session_factory: Creates LogStreamSessions; called with the
            ``on_chunk`` and ``on_closed`` keyword arguments.
        reporter: Receives absorbed I/O failures.
        on_change: Called after every change of observable state.
    """

    def __init__(
        self,
        api: BuildsAPI,
        *,
        artifacts: ArtifactLoader | None = None,
        settings: Settings | None = None,
        session_factory: SessionFactory | None = None,
        reporter: ErrorReporter | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.api = api
        self.settings = settings or api.settings
        self.reporter = reporter or LoggingErrorReporter(logger)
        self.artifact_loader = artifacts or ArtifactLoader(api, self.reporter)
        self._session_factory = session_factory or self._default_session_factory
        self.on_change = on_change

        self.record: BuildRecord | None = None
        self.session: LogStreamSession | None = None
        self.artifacts: list[ArtifactEntry] = []
        self.show_logs = False

        self._chunks: list[str] = []
        self.log_generation = 0
        self._generation = 0
        self._reconnects = 0
        self._streamed = False
        self._tasks: set[asyncio.Task[Any]] = set()

    def _default_session_factory(self, **kwargs: Any) -> LogStreamSession:
        return LogStreamSession.from_settings(self.settings, **kwargs)

    # ------------------------------------------------------------------
    # Observable surface
    # ------------------------------------------------------------------

    @property
    def status(self) -> BuildStatus | None:
        """Status of the observed build, or None when unattached."""
        return self.record.status if self.record is not None else None

    @property
    def buffer(self) -> tuple[str, ...]:
        """Display chunks of the log view."""
        return tuple(self._chunks)

    @property
    def log_text(self) -> str:
        """Log view joined as display text."""
        return "".join(self._chunks)

    def chunks_since(self, index: int) -> list[str]:
        """Return the log view chunks from ``index`` on.

        Indexes are only meaningful within one ``log_generation``; it changes
        whenever the view is replaced instead of appended to.
        """
        return self._chunks[index:]

    @property
    def is_streaming(self) -> bool:
        """Whether a live log session may still deliver output."""
        return self.session is not None and self.session.is_streaming

    def set_show_logs(self, value: bool) -> None:
        """Set the log panel preference; independent of streaming."""
        self.show_logs = value
        self._changed()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def observe(self, build: BuildRecord | Mapping[str, Any]) -> None:
        """Start observing a build.

        Any previous observation is torn down first, so the prior session
        is closed before a new one opens.

        Args:
            build: BuildRecord or server snapshot of the build.
        """
        if isinstance(build, BuildRecord):
            record: BuildRecord | None = build
        else:
            record = BuildRecord.from_snapshot(build)
        if record is None:
            logger.warning("Cannot observe a build without an id")
            return

        self.stop_observing()
        self.record = record
        self.show_logs = record.is_terminal()
        generation = self._generation
        logger.info("Observing build %s (%s)", record.id, record.status.value)

        if record.status == BuildStatus.RUNNING:
            self._start_session()
        elif record.is_terminal():
            self._changed()
            await self._load_history(record.id, generation)
            if self._is_current(generation):
                await self._load_artifacts(record.id, generation)
        else:
            self._show_placeholder(record.status)

    async def refresh(self) -> bool:
        """Re-fetch the observed build and react to status transitions.

        Returns:
            True if a fresh snapshot was applied.
        """
        record = self.record
        if record is None:
            return False
        generation = self._generation

        try:
            snapshot = await self.api.get_build(record.id)
        except Exception as e:
            self.reporter.report(f"Refreshing build {record.id}", e)
            return False
        if not self._is_current(generation):
            logger.debug("Discarding stale snapshot of build %s", record.id)
            return False

        if record.apply_snapshot(snapshot):
            await self._on_status_changed(generation)
        self._changed()
        return True

    def stop_observing(self) -> None:
        """Detach from the observed build.

        Closes the live session, cancels pending work and clears the log
        view and artifacts. Safe to call repeatedly and from any state.
        """
        self._generation += 1
        self._close_session()
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()
        self._tasks.clear()

        had_build = self.record is not None
        self.record = None
        self.artifacts = []
        self._reset_log([])
        self._reconnects = 0
        self._streamed = False
        self.show_logs = False
        if had_build:
            logger.info("Stopped observing build")
            self._changed()

    async def wait_idle(self) -> None:
        """Wait for scheduled background work, such as post-stream refreshes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.record is not None

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _reset_log(self, chunks: list[str]) -> None:
        self._chunks = chunks
        self.log_generation += 1

    def _append(self, chunk: str) -> None:
        self._chunks.append(strip_ansi(chunk))
        self._changed()

    def _show_placeholder(self, status: BuildStatus) -> None:
        self._reset_log([WAITING_PLACEHOLDERS[status]])
        self._changed()

    def _close_session(self) -> None:
        session = self.session
        self.session = None
        if session is not None:
            session.close()

    def _start_session(self) -> None:
        record = self.record
        if record is None:
            return
        self._close_session()
        self._reset_log([])
        self._streamed = True

        session = self._session_factory(
            on_chunk=self._on_session_chunk, on_closed=self._on_session_closed
        )
        self.session = session
        session.open(record.id, self.api.logs_websocket_url(record.id))
        self._changed()

    def _on_session_chunk(self, chunk: str) -> None:
        self._append(chunk)

    def _on_session_closed(self, session: LogStreamSession) -> None:
        if session is not self.session:
            return
        self._spawn(self._after_session_closed(session, self._generation))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _after_session_closed(
        self, session: LogStreamSession, generation: int
    ) -> None:
        await self.refresh()
        if not self._is_current(generation) or session is not self.session:
            return

        record = self.record
        if (
            record is not None
            and record.status == BuildStatus.RUNNING
            and session.end_reason in (StreamEnd.LOST, StreamEnd.CONNECT_FAILED)
        ):
            if self._reconnects >= self.settings.max_reconnects:
                logger.warning(
                    "Giving up on log stream of build %s after %d reconnect(s)",
                    record.id,
                    self._reconnects,
                )
                return
            self._reconnects += 1
            logger.info(
                "Reconnecting log stream of build %s (attempt %d)",
                record.id,
                self._reconnects,
            )
            self._start_session()

    async def _on_status_changed(self, generation: int) -> None:
        record = self.record
        if record is None:
            return
        status = record.status
        live = self.session is not None and self.session.is_streaming

        if status in WAITING_PLACEHOLDERS:
            if not live:
                self._show_placeholder(status)
        elif status == BuildStatus.RUNNING:
            # Reconnects after a finished session are decided once it closes
            if self.session is None:
                self._start_session()
        else:
            self.artifact_loader.invalidate(record.id)
            # A live session is left to reach its own close
            if not self._streamed:
                await self._load_history(record.id, generation)
                if not self._is_current(generation):
                    return
            await self._load_artifacts(record.id, generation)

    async def _load_history(self, build_id: str, generation: int) -> None:
        try:
            text = await self.api.get_logs(build_id)
        except Exception as e:
            self.reporter.report(f"Loading logs of build {build_id}", e)
            text = PLACEHOLDER_LOGS_ERROR
        if not self._is_current(generation):
            return
        self._reset_log([strip_ansi(text)] if text else [])
        self._changed()

    async def _load_artifacts(self, build_id: str, generation: int) -> None:
        entries = await self.artifact_loader.load(build_id)
        if not self._is_current(generation):
            return
        self.artifacts = entries
        self._changed()


__all__ = [
    "ANSI_ESCAPE_RE",
    "BuildSessionController",
    "PLACEHOLDER_ASSIGNED",
    "PLACEHOLDER_LOGS_ERROR",
    "PLACEHOLDER_QUEUED",
    "strip_ansi",
]

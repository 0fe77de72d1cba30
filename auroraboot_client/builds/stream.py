"""Live log streaming session.

A LogStreamSession owns one transport connection for one build and turns
its events into an append-only buffer of text chunks:

    idle -> connecting -> open -> closed
                           |  ^
                           v  |
                          suspect -> closed

An abnormal close does not end the stream straight away. The session
enters ``suspect`` and waits for a grace period, because transports are
known to report spurious abnormal closes during short network
interruptions while the server keeps sending. A chunk arriving inside the
grace period returns the session to ``open``; silence for the whole
period ends it.

The session is transport-agnostic: it never interprets chunk content
beyond discarding chunks that are empty after trimming.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from auroraboot_client.config import CLOSE_NORMAL, Settings
from auroraboot_client.types import ConnectionState, StreamEnd

logger = logging.getLogger(__name__)

# Close code reported when the connection dropped without a close frame
CLOSE_ABNORMAL = 1006

DEFAULT_GRACE_PERIOD = 2.0

MARKER_RECOVERED = "\n--- Connection recovered ---\n"
MARKER_LOST = "\n--- Connection lost (network interruption) ---\n"
MARKER_COMPLETED = "\n--- Build completed ---\n"
MARKER_CONNECT_FAILED = "\n--- Failed to connect to log stream ---\n"

MARKERS = frozenset(
    {MARKER_RECOVERED, MARKER_LOST, MARKER_COMPLETED, MARKER_CONNECT_FAILED}
)


class TransportListener(Protocol):
    """Receiver of transport events."""

    def on_open(self) -> None: ...

    def on_message(self, text: str) -> None: ...

    def on_close(self, code: int) -> None: ...

    def on_error(self, error: BaseException) -> None: ...


class LogTransport(Protocol):
    """A persistent connection delivering log text.

    ``start`` begins connecting and reports events to the listener from
    the event loop. ``close`` tears the connection down; no events are
    delivered afterwards.
    """

    def start(self, url: str, listener: TransportListener) -> None: ...

    def close(self) -> None: ...


class _Connection:
    """Routes one transport's events to the session that started it.

    The session drops events from any connection other than its current
    one, so a torn-down transport cannot mutate a newer stream.
    """

    def __init__(self, session: LogStreamSession) -> None:
        self._session = session

    def on_open(self) -> None:
        self._session._handle_open(self)

    def on_message(self, text: str) -> None:
        self._session._handle_message(self, text)

    def on_close(self, code: int) -> None:
        self._session._handle_close(self, code)

    def on_error(self, error: BaseException) -> None:
        self._session._handle_error(self, error)


class LogStreamSession:
    """State machine streaming the logs of a single build.

    Args:
        transport_factory: Returns a fresh LogTransport for each open().
        grace_period: Seconds to wait after an abnormal close.
        clean_close_codes: Close codes meaning the stream completed.
        on_chunk: Called with every chunk appended to the buffer,
            markers included.
        on_closed: Called once when the stream ends on its own.
            Exceptions raised by either callback are logged and do not
            affect the session.
        clock: Monotonic clock used for activity timestamps.
    """

    def __init__(
        self,
        transport_factory: Callable[[], LogTransport],
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clean_close_codes: Iterable[int] = (CLOSE_NORMAL,),
        on_chunk: Callable[[str], None] | None = None,
        on_closed: Callable[[LogStreamSession], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if grace_period < 0:
            raise ValueError("grace_period must not be negative")
        self._transport_factory = transport_factory
        self.grace_period = grace_period
        self.clean_close_codes = frozenset(clean_close_codes)
        self.on_chunk = on_chunk
        self.on_closed = on_closed
        self._clock = clock

        self._state = ConnectionState.IDLE
        self._chunks: list[str] = []
        self._connection: _Connection | None = None
        self._transport: LogTransport | None = None
        self._grace_handle: asyncio.TimerHandle | None = None
        self._suspect_since: float | None = None

        self.build_id: str | None = None
        self.errors: list[BaseException] = []
        self.end_reason: StreamEnd | None = None
        self.last_activity_at: float | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport_factory: Callable[[], LogTransport] | None = None,
        **kwargs: object,
    ) -> LogStreamSession:
        """Create a session configured from settings.

        Without a transport factory, sessions stream over WebSocket.
        """
        if transport_factory is None:
            from auroraboot_client.builds.transport import WebSocketTransport

            def websocket_transport() -> LogTransport:
                return WebSocketTransport(open_timeout=settings.connect_timeout)

            transport_factory = websocket_transport

        return cls(
            transport_factory,
            grace_period=settings.grace_period,
            clean_close_codes=settings.clean_close_codes,
            **kwargs,  # type: ignore[arg-type]
        )

    def __repr__(self) -> str:
        return (
            f"<LogStreamSession(build_id={self.build_id!r}, "
            f"state='{self._state.value}', chunks={len(self._chunks)})>"
        )

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def buffer(self) -> tuple[str, ...]:
        """Chunks received so far, in delivery order."""
        return tuple(self._chunks)

    @property
    def text(self) -> str:
        """Buffer joined as display text."""
        return "".join(self._chunks)

    @property
    def is_streaming(self) -> bool:
        """Whether the stream may still deliver chunks."""
        return self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.OPEN,
            ConnectionState.SUSPECT,
        )

    @property
    def grace_timer_pending(self) -> bool:
        """Whether a grace timer is currently scheduled."""
        return self._grace_handle is not None

    def open(self, build_id: str, url: str) -> bool:
        """Start streaming a build's logs.

        Only an idle session can open; a call in any other state is
        ignored so a session never drives two connections.

        Args:
            build_id: Build whose logs are streamed.
            url: Stream URL handed to the transport.

        Returns:
            True if a connection attempt was started.
        """
        if self._state != ConnectionState.IDLE:
            logger.debug(
                "Ignoring open(%s): session for build %s is %s",
                build_id,
                self.build_id,
                self._state.value,
            )
            return False

        self.build_id = build_id
        self._chunks = []
        self.errors = []
        self.end_reason = None
        self.last_activity_at = None
        self._suspect_since = None

        connection = _Connection(self)
        self._connection = connection
        self._transport = self._transport_factory()
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Streaming logs of build %s from %s", build_id, url)
        self._transport.start(url, connection)
        return True

    def close(self) -> None:
        """Tear the session down at the owner's request.

        Valid from any state and safe to repeat. No marker is appended and
        ``on_closed`` is not called.
        """
        self._cancel_grace_timer()
        self._release_transport()
        if self._state != ConnectionState.IDLE:
            logger.debug("Closing log session for build %s", self.build_id)
            self._set_state(ConnectionState.IDLE)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(
                "Log session %s: %s -> %s",
                self.build_id,
                self._state.value,
                state.value,
            )
            self._state = state

    def _append(self, chunk: str) -> None:
        self._chunks.append(chunk)
        if self.on_chunk is not None:
            try:
                self.on_chunk(chunk)
            except Exception:
                logger.exception("on_chunk callback of build %s failed", self.build_id)

    def _release_transport(self) -> None:
        transport = self._transport
        self._transport = None
        self._connection = None
        if transport is not None:
            transport.close()

    def _start_grace_timer(self, connection: _Connection) -> None:
        self._cancel_grace_timer()
        loop = asyncio.get_running_loop()
        self._grace_handle = loop.call_later(
            self.grace_period, self._grace_elapsed, connection
        )

    def _cancel_grace_timer(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None

    def _finish(self, reason: StreamEnd, marker: str) -> None:
        self._cancel_grace_timer()
        self._release_transport()
        self.end_reason = reason
        self._set_state(ConnectionState.CLOSED)
        self._append(marker)
        logger.info("Log stream of build %s ended: %s", self.build_id, reason.value)
        if self.on_closed is not None:
            try:
                self.on_closed(self)
            except Exception:
                logger.exception("on_closed callback of build %s failed", self.build_id)

    def _handle_open(self, connection: _Connection) -> None:
        if connection is not self._connection:
            return
        if self._state == ConnectionState.CONNECTING:
            self._set_state(ConnectionState.OPEN)

    def _handle_message(self, connection: _Connection, text: str) -> None:
        if connection is not self._connection or not self.is_streaming:
            return
        # Heartbeat noise neither reaches the buffer nor counts as activity
        if not text.strip():
            return

        self.last_activity_at = self._clock()
        if self._state == ConnectionState.SUSPECT:
            self._cancel_grace_timer()
            logger.info("Log stream of build %s recovered", self.build_id)
            self._append(MARKER_RECOVERED)
        self._set_state(ConnectionState.OPEN)
        self._append(text)

    def _handle_close(self, connection: _Connection, code: int) -> None:
        if connection is not self._connection or not self.is_streaming:
            return

        if code in self.clean_close_codes:
            self._finish(StreamEnd.COMPLETED, MARKER_COMPLETED)
        elif self._state == ConnectionState.CONNECTING:
            self._finish(StreamEnd.CONNECT_FAILED, MARKER_CONNECT_FAILED)
        else:
            logger.info(
                "Log stream of build %s closed abnormally (code %s), "
                "waiting %.1fs for more output",
                self.build_id,
                code,
                self.grace_period,
            )
            self._suspect_since = self._clock()
            self._set_state(ConnectionState.SUSPECT)
            self._start_grace_timer(connection)

    def _handle_error(self, connection: _Connection, error: BaseException) -> None:
        if connection is not self._connection:
            return
        # The close event that follows decides the outcome
        logger.debug("Log stream of build %s reported: %s", self.build_id, error)
        self.errors.append(error)

    def _grace_elapsed(self, connection: _Connection) -> None:
        self._grace_handle = None
        if connection is not self._connection:
            return
        if self._state != ConnectionState.SUSPECT:
            return
        if (
            self.last_activity_at is not None
            and self._suspect_since is not None
            and self.last_activity_at > self._suspect_since
        ):
            return
        self._finish(StreamEnd.LOST, MARKER_LOST)


__all__ = [
    "CLOSE_ABNORMAL",
    "DEFAULT_GRACE_PERIOD",
    "LogStreamSession",
    "LogTransport",
    "MARKERS",
    "MARKER_COMPLETED",
    "MARKER_CONNECT_FAILED",
    "MARKER_LOST",
    "MARKER_RECOVERED",
    "TransportListener",
]

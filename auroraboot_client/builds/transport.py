"""WebSocket transport for live build logs.

Runs a single consumer task over a ``websockets`` client connection and
reports its events to a TransportListener: open, every text message, one
close with the received close code, and connection errors.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosedError, WebSocketException

from auroraboot_client.builds.stream import CLOSE_ABNORMAL, TransportListener
from auroraboot_client.config import CLOSE_NORMAL

logger = logging.getLogger(__name__)


def _as_text(message: str | bytes) -> str:
    if isinstance(message, bytes):
        return message.decode("utf-8", errors="replace")
    return message


class WebSocketTransport:
    """LogTransport backed by a WebSocket connection.

    Each instance drives one connection. ``close()`` stops the consumer
    task; the listener hears nothing after that. Called from inside a
    listener callback, it takes effect as soon as the callback returns and
    the socket is closed before the task ends.

    Exceptions raised by the listener are logged and do not end the
    connection, so ``on_close`` is always delivered unless ``close()`` was
    called.
    """

    def __init__(self, open_timeout: float | None = 10.0) -> None:
        self.open_timeout = open_timeout
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    def start(self, url: str, listener: TransportListener) -> None:
        """Connect to ``url`` in a background task."""
        if self._task is not None:
            raise RuntimeError("WebSocketTransport can only be started once")
        self._task = asyncio.get_running_loop().create_task(
            self._run(url, listener), name=f"log-stream {url}"
        )

    def close(self) -> None:
        """Stop the consumer task and drop the connection."""
        self._closing = True
        task = self._task
        if task is None or task.done():
            return
        # Inside a listener callback: _run leaves the read loop on return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _notify(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Log stream listener %s failed", callback.__name__)

    async def _run(self, url: str, listener: TransportListener) -> None:
        try:
            async with connect(url, open_timeout=self.open_timeout) as ws:
                self._notify(listener.on_open)
                code = CLOSE_NORMAL
                try:
                    if not self._closing:
                        async for message in ws:
                            self._notify(listener.on_message, _as_text(message))
                            if self._closing:
                                break
                        else:
                            if ws.close_code is not None:
                                code = ws.close_code
                except ConnectionClosedError as e:
                    code = e.rcvd.code if e.rcvd is not None else CLOSE_ABNORMAL
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Log stream %s failed: %s", url, e)
            if self._closing:
                return
            self._notify(listener.on_error, e)
            code = CLOSE_ABNORMAL

        if self._closing:
            logger.debug("Log stream %s closed by its owner", url)
            return
        logger.debug("Log stream %s closed with code %s", url, code)
        self._notify(listener.on_close, code)


__all__ = ["WebSocketTransport"]

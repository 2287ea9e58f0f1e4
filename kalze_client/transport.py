# =============================================================================
# Kalze Python Client -- Transport
# =============================================================================
#
# Minimal duplex-socket capability used by KalzeChannel: open, send, close
# and four callback slots.  WebSocketTransport is the production
# implementation on top of ``websockets``; tests plug in a fake.
# =============================================================================

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable

import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from ._logging import logger
from .constants import CONNECTION_TIMEOUT, MAX_MESSAGE_SIZE, WS_CLOSE_ABNORMAL
from .errors import KalzeConnectionError

OpenCallback = Callable[[], Any]
MessageCallback = Callable[[str | bytes], Any]
CloseCallback = Callable[[int, str], Any]
ErrorCallback = Callable[[BaseException], Any]


class Transport(ABC):
    """One duplex connection. Callbacks run on the event loop thread."""

    def __init__(self) -> None:
        self.on_open: OpenCallback | None = None
        self.on_message: MessageCallback | None = None
        self.on_close: CloseCallback | None = None
        self.on_error: ErrorCallback | None = None

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while frames can be sent."""

    @abstractmethod
    def open(self, url: str) -> None:
        """Start connecting. Outcome is reported through the callbacks."""

    @abstractmethod
    def send(self, data: str) -> bool:
        """Queue a text frame. Returns False if the transport is not open."""

    @abstractmethod
    def close(self, code: int, reason: str = "") -> None:
        """Start the closing handshake, or abort a pending open."""

    def detach(self) -> None:
        """Drop all callbacks so nothing fires after teardown."""
        self.on_open = None
        self.on_message = None
        self.on_close = None
        self.on_error = None


TransportFactory = Callable[[], Transport]


class WebSocketTransport(Transport):
    """Transport backed by ``websockets.asyncio.client``.

    Must be opened from inside a running event loop. Keep-alive pings of
    the library are disabled; the channel runs its own ``ping`` envelope.

    Args:
        open_timeout: Seconds allowed for the opening handshake.
        max_size: Maximum inbound frame size in bytes.
    """

    def __init__(
        self,
        *,
        open_timeout: float = CONNECTION_TIMEOUT,
        max_size: int = MAX_MESSAGE_SIZE,
    ) -> None:
        super().__init__()
        self._open_timeout = open_timeout
        self._max_size = max_size
        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    def open(self, url: str) -> None:
        if self._run_task is not None:
            raise KalzeConnectionError("Transport already opened")
        loop = asyncio.get_running_loop()
        self._run_task = loop.create_task(self._run(url))

    async def _run(self, url: str) -> None:
        code, reason = WS_CLOSE_ABNORMAL, ""
        try:
            async with websockets.asyncio.client.connect(
                url,
                open_timeout=self._open_timeout,
                max_size=self._max_size,
                ping_interval=None,
            ) as ws:
                self._ws = ws
                if self.on_open:
                    self.on_open()
                try:
                    async for message in ws:
                        if self.on_message:
                            self.on_message(message)
                except ConnectionClosedError:
                    pass
            code = ws.close_code if ws.close_code is not None else WS_CLOSE_ABNORMAL
            reason = ws.close_reason or ""
        except asyncio.CancelledError:
            return
        except Exception as exc:
            logger.debug("WebSocket transport failed: %s", exc)
            if self.on_error:
                self.on_error(exc)
        finally:
            self._ws = None

        if self.on_close:
            self.on_close(code, reason)

    def send(self, data: str) -> bool:
        if not self.is_open:
            return False
        self._fire_task(self._send(data))
        return True

    async def _send(self, data: str) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(data)
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
        except Exception as exc:
            logger.debug("Send failed: %s", exc)

    def close(self, code: int, reason: str = "") -> None:
        ws = self._ws
        if ws is not None:
            self._fire_task(ws.close(code, reason))
        elif self._run_task is not None and not self._run_task.done():
            # Still in the opening handshake
            self._run_task.cancel()

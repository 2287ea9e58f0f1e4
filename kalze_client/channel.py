# =============================================================================
# Kalze Python Client -- Channel
# =============================================================================
#
# One logical channel: connection lifecycle, server control messages,
# heartbeat, exponential-backoff reconnection and subscriber fan-out.
# Everything runs on the event loop thread; timers are asyncio tasks whose
# handles are kept so disconnect() can cancel them deterministically.
# =============================================================================

from __future__ import annotations

import asyncio
import functools
import time
from typing import Any, Callable
from urllib.parse import quote, urlencode

from ._logging import logger
from .constants import (
    CLOSE_CODE_MESSAGES,
    ERROR_INVALID_KEY_FORMAT,
    EVENT_CONNECTED,
    EVENT_DISCONNECTED,
    EVENT_ERROR,
    EVENT_ESTABLISHED,
    EVENT_PONG,
    EVENT_RECONNECT_FAILED,
    EVENT_RECONNECTING,
    EVENT_STATE_CHANGE,
    PUBLIC_KEY_PATTERN,
    TERMINAL_CLOSE_CODES,
    WILDCARD,
    WS_CLOSE_ABNORMAL,
    WS_CLOSE_INVALID_KEY,
    WS_CLOSE_NORMAL,
    WS_CLOSE_RESERVED_START,
)
from .errors import KalzeProtocolError
from .protocol import decode_envelope, encode_client_event, encode_ping
from .transport import Transport, TransportFactory, WebSocketTransport
from .types import (
    ChannelEvent,
    ConnectionEstablished,
    ConnectionState,
    Disconnected,
    ErrorInfo,
    KalzeOptions,
    ReconnectFailed,
    Reconnecting,
    StateChange,
)

EventCallback = Callable[[Any], Any]


def close_reason_message(code: int, reason: str) -> str | None:
    """Human-readable error for a close, or ``None`` when it is not an error.

    An explicit reason from the server always wins.  Without one, known
    server codes map to fixed messages and any other reserved-range code
    is reported as a generic rejection.
    """
    if reason:
        return reason
    if code in CLOSE_CODE_MESSAGES:
        return CLOSE_CODE_MESSAGES[code]
    if code >= WS_CLOSE_RESERVED_START:
        return f"Connection rejected ({code})"
    return None


class KalzeChannel:
    """A subscription to one channel, with its own WebSocket.

    The channel starts connecting as soon as it is constructed, so it must
    be created from inside a running event loop when the default
    :class:`~kalze_client.transport.WebSocketTransport` is used.

    Args:
        name: Channel name, e.g. ``"orders"``.
        options: Shared client configuration.
        transport_factory: Zero-argument callable returning a fresh
            :class:`~kalze_client.transport.Transport` per attempt.

    Example::

        channel = client.subscribe("orders")
        channel.on("order:created", lambda data: print(data))

        channel.trigger({"hello": "world"})
    """

    def __init__(
        self,
        name: str,
        options: KalzeOptions,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._name = name
        self._options = options
        self._transport_factory = transport_factory or WebSocketTransport

        # State
        self._transport: Transport | None = None
        self._socket_id: str | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._last_frame_at: float | None = None
        self._manual_close = False

        # Subscribers: event name -> callbacks
        self._listeners: dict[str, list[EventCallback]] = {}

        # Tasks
        self._reconnect_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._handshake_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self._connect()

    def __repr__(self) -> str:
        return f"<KalzeChannel {self._name!r} state={self._state.value}>"

    # -- Properties -----------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def options(self) -> KalzeOptions:
        return self._options

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def socket_id(self) -> str | None:
        """Server-assigned id, set only while connected."""
        return self._socket_id

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # -- Connect / Disconnect -------------------------------------------------

    def connect(self) -> None:
        """Start a fresh connection attempt.

        Cancels a pending retry and resets the attempt counter.  Does
        nothing while a transport is already open or opening.
        """
        if self._transport is not None or self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTED,
        ):
            return
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        self._connect()

    def _connect(self) -> None:
        if self._transport is not None:
            return
        self._manual_close = False

        if not PUBLIC_KEY_PATTERN.match(self._options.key):
            self._log("Refusing to connect: invalid key format")
            self._emit(
                EVENT_ERROR,
                ErrorInfo(ERROR_INVALID_KEY_FORMAT, code=WS_CLOSE_INVALID_KEY),
            )
            return

        self._set_state(
            ConnectionState.RECONNECTING
            if self._reconnect_attempts > 0
            else ConnectionState.CONNECTING
        )
        if self._manual_close or self._transport is not None:
            # A state:change subscriber called disconnect() or connect()
            return

        url = self._build_url()
        self._log(
            "Connecting to %s/c/%s/%s",
            self._options.ws_url,
            self._options.subdomain,
            self._name,
        )

        try:
            transport = self._transport_factory()
            self._attach(transport)
            self._transport = transport
            transport.open(url)
        except Exception as exc:
            logger.warning("[Kalze:%s] Failed to open transport: %s", self._name, exc)
            self._release_transport()
            self._set_state(ConnectionState.DISCONNECTED)
            self._emit(EVENT_ERROR, ErrorInfo("Failed to connect"))
            if not self._manual_close and self._transport is None:
                self._schedule_reconnect()
            return

        self._start_handshake_timer()

    def disconnect(self) -> None:
        """Tear the channel down and drop every subscriber.

        Cancels all timers and closes the transport with a normal-closure
        code within this call; no callback of this channel fires
        afterwards.  ``disconnected``/``state:change`` are not emitted.
        """
        self._manual_close = True
        self._cancel_reconnect()
        self._cancel_handshake_timer()
        self._stop_heartbeat()

        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.detach()
            transport.close(WS_CLOSE_NORMAL, "Client disconnect")

        for task in self._background_tasks:
            task.cancel()
        self._background_tasks.clear()

        self._socket_id = None
        self._state = ConnectionState.DISCONNECTED
        self._listeners.clear()
        self._log("Disconnected by client")

    # -- Send -----------------------------------------------------------------

    def trigger(self, data: Any) -> bool:
        """Send a ``client:event`` envelope to the channel.

        Returns:
            True if the frame was handed to the transport, False when the
            channel is not connected.

        Raises:
            KalzeProtocolError: If ``data`` is not JSON serializable.
        """
        transport = self._transport
        if (
            transport is None
            or self._state != ConnectionState.CONNECTED
            or not transport.is_open
        ):
            self._log("Cannot trigger event: not connected")
            return False
        return transport.send(encode_client_event(data))

    # -- Subscribers ----------------------------------------------------------

    def on(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback`` for ``event`` (``"*"`` for every event).

        Callbacks receive the event data; wildcard callbacks receive a
        :class:`~kalze_client.types.ChannelEvent`.  Coroutine functions
        are scheduled as tasks.

        Returns:
            A zero-argument function that unregisters the callback.
        """
        listeners = self._listeners.setdefault(event, [])
        if callback not in listeners:
            listeners.append(callback)
        return functools.partial(self.off, event, callback)

    def once(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Like :meth:`on`, but the callback unregisters itself on first call."""

        def wrapper(data: Any) -> Any:
            self.off(event, wrapper)
            return callback(data)

        wrapper.__wrapped__ = callback  # type: ignore[attr-defined]
        return self.on(event, wrapper)

    def off(self, event: str, callback: EventCallback | None = None) -> None:
        """Remove one callback, or every callback for ``event``."""
        if callback is None:
            self._listeners.pop(event, None)
            return

        listeners = self._listeners.get(event)
        if not listeners:
            return
        listeners[:] = [
            cb
            for cb in listeners
            if cb != callback and getattr(cb, "__wrapped__", None) != callback
        ]
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str | None = None) -> int:
        """Number of subscribers for ``event``, or across all events if omitted."""
        if event is not None:
            return len(self._listeners.get(event, ()))
        return sum(len(cbs) for cbs in self._listeners.values())

    # -- Internal: transport callbacks ----------------------------------------

    def _attach(self, transport: Transport) -> None:
        """Wire callbacks that ignore events from a superseded transport."""

        def on_open() -> None:
            if transport is self._transport:
                self._log("Connection opened")

        def on_message(raw: str | bytes) -> None:
            if transport is self._transport:
                self._handle_message(raw)

        def on_close(code: int, reason: str) -> None:
            if transport is self._transport:
                self._handle_close(code, reason)

        def on_error(exc: BaseException) -> None:
            if transport is self._transport:
                logger.warning("[Kalze:%s] WebSocket error: %s", self._name, exc)
                self._emit(EVENT_ERROR, ErrorInfo("WebSocket error"))

        transport.on_open = on_open
        transport.on_message = on_message
        transport.on_close = on_close
        transport.on_error = on_error

    def _release_transport(self) -> Transport | None:
        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.detach()
        return transport

    def _handle_message(self, raw: str | bytes) -> None:
        self._last_frame_at = time.monotonic()
        try:
            envelope = decode_envelope(raw)
        except KalzeProtocolError as exc:
            self._log("Failed to parse message: %s", exc)
            return

        self._log("Received: %s", envelope.event)

        if envelope.event == EVENT_ESTABLISHED:
            try:
                established = ConnectionEstablished.from_payload(envelope.data)
            except KalzeProtocolError as exc:
                self._log("Ignoring established message: %s", exc)
                return
            self._handle_established(established)
        elif envelope.event == EVENT_PONG:
            return
        else:
            self._emit(envelope.event, envelope.data)

    def _handle_established(self, established: ConnectionEstablished) -> None:
        self._socket_id = established.socket_id
        self._transition(ConnectionState.CONNECTED)
        self._reconnect_attempts = 0
        self._cancel_handshake_timer()
        self._start_heartbeat()

        self._emit(EVENT_CONNECTED, established)
        self._emit(EVENT_STATE_CHANGE, StateChange(self._state))

        self._log("Connected with socket ID: %s", self._socket_id)

    def _handle_close(self, code: int, reason: str) -> None:
        self._log("Connection closed: %s - %s", code, reason)

        self._stop_heartbeat()
        self._cancel_handshake_timer()
        self._release_transport()
        self._socket_id = None
        self._transition(ConnectionState.DISCONNECTED)

        message = close_reason_message(code, reason)
        if message:
            self._emit(EVENT_ERROR, ErrorInfo(message, code=code))
        self._emit(EVENT_DISCONNECTED, Disconnected(code, reason))
        self._emit(EVENT_STATE_CHANGE, StateChange(self._state))

        if self._manual_close or self._transport is not None:
            # A subscriber already called disconnect() or connect()
            return
        if code in TERMINAL_CLOSE_CODES:
            self._log("Not reconnecting due to close code %s", code)
            return

        self._schedule_reconnect()

    def _abort_transport(self, reason: str) -> None:
        """Close the live transport locally and handle it as an abnormal close."""
        transport = self._release_transport()
        if transport is not None:
            transport.close(WS_CLOSE_NORMAL, reason)
        self._handle_close(WS_CLOSE_ABNORMAL, reason)

    # -- Internal: reconnection -----------------------------------------------

    def _schedule_reconnect(self) -> None:
        if not self._options.auto_reconnect:
            return

        if self._reconnect_attempts >= self._options.max_reconnect_attempts:
            self._log("Max reconnect attempts reached")
            self._emit(EVENT_RECONNECT_FAILED, ReconnectFailed(self._reconnect_attempts))
            return

        self._reconnect_attempts += 1
        delay = self._options.reconnect_delay * 2 ** (self._reconnect_attempts - 1)

        self._log(
            "Scheduling reconnect attempt %d in %.3fs", self._reconnect_attempts, delay
        )
        self._emit(EVENT_RECONNECTING, Reconnecting(self._reconnect_attempts, delay))

        if self._manual_close or self._transport is not None:
            return

        self._cancel_reconnect()
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay)
        )

    async def _reconnect_after(self, delay: float) -> None:
        """Wait, then try to reconnect."""
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        self._reconnect_task = None
        self._connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task:
            self._reconnect_task.cancel()
            self._reconnect_task = None

    # -- Internal: handshake timeout ------------------------------------------

    def _start_handshake_timer(self) -> None:
        timeout = self._options.handshake_timeout
        if (
            timeout is None
            or self._transport is None
            or self._state == ConnectionState.CONNECTED
        ):
            return
        self._cancel_handshake_timer()
        self._handshake_task = asyncio.get_running_loop().create_task(
            self._handshake_watchdog(timeout, self._transport)
        )

    async def _handshake_watchdog(self, timeout: float, transport: Transport) -> None:
        try:
            await asyncio.sleep(timeout)
        except asyncio.CancelledError:
            return

        self._handshake_task = None
        if transport is not self._transport or self._state == ConnectionState.CONNECTED:
            return
        logger.warning(
            "[Kalze:%s] No connection:established within %.1fs", self._name, timeout
        )
        self._abort_transport("Handshake timed out")

    def _cancel_handshake_timer(self) -> None:
        if self._handshake_task:
            self._handshake_task.cancel()
            self._handshake_task = None

    # -- Internal: heartbeat --------------------------------------------------

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.get_running_loop().create_task(
            self._heartbeat_loop()
        )

    async def _heartbeat_loop(self) -> None:
        """Send ``ping`` every heartbeat_interval; detect idle timeout if enabled."""
        interval = self._options.heartbeat_interval
        idle_timeout = self._options.idle_timeout
        while True:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                return

            transport = self._transport
            if transport is None:
                return

            if idle_timeout is not None and self._last_frame_at is not None:
                idle = time.monotonic() - self._last_frame_at
                if idle > idle_timeout:
                    logger.warning(
                        "[Kalze:%s] Idle timeout (%.0fs), reconnecting", self._name, idle
                    )
                    self._heartbeat_task = None
                    self._abort_transport("Heartbeat timed out")
                    return

            if transport.is_open:
                transport.send(encode_ping())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    # -- Internal: dispatch ---------------------------------------------------

    def _emit(self, event: str, data: Any) -> None:
        """Call ``event`` subscribers, then wildcard subscribers."""
        for callback in list(self._listeners.get(event, ())):
            self._invoke(callback, data, event)

        wildcard = self._listeners.get(WILDCARD)
        if wildcard:
            envelope = ChannelEvent(event=event, data=data)
            for callback in list(wildcard):
                self._invoke(callback, envelope, event)

    def _invoke(self, callback: EventCallback, data: Any, event: str) -> None:
        try:
            result = callback(data)
            if asyncio.iscoroutine(result):
                self._fire_task(result, event)
        except Exception:
            logger.exception("[Kalze:%s] Error in listener for '%s'", self._name, event)

    def _fire_task(self, coro: Any, event: str) -> None:
        """Schedule an async listener with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(functools.partial(self._on_listener_done, event))

    def _on_listener_done(self, event: str, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "[Kalze:%s] Error in async listener for '%s'",
                self._name,
                event,
                exc_info=exc,
            )

    # -- State management -----------------------------------------------------

    def _transition(self, new_state: ConnectionState) -> None:
        old = self._state
        self._state = new_state
        self._log("State: %s -> %s", old.value, new_state.value)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        self._transition(new_state)
        self._emit(EVENT_STATE_CHANGE, StateChange(new_state))

    # -- Helpers --------------------------------------------------------------

    def _build_url(self) -> str:
        """``{ws_url}/c/{subdomain}/{channel}?key={key}``"""
        base = self._options.ws_url.rstrip("/")
        subdomain = quote(self._options.subdomain, safe="")
        channel = quote(self._name, safe="")
        query = urlencode({"key": self._options.key})
        return f"{base}/c/{subdomain}/{channel}?{query}"

    def _log(self, message: str, *args: Any) -> None:
        if self._options.debug:
            logger.debug("[Kalze:%s] " + message, self._name, *args)

# =============================================================================
# Kalze Python Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .constants import (
    DEFAULT_WS_URL,
    HANDSHAKE_TIMEOUT,
    HEARTBEAT_INTERVAL,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_ATTEMPTS,
)
from .errors import KalzeConfigError, KalzeProtocolError


class ConnectionState(str, Enum):
    """Channel connection lifecycle state.

    Typical flow: CONNECTING -> CONNECTED -> DISCONNECTED, then
    RECONNECTING -> CONNECTED for every automatic retry.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class KalzeOptions:
    """Configuration shared by the client and every channel it creates.

    Attributes:
        key: Public API key, ``wpk_live_`` followed by 43 URL-safe characters.
        subdomain: Account subdomain, e.g. ``"rojo-azul-casa-gato"``.
        ws_url: Base WebSocket endpoint.
        auto_reconnect: Retry with exponential backoff after a drop.
        max_reconnect_attempts: Retries before ``reconnect:failed`` fires.
        reconnect_delay: Base backoff delay in seconds.
        debug: Log connection diagnostics at DEBUG level.
        heartbeat_interval: Seconds between ``ping`` frames while connected.
        handshake_timeout: Seconds to wait for ``connection:established``,
            ``None`` to wait forever.
        idle_timeout: Force a reconnect when no frame arrives for this
            many seconds while connected, ``None`` to disable.
    """

    key: str
    subdomain: str
    ws_url: str = DEFAULT_WS_URL
    auto_reconnect: bool = True
    max_reconnect_attempts: int = RECONNECT_MAX_ATTEMPTS
    reconnect_delay: float = RECONNECT_BASE_DELAY
    debug: bool = False
    heartbeat_interval: float = HEARTBEAT_INTERVAL
    handshake_timeout: float | None = HANDSHAKE_TIMEOUT
    idle_timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.ws_url:
            self.ws_url = DEFAULT_WS_URL
        if self.max_reconnect_attempts < 0:
            raise KalzeConfigError("max_reconnect_attempts must be >= 0")
        if self.reconnect_delay < 0:
            raise KalzeConfigError("reconnect_delay must be >= 0")
        if self.heartbeat_interval <= 0:
            raise KalzeConfigError("heartbeat_interval must be > 0")
        for name in ("handshake_timeout", "idle_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise KalzeConfigError(f"{name} must be > 0 or None")


@dataclass(frozen=True, slots=True)
class Envelope:
    """A decoded ``{event, data}`` wire frame."""

    event: str
    data: Any = None
    timestamp: float | None = None


@dataclass(frozen=True, slots=True)
class ConnectionEstablished:
    """Payload of the server's ``connection:established`` message."""

    socket_id: str
    channel: str | None = None
    subdomain: str | None = None
    timestamp: float | None = None

    @classmethod
    def from_payload(cls, data: Any) -> ConnectionEstablished:
        if not isinstance(data, dict) or not data.get("socketId"):
            raise KalzeProtocolError("connection:established without socketId")
        return cls(
            socket_id=str(data["socketId"]),
            channel=data.get("channel"),
            subdomain=data.get("subdomain"),
            timestamp=data.get("timestamp"),
        )


@dataclass(frozen=True, slots=True)
class StateChange:
    state: ConnectionState


@dataclass(frozen=True, slots=True)
class Disconnected:
    code: int
    reason: str


@dataclass(frozen=True, slots=True)
class Reconnecting:
    """Emitted when a retry is scheduled.

    Attributes:
        attempt: 1-based retry number.
        delay: Seconds until the retry fires.
    """

    attempt: int
    delay: float


@dataclass(frozen=True, slots=True)
class ReconnectFailed:
    attempts: int


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Payload of the ``error`` event. ``code`` is set for close-code errors."""

    message: str
    code: int | None = None


@dataclass(frozen=True, slots=True)
class ChannelEvent:
    """Envelope delivered to wildcard (``*``) subscribers."""

    event: str
    data: Any = None

"""Kalze Python client for real-time channels.

Usage::

    import asyncio
    from kalze_client import Kalze

    async def main():
        client = Kalze("wpk_live_...", "rojo-azul-casa-gato")
        chat = client.subscribe("chat")

        chat.on("message", lambda data: print("message:", data))
        chat.on("connected", lambda info: chat.trigger({"hello": "world"}))

        try:
            await asyncio.sleep(3600)
        finally:
            client.disconnect_all()

    asyncio.run(main())

Optional extras::

    pip install kalze-client[orjson]   # faster JSON codec
"""

from ._version import __version__
from .channel import KalzeChannel
from .client import Kalze
from .errors import (
    KalzeConfigError,
    KalzeConnectionError,
    KalzeError,
    KalzeProtocolError,
)
from .transport import Transport, WebSocketTransport
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

__all__ = [
    "__version__",
    "Kalze",
    "KalzeChannel",
    "KalzeOptions",
    "Transport",
    "WebSocketTransport",
    "ConnectionState",
    "ConnectionEstablished",
    "StateChange",
    "Disconnected",
    "Reconnecting",
    "ReconnectFailed",
    "ErrorInfo",
    "ChannelEvent",
    "KalzeError",
    "KalzeConfigError",
    "KalzeConnectionError",
    "KalzeProtocolError",
]

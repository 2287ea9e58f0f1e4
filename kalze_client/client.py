# =============================================================================
# Kalze Python Client -- Client
# =============================================================================
#
# Primary public API.  Keeps one KalzeChannel per channel name.
# =============================================================================

from __future__ import annotations

from typing import Any

from ._logging import logger
from .channel import KalzeChannel
from .errors import KalzeConfigError
from .transport import TransportFactory
from .types import KalzeOptions


class Kalze:
    """Entry point: creates and tracks channel subscriptions.

    Args:
        key: Public API key (``wpk_live_*``).
        subdomain: Account subdomain, e.g. ``"rojo-azul-casa-gato"``.
        transport_factory: Override the WebSocket transport, mainly for
            tests.
        **options: Remaining :class:`~kalze_client.types.KalzeOptions`
            fields -- ``ws_url``, ``auto_reconnect``,
            ``max_reconnect_attempts``, ``reconnect_delay``, ``debug``,
            ``heartbeat_interval``, ``handshake_timeout``, ``idle_timeout``.

    Raises:
        KalzeConfigError: If ``key`` or ``subdomain`` is empty, or an
            option is out of range.

    Example::

        async def main():
            with Kalze("wpk_live_...", "rojo-azul-casa-gato") as client:
                orders = client.subscribe("orders")
                orders.on("order:created", print)
                await asyncio.sleep(60)
    """

    def __init__(
        self,
        key: str,
        subdomain: str,
        *,
        transport_factory: TransportFactory | None = None,
        **options: Any,
    ) -> None:
        if not key:
            raise KalzeConfigError("API key is required")
        if not subdomain:
            raise KalzeConfigError("Subdomain is required")

        try:
            self._options = KalzeOptions(key=key, subdomain=subdomain, **options)
        except TypeError as exc:
            raise KalzeConfigError(str(exc)) from exc
        self._transport_factory = transport_factory
        self._channels: dict[str, KalzeChannel] = {}

    # -- Context manager ------------------------------------------------------

    def __enter__(self) -> Kalze:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.disconnect_all()

    # -- Properties -----------------------------------------------------------

    @property
    def options(self) -> KalzeOptions:
        return self._options

    @property
    def channels(self) -> list[str]:
        """Names of all subscribed channels."""
        return list(self._channels)

    # -- Subscribe / Unsubscribe ----------------------------------------------

    def subscribe(self, channel_name: str) -> KalzeChannel:
        """Return the channel for ``channel_name``, connecting it on first use."""
        channel = self._channels.get(channel_name)
        if channel is not None:
            return channel

        channel = KalzeChannel(
            channel_name,
            self._options,
            transport_factory=self._transport_factory,
        )
        self._channels[channel_name] = channel
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        """Disconnect and forget a channel. Unknown names are ignored."""
        channel = self._channels.pop(channel_name, None)
        if channel is not None:
            channel.disconnect()

    def get_channel(self, channel_name: str) -> KalzeChannel | None:
        return self._channels.get(channel_name)

    def disconnect_all(self) -> None:
        """Disconnect every channel and clear the registry."""
        if self._channels:
            logger.debug("Disconnecting %d channel(s)", len(self._channels))
        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            channel.disconnect()

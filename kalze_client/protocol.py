# =============================================================================
# Kalze Python Client -- Wire Protocol Codec
# =============================================================================
#
# Every frame, in both directions, is a JSON text frame:
#
#   Inbound:   {"event": "<name>", "data": <any>, "timestamp"?: <number>}
#   Outbound:  {"event": "ping"}
#              {"event": "client:event", "data": <any>}
# =============================================================================

from __future__ import annotations

import json
from typing import Any

from .constants import EVENT_CLIENT, EVENT_PING
from .errors import KalzeProtocolError
from .types import Envelope

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


def decode_envelope(raw: str | bytes) -> Envelope:
    """Parse an inbound frame into an :class:`Envelope`.

    Raises:
        KalzeProtocolError: If the frame is not JSON, not an object, or
            has no string ``event`` field.
    """
    try:
        message = _json_loads(raw)
    except ValueError as exc:
        raise KalzeProtocolError(f"Invalid JSON frame: {exc}") from exc

    if not isinstance(message, dict):
        raise KalzeProtocolError("Frame is not a JSON object")

    event = message.get("event")
    if not isinstance(event, str) or not event:
        raise KalzeProtocolError("Frame has no event name")

    timestamp = message.get("timestamp")
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        timestamp = None

    return Envelope(event=event, data=message.get("data"), timestamp=timestamp)


def encode_envelope(event: str, data: Any = None) -> str:
    """Serialize an outbound envelope. ``data`` is omitted when ``None``."""
    message: dict[str, Any] = {"event": event}
    if data is not None:
        message["data"] = data
    try:
        return _json_dumps(message)
    except (TypeError, ValueError) as exc:
        raise KalzeProtocolError(f"Payload is not JSON serializable: {exc}") from exc


def encode_ping() -> str:
    return encode_envelope(EVENT_PING)


def encode_client_event(data: Any) -> str:
    """Wrap application data in a ``client:event`` envelope."""
    message = {"event": EVENT_CLIENT, "data": data}
    try:
        return _json_dumps(message)
    except (TypeError, ValueError) as exc:
        raise KalzeProtocolError(f"Payload is not JSON serializable: {exc}") from exc

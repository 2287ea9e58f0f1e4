# =============================================================================
# Kalze Python Client -- Protocol Constants
# =============================================================================

import re

DEFAULT_WS_URL = "wss://ws.websocket.cl"

# Public keys: "wpk_live_" + 43 URL-safe characters
PUBLIC_KEY_PATTERN = re.compile(r"^wpk_live_[A-Za-z0-9_-]{43}$")

# -- Timing (seconds) --------------------------------------------------------

HEARTBEAT_INTERVAL = 25.0
HANDSHAKE_TIMEOUT = 10.0
CONNECTION_TIMEOUT = 10.0

# -- Reconnection -------------------------------------------------------------

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_ATTEMPTS = 10

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Wire events ---------------------------------------------------------------

EVENT_ESTABLISHED = "connection:established"
EVENT_PONG = "pong"
EVENT_PING = "ping"
EVENT_CLIENT = "client:event"

# -- Public events emitted to subscribers --------------------------------------

EVENT_CONNECTED = "connected"
EVENT_DISCONNECTED = "disconnected"
EVENT_STATE_CHANGE = "state:change"
EVENT_RECONNECTING = "reconnecting"
EVENT_RECONNECT_FAILED = "reconnect:failed"
EVENT_ERROR = "error"
WILDCARD = "*"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
WS_CLOSE_ABNORMAL = 1006  # local only, never sent on the wire

# Server-defined, reserved range starts at 4000
WS_CLOSE_RESERVED_START = 4000
WS_CLOSE_INVALID_PATH = 4000
WS_CLOSE_GOING_AWAY = 4001
WS_CLOSE_PROTOCOL_ERROR = 4002
WS_CLOSE_MISSING_KEY = 4401
WS_CLOSE_INVALID_KEY = 4403
WS_CLOSE_CONNECTION_LIMIT = 4408
WS_CLOSE_TERMINAL = 4999

# Closed by policy: never reconnect after these
# (older releases retried on 4401/4403/4408; they are terminal here)
TERMINAL_CLOSE_CODES = frozenset(
    {
        WS_CLOSE_INVALID_PATH,
        WS_CLOSE_GOING_AWAY,
        WS_CLOSE_PROTOCOL_ERROR,
        WS_CLOSE_MISSING_KEY,
        WS_CLOSE_INVALID_KEY,
        WS_CLOSE_CONNECTION_LIMIT,
        WS_CLOSE_TERMINAL,
    }
)

CLOSE_CODE_MESSAGES = {
    WS_CLOSE_MISSING_KEY: "Missing API key (?key=...)",
    WS_CLOSE_INVALID_KEY: "Invalid API key",
    WS_CLOSE_CONNECTION_LIMIT: "Connection limit exceeded",
    WS_CLOSE_INVALID_PATH: "Invalid path. Expected /c/:subdomain/:channel",
}

# Emitted locally when the configured key fails PUBLIC_KEY_PATTERN
ERROR_INVALID_KEY_FORMAT = "Invalid public API key format. Expected wpk_live_*"

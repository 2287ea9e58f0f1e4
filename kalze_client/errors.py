# =============================================================================
# Kalze Python Client -- Error Types
# =============================================================================


class KalzeError(Exception):
    """Base exception for all Kalze client errors."""


class KalzeConfigError(KalzeError, ValueError):
    """Invalid client configuration (missing key, missing subdomain, bad option)."""


class KalzeConnectionError(KalzeError):
    """The transport could not be created or opened."""


class KalzeProtocolError(KalzeError):
    """Malformed inbound frame (not JSON, not an envelope)."""

# =============================================================================
# Kalze Python Client -- Logging
# =============================================================================

import logging

logger = logging.getLogger("kalze_client")
logger.addHandler(logging.NullHandler())

"""
Telemetry setup for the image router.
"""
import logging
from typing import Optional

from imgrouter.config.settings import Settings
from imgrouter.telemetry.logging import setup_logging
from imgrouter.telemetry.tracing import setup_tracing


logger = logging.getLogger(__name__)


def init_telemetry(settings: Settings, log_level: Optional[str] = None) -> None:
    """
    Initialize all telemetry components.

    Args:
        settings: Application settings
        log_level: Log level (default: from settings)
    """
    # Logging first, so tracing setup can report
    setup_logging(settings, log_level)

    if setup_tracing(settings):
        logger.info("Telemetry initialized")
    else:
        logger.info("Telemetry is disabled")

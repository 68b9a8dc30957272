"""
Logging configuration for the image router.
"""
import logging
import logging.config
import sys
from typing import Optional

from imgrouter.config.settings import Settings


# Per-request and per-job records (request id, provider, task id, timings)
request_logger = logging.getLogger("imgrouter.request")


def setup_logging(settings: Settings, log_level: Optional[str] = None) -> None:
    """
    Set up logging configuration.

    Args:
        settings: Application settings
        log_level: Log level override (default: from settings)
    """
    log_level = log_level or settings.log_level or "INFO"
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
            "json": {
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": numeric_level,
                "formatter": "standard",
                "stream": sys.stdout,
            },
            "request_handler": {
                "class": "logging.StreamHandler",
                "level": numeric_level,
                "formatter": "standard",
                "stream": sys.stdout,
            }
        },
        "loggers": {
            "": {  # Root logger
                "handlers": ["console"],
                "level": numeric_level,
                "propagate": True,
            },
            "imgrouter": {
                "handlers": ["console"],
                "level": numeric_level,
                "propagate": False,
            },
            "imgrouter.request": {
                "handlers": ["request_handler"],
                "level": numeric_level,
                "propagate": False,
            },
        },
    }

    # Structured logs in production
    if settings.environment == "production":
        logging_config["handlers"]["console"]["formatter"] = "json"
        logging_config["handlers"]["request_handler"]["formatter"] = "json"

    logging.config.dictConfig(logging_config)

    logging.getLogger(__name__).info(f"Logging initialized with level: {log_level}")


class RequestLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that prefixes messages with the request id.
    """

    def process(self, msg, kwargs):
        extra = {**(self.extra or {}), **kwargs.get("extra", {})}
        kwargs["extra"] = extra
        request_id = extra.get("request_id", "unknown")
        return f"[{request_id}] {msg}", kwargs

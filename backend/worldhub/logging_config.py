import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
TELEMETRY_LOG_FORMAT = "%(asctime)s %(message)s"


def configure_logging() -> None:
    """Configure hub logging from ``HUB_LOG_LEVEL`` / ``HUB_TELEMETRY_LOG_LEVEL`` / ``HUB_DEBUG_HTTP``."""
    level = os.getenv("HUB_LOG_LEVEL", "INFO").upper()
    telemetry_level = os.getenv("HUB_TELEMETRY_LOG_LEVEL", level).upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": DEFAULT_LOG_FORMAT},
                "telemetry": {"format": TELEMETRY_LOG_FORMAT},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
                "telemetry": {
                    "class": "logging.StreamHandler",
                    "formatter": "telemetry",
                },
            },
            "loggers": {
                "worldhub.telemetry": {
                    "handlers": ["telemetry"],
                    "level": telemetry_level,
                    "propagate": False,
                },
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    if os.getenv("HUB_DEBUG_HTTP", "0") == "1":
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)

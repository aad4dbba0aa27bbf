import logging
from logging.config import dictConfig
from typing import Optional

from studydeck.config.settings import settings

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from STUDYDECK_LOG_LEVEL (or an explicit level)."""
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": (level or settings.log_level).upper(),
            },
        }
    )

    if logging.getLogger().level > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)

"""
Logging configuration for podharness and the kubernetes client it drives.
"""

import logging
import logging.config
from typing import Any, Dict, Optional

from .config import get_settings


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration at the given level."""
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            }
        },
        "loggers": {
            "podharness": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            # The kubernetes client logs every request body at DEBUG
            "kubernetes": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            },
            "urllib3": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            },
            "websocket": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": level,
            "handlers": ["default"]
        }
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the logging configuration. Defaults to the configured log_level."""
    logging.config.dictConfig(get_logging_config(level or get_settings().log_level))

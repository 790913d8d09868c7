"""Central logging configuration for the analytics engine."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path

from pydantic import ValidationError

from training_engine.config import get_settings

_configured = False


def _default_config(log_dir: Path, level: str) -> dict:
    log_path = log_dir / "engine.log"
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": fmt,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
            "file": {
                "class": "logging.FileHandler",
                "filename": str(log_path),
                "encoding": "utf-8",
                "formatter": "standard",
                "level": level,
            },
        },
        "loggers": {
            "training_engine": {
                "level": level,
                "propagate": True,
            },
        },
        "root": {
            "level": level,
            "handlers": ["console", "file"],
        },
    }


def configure_logging(level: str | None = None) -> None:
    """Configure engine logging once per process.

    Args:
        level: Optional level overriding ``LOG_LEVEL`` (used by the CLI scripts).
    """

    global _configured
    if _configured:
        return

    try:
        settings = get_settings()
        log_dir = settings.log_dir
        configured_level = settings.log_level
    except ValidationError:
        # Malformed environment; still log somewhere so the error is visible.
        log_dir = Path("logs")
        configured_level = "INFO"
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(_default_config(log_dir, (level or configured_level).upper()))
    _configured = True
    logging.getLogger(__name__).debug("Logging configured | dir=%s", log_dir)

from __future__ import annotations

import logging
from typing import Optional

from pokersync.settings import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Apply LOG_LEVEL to the package logger and attach a stderr handler once."""
    settings = settings or get_settings()
    logger = logging.getLogger("pokersync")
    logger.setLevel(settings.LOG_LEVEL.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger

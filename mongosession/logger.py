from __future__ import annotations

import logging
from typing import Optional

from .settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# driver loggers emit one record per command at DEBUG
_DRIVER_LOGGERS = ("pymongo", "motor")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger; ``level`` overrides SESSION_LOG_LEVEL."""
    name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
    for driver in _DRIVER_LOGGERS:
        logging.getLogger(driver).setLevel(max(logging.WARNING, logging.getLogger().level))

"""Project-wide logger configured from settings.LOG_LEVEL"""

import logging
import sys

from config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure the root handler once and return the application logger"""
    root = logging.getLogger()
    if not any(getattr(h, "_storytime", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storytime = True
        root.addHandler(handler)
    root.setLevel(level.upper())
    return logging.getLogger("storytime")


logger = setup_logging(settings.LOG_LEVEL)

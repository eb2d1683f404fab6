from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attaches one stream handler to the ``autoheal`` logger.

    Safe to call more than once; the handler is not duplicated.
    """

    resolved = level if level is not None else os.getenv("AUTOHEAL_LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logger = logging.getLogger("autoheal")
    logger.setLevel(resolved)
    handler = next((item for item in logger.handlers if getattr(item, "_autoheal", False)), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._autoheal = True
        logger.addHandler(handler)
    handler.setLevel(resolved)
    return logger

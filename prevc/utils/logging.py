from __future__ import annotations

import logging
import sys
from typing import Union

LOGGER_NAME = "prevc"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Union[str, int] = "INFO") -> logging.Logger:
    """Attach one stderr handler to the ``prevc`` logger; repeated calls only adjust the level."""
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    logger.setLevel(level)
    if not any(getattr(handler, "_prevc_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._prevc_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger

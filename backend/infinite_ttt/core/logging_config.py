"""Process-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``; this only wires
the root ``infinite_ttt`` logger to stderr once at startup.
"""

import logging
import sys

LOGGER_NAME = "infinite_ttt"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger(LOGGER_NAME)


def configure_logging(level: str = "INFO") -> logging.Logger:
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logger.setLevel(resolved)
    if not any(getattr(handler, "_infinite_ttt", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._infinite_ttt = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.propagate = False
    return logger

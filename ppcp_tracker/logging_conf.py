"""Root logger setup for the PPCP web process."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    resolved = logging.getLevelName(level.upper())
    valid = isinstance(resolved, int)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(resolved if valid else logging.INFO)
    if not valid:
        root.warning("Unknown log level %r, using INFO", level)

    # one line per request is too chatty next to the entry logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from __future__ import annotations

"""
Logging setup for scripts.

Library modules only create `logging.getLogger(__name__)` loggers; the
entry points in `scripts/` call `setup_logging` once so training progress is
written to stdout next to the printed result tables.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger with a single stdout handler.

    Existing handlers are removed so repeated calls (tests, notebooks) do not
    duplicate lines.
    """
    lvl = level.upper()

    root = logging.getLogger()
    root.setLevel(lvl)

    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)

    # font manager spam at DEBUG
    for name in ("matplotlib", "PIL"):
        logging.getLogger(name).setLevel(max(logging.getLevelName(lvl), logging.INFO))

    return root

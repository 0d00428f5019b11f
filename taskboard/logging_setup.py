from __future__ import annotations
import logging

from .config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
HANDLER_NAME = "taskboard"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a single stream handler on the ``taskboard`` logger tree.

    Safe to call more than once; uvicorn keeps its own handlers.
    """
    root = logging.getLogger("taskboard")
    root.setLevel(level)
    if not any(h.get_name() == HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.propagate = False

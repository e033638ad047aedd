"""
Logging setup for the backend.

Every module logs through ``logging.getLogger(__name__)``; this installs the
single console handler those loggers propagate to.
"""
from __future__ import annotations
import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "nano-banana-console"


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger once.

    Calling it again only adjusts the level, so reloading the app (or
    importing main from tests) never stacks duplicate handlers.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not any(getattr(h, "name", None) == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
        root.addHandler(handler)

    # requests' connection pool is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logging.getLogger("app")

"""Logging setup for the DOJO server and CLI.

Modules log through ``logging.getLogger(__name__)``, so everything DOJO emits
lives under the ``dojo`` logger. configure_logging installs the stderr
handler once and sets levels; it never attaches handlers to module loggers.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER = "dojo"

# Client libraries that log every request; only their warnings are kept
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(level: Optional[int] = None, quiet: bool = False) -> None:
    """Configure logging for the process.

    Args:
        level: Level for DOJO's own loggers. If None, uses DOJO_LOG_LEVEL.
        quiet: Only show warnings and errors, DOJO's included
    """
    if level is None:
        from .config import get_settings
        level = get_settings().log_level_int

    if quiet:
        level = max(level, logging.WARNING)

    # No-op when a handler is already installed (uvicorn reload, tests)
    logging.basicConfig(
        level=logging.WARNING,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )

    logging.getLogger(APP_LOGGER).setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

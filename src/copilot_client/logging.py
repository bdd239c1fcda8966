"""Logging for copilot-client.

Everything logs under the ``copilot_client`` logger. Verbosity is an index
into VERBOSITY_LEVELS; the command line maps onto it like this:

    flag   index  level    what shows up
    -q     0      ERROR    failures only
           1      WARNING  dropped responses, transport closes
    (none) 2      INFO     session lifecycle (default)
    -v     3      VERBOSE  the agent's own info-level window/logMessage output
    -vv    4      TRACE    every frame on the wire

Output goes to a file (``logging.file`` or the COPILOT_CLIENT_LOG variable),
otherwise to stderr when stderr is a terminal, otherwise nowhere.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from copilot_client.config import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_ENV_VAR = "COPILOT_CLIENT_LOG"

VERBOSITY_LEVELS = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)
DEFAULT_VERBOSITY = 2

logger = logging.getLogger("copilot_client")

_handler: logging.Handler | None = None


def verbosity_from_flags(verbose: int = 0, quiet: bool = False) -> int | None:
    """Turn ``-v`` counts and ``-q`` into a verbosity index.

    Returns None when neither flag was given, so a configured value stands.
    """
    if quiet:
        return 0
    if verbose > 0:
        return min(DEFAULT_VERBOSITY + verbose, len(VERBOSITY_LEVELS) - 1)
    return None


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level for config. ``verbose`` wins over ``level``."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        index = max(0, min(config.verbose, len(VERBOSITY_LEVELS) - 1))
        return VERBOSITY_LEVELS[index]
    if config.level:
        # getLevelName maps known names (including TRACE/VERBOSE) to ints
        level = logging.getLevelName(config.level.upper())
        if isinstance(level, int):
            return level
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None) -> logging.Handler | None:
    """Apply config to the package logger.

    Calling again replaces the handler installed by the previous call.
    Returns the new handler, or None when output is discarded.
    """
    global _handler

    level = resolve_level(config)
    logger.setLevel(level)

    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()
        _handler = None

    handler = _open_handler(config.file if config and config.file else os.environ.get(LOG_ENV_VAR))
    if handler is None:
        return None

    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(handler)
    _handler = handler
    return handler


def _open_handler(path: str | None) -> logging.Handler | None:
    if path:
        try:
            return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
        except OSError as e:
            if not sys.stderr.isatty():
                return None
            print(f"[copilot-client] Failed to open log file: {e}", file=sys.stderr)
    if sys.stderr.isatty():
        return logging.StreamHandler(sys.stderr)
    return None


def get_logger(name: str | None = None) -> logging.Logger:
    """Package logger, or a child of it (e.g., "rpc", "session")."""
    if name:
        return logger.getChild(name)
    return logger

"""Logging setup for the command line."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Send bn_loader log records to stderr.

    WARNING by default, DEBUG with --verbose. The BN_LOADER_LOG_LEVEL
    environment variable overrides the default level.
    """
    if verbose:
        level = logging.DEBUG
    else:
        env_level = os.getenv("BN_LOADER_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, env_level, logging.WARNING)

    logger = logging.getLogger("bn_loader")
    logger.setLevel(level)

    # Replace our handler on every call; sys.stderr may have been swapped since.
    for h in list(logger.handlers):
        if getattr(h, "_bn_loader", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._bn_loader = True  # type: ignore[attr-defined]
    logger.addHandler(handler)

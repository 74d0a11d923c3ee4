"""
Logging setup for the bridge service and the CLI.

    2026-10-19 10:15:30 [INFO    ] print_bridge.transport - Sent 1180 bytes to printer

Modules log through ``logging.getLogger(__name__)``; ``setup_logging`` is
called once by the entry point.
"""

import logging
import sys

APP_LOGGER = "print_bridge"


def setup_logging(log_level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(log_level)
    logger.propagate = False

    # allow re-configuration
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)

    logger.debug("Logging configured at level %s", logging.getLevelName(log_level))
    return logger

"""
Logging configuration for the command-line runner.

Usage:
    from amm_arbitrage import logging_config
    logging_config.setup()
"""

import logging
import sys
from typing import Union


def setup(level: Union[str, int] = logging.INFO):
    """
    Configure the root logger for readable console output.

    - Routes package loggers through a single stdout handler
    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Quiets chatty third-party loggers
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter(fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S")
    )
    root.addHandler(console)

    # Module loggers created by get_logger carry their own handler
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("amm_arbitrage") and isinstance(logger, logging.Logger):
            logger.handlers.clear()
            logger.setLevel(level)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("amm_arbitrage").setLevel(level)


def setup_minimal():
    """Only warnings and errors."""
    setup(level=logging.WARNING)


def setup_debug():
    """Verbose logging, including per-edge and per-path diagnostics."""
    setup(level=logging.DEBUG)

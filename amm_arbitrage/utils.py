"""
Shared helpers: module loggers, wei formatting and the running statistics
used by the hybrid selector and the predictor.
"""

import logging
import math
from decimal import Decimal
from typing import Sequence, Tuple, Union

from .constants import ONE_UNIT

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


def update_moving_average(current: float, sample: float, count: int) -> float:
    """
    Fold a new sample into a cumulative moving average.

    Args:
        current: Average over the previous ``count - 1`` samples
        sample: New observation
        count: Number of samples including the new one

    Returns:
        Updated average
    """
    if count <= 1:
        return float(sample)
    return current + (sample - current) / count


def mean_and_stddev(values: Sequence[float]) -> Tuple[float, float]:
    """Population mean and standard deviation; zeros for an empty sequence."""
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


def format_units(amount: int, decimals: int = 18, places: int = 6) -> str:
    """Render a fixed-point integer amount as a decimal string."""
    scaled = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{scaled:.{places}f}"


def format_wei(amount: int, places: int = 6) -> str:
    return format_units(amount, 18, places)


def to_wei(amount: Union[int, float, str]) -> int:
    """
    Convert a whole-token amount to its wei-equivalent integer.

    Raises:
        decimal.InvalidOperation: If ``amount`` is not numeric
    """
    return int(Decimal(str(amount)) * ONE_UNIT)


def short_address(address: str, length: int = 8) -> str:
    """Abbreviate a pool or token address for log output."""
    if len(address) <= length + 3:
        return address
    return address[:length] + "..."


def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Module logger with its own stderr handler.

    The handler is attached once; ``logging_config.setup`` strips these
    handlers again when the command-line runner routes everything through
    the root logger.
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    return logger

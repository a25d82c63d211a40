"""
Constants and enums for the AMM arbitrage system.

Centralizes fixed-point scaling factors, fee conventions, gas heuristics
and the string literals shared between the discovery and allocation layers.
"""

from enum import Enum


class Trend(Enum):
    """Trend classification of a pool's recent price history."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class ExitReason(Enum):
    """Reason a speculative position was closed."""

    STOP_LOSS = "stop-loss"
    PROFIT = "profit"
    TIMEOUT = "timeout"
    MANUAL = "manual"


class OpportunitySource(Enum):
    """Which search produced an opportunity."""

    DETERMINISTIC = "deterministic"
    GENETIC = "genetic"
    PAIRWISE = "pairwise"
    STATISTICAL = "statistical"


class PoolType(Enum):
    """Supported AMM pricing formulas."""

    CONSTANT_PRODUCT = "constant_product"
    STABLE_SWAP = "stable_swap"
    WEIGHTED = "weighted"


# Fixed-point scaling (18 decimals, wei-equivalent)
PRECISION = 10**18
ONE_UNIT = 10**18
BPS_DENOMINATOR = 10000

# Significant digits for Decimal log and power evaluation
DECIMAL_PRECISION = 50

# Uniswap V2 style 0.3% fee expressed against a 1000 denominator
FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000
DEFAULT_FEE_BPS = 30

# Newton square root defaults
SQRT_TOLERANCE = 1
SQRT_MAX_ITERATIONS = 50

# StableSwap invariant solver
STABLE_SWAP_MAX_ITERATIONS = 255

# Gas heuristics (swap + flashloan + overhead, plus 10k gas per unit traded)
BASE_GAS = 350000
GAS_PER_UNIT_VOLUME = 10000
WEI_PER_GWEI = 10**9

# Price impact reported when a hop cannot be simulated at all
MAX_PRICE_IMPACT_BPS = BPS_DENOMINATOR

# Liquidity below one unit is treated as thin by the predictor
LOW_LIQUIDITY_THRESHOLD = 10**18

METRICS_PREFIX = "amm_arbitrage"

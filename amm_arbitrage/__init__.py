"""
AMM Arbitrage Discovery and Optimization.

Detects, sizes and ranks cyclic arbitrage across automated-market-maker
pools: a log-rate market graph with Bellman-Ford cycle detection, closed-form
two-pool sizing, a time-boxed genetic optimizer for fragmented liquidity
selected by a hybrid policy, and a statistical predictor feeding a
Kelly-sized capital allocator.
"""

PROJECT_NAME = "amm-arbitrage"
VERSION = "0.1.0"

from amm_arbitrage.allocator import CapitalAllocator, Position, kelly_fraction
from amm_arbitrage.circuit_breaker import CircuitBreaker
from amm_arbitrage.config_schema import EngineConfig
from amm_arbitrage.detector import CycleDetector
from amm_arbitrage.engine import ArbitrageEngine, TickResult
from amm_arbitrage.exceptions import ArbitrageError, ConfigurationError
from amm_arbitrage.genetic import GeneticPathOptimizer
from amm_arbitrage.graph import MarketGraph
from amm_arbitrage.hybrid import HybridSelector
from amm_arbitrage.pools import (
    ConstantProductPool,
    PoolHandle,
    StableSwapPool,
    WeightedPool,
)
from amm_arbitrage.predictor import StatisticalPredictor
from amm_arbitrage.sizer import TradeSizer
from amm_arbitrage.types import ArbitragePath, Opportunity

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "ArbitrageEngine",
    "TickResult",
    "EngineConfig",
    "MarketGraph",
    "TradeSizer",
    "CycleDetector",
    "GeneticPathOptimizer",
    "HybridSelector",
    "CircuitBreaker",
    "StatisticalPredictor",
    "CapitalAllocator",
    "Position",
    "kelly_fraction",
    "PoolHandle",
    "ConstantProductPool",
    "StableSwapPool",
    "WeightedPool",
    "ArbitragePath",
    "Opportunity",
    "ArbitrageError",
    "ConfigurationError",
]

"""
Deterministic multi-path split used as the comparison point for the GA.
"""

from typing import Dict, List

from .detector import simulate_on_views
from .pools.base import PoolHandle
from .types import ArbitragePath
from .utils import get_logger

logger = get_logger(__name__)


class BaselineSplitter:
    """Spreads an order over the best independently-sized cycles."""

    def __init__(self, max_paths: int = 8, max_price_impact_bps: int = 500):
        self.max_paths = max_paths
        self.max_price_impact_bps = max_price_impact_bps

    def split(self, paths: List[ArbitragePath], order_size: int) -> List[ArbitragePath]:
        """
        Allocate ``order_size`` across up to ``max_paths`` cycles.

        Each cycle keeps its own optimal volume unless the volumes together
        exceed the order, in which case they are scaled down proportionally.
        The scaled paths are re-simulated in profit order against shared
        reserves, and any that no longer pay are dropped.
        """
        ranked = sorted(
            (p for p in paths if p.volume > 0),
            key=lambda p: p.expected_profit,
            reverse=True,
        )[: self.max_paths]
        if not ranked or order_size <= 0:
            return []

        total_volume = sum(p.volume for p in ranked)
        views: Dict[str, PoolHandle] = {}
        result: List[ArbitragePath] = []

        for path in ranked:
            volume = path.volume
            if total_volume > order_size:
                volume = path.volume * order_size // total_volume
            if volume <= 0:
                continue

            sim = simulate_on_views(path.tokens, path.pools, volume, views)
            if sim.failed or sim.price_impact_bps > self.max_price_impact_bps:
                logger.debug("Baseline dropped %s at volume %d", path.describe(), volume)
                continue
            if sim.profit() <= 0:
                continue

            result.append(
                ArbitragePath(
                    tokens=list(path.tokens),
                    pools=list(path.pools),
                    volume=volume,
                    expected_profit=sim.profit(),
                    price_impact_bps=sim.price_impact_bps,
                    amounts=sim.amounts,
                )
            )

        return result

"""
Negative-cycle arbitrage detection over the market graph.

Bellman-Ford relaxation from each of a bounded set of start tokens; an edge
that still relaxes after |V|-1 rounds sits on or behind a negative cycle,
which is recovered by walking predecessor links. Every recovered cycle gets
its trade volume optimized independently by a bounded search that simulates
the whole cycle hop by hop.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .config_schema import DetectorConfig
from .constants import MAX_PRICE_IMPACT_BPS
from .exceptions import ArbitrageError
from .graph import GraphEdge, MarketGraph
from .pools.base import PoolHandle
from .types import ArbitragePath
from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class PathSimulation:
    """Outcome of pushing a volume through a path."""

    amounts: List[int]
    price_impact_bps: int
    failed: bool = False

    @property
    def final_amount(self) -> int:
        return self.amounts[-1] if self.amounts else 0

    def profit(self) -> int:
        if self.failed or not self.amounts:
            return 0
        return self.amounts[-1] - self.amounts[0]


def simulate_path(
    tokens: Sequence[str], pools: Sequence[PoolHandle], volume: int
) -> PathSimulation:
    """
    Chain output amounts through every hop of a path.

    A quote failure or a zero output invalidates the path (``failed`` with
    maximal price impact) without raising.
    """
    amounts = [volume]
    total_impact = 0
    current = volume

    for index, pool in enumerate(pools):
        token_in, token_out = tokens[index], tokens[index + 1]
        try:
            output = pool.get_amount_out(token_in, token_out, current)
            total_impact += pool.price_impact_bps(token_in, current)
        except (ArbitrageError, ArithmeticError) as e:
            logger.debug("Path simulation failed at hop %d (%s): %s", index, pool.address, e)
            return PathSimulation(amounts, MAX_PRICE_IMPACT_BPS, failed=True)

        if output <= 0:
            return PathSimulation(amounts, MAX_PRICE_IMPACT_BPS, failed=True)
        amounts.append(output)
        current = output

    return PathSimulation(amounts, total_impact)


def simulate_on_views(
    tokens: Sequence[str],
    pools: Sequence[PoolHandle],
    volume: int,
    views: Dict[str, PoolHandle],
) -> PathSimulation:
    """
    Simulate a path against pool views left behind by earlier paths.

    ``views`` maps pool address to a reserve-adjusted copy; on success the
    copies are advanced past this path's swaps so the next path in the same
    batch sees the depleted liquidity. The input pools are never mutated.
    """
    current = [views.get(p.address, p) for p in pools]
    sim = simulate_path(tokens, current, volume)
    if sim.failed:
        return sim

    for hop, pool in enumerate(current):
        reserves = pool.reserves_by_token()
        reserves[tokens[hop]] += sim.amounts[hop]
        reserves[tokens[hop + 1]] -= sim.amounts[hop + 1]
        views[pool.address] = pool.with_reserves(reserves)
    return sim


class CycleDetector:
    """Finds and sizes negative-weight cycles."""

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()

    def find_cycles(self, graph: MarketGraph) -> List[ArbitragePath]:
        """
        Detect, size and rank arbitrage cycles.

        Args:
            graph: Market graph for the current tick

        Returns:
            Profitable cycles sorted by expected profit, one per pool set
        """
        edges = graph.live_edges()
        tokens = graph.tokens
        if not edges or len(tokens) < 2:
            return []

        found: Dict[Tuple[str, ...], ArbitragePath] = {}
        start_tokens = tokens[: self.config.max_start_tokens]

        for start_token in start_tokens:
            for cycle in self.find_negative_cycles(tokens, edges, start_token):
                key = cycle.pool_key
                if key in found:
                    continue
                optimized = self.optimize_volume(cycle)
                found[key] = optimized

        paths = [
            path
            for path in found.values()
            if path.volume > 0 and path.expected_profit >= self.config.min_profit_wei
        ]
        paths.sort(key=lambda p: p.expected_profit, reverse=True)

        logger.info(
            "Cycle detection: %d start tokens, %d cycles, %d profitable",
            len(start_tokens),
            len(found),
            len(paths),
        )
        return paths

    def find_negative_cycles(
        self, tokens: List[str], edges: List[GraphEdge], start_token: str
    ) -> List[ArbitragePath]:
        """Bellman-Ford from ``start_token``; returns each distinct cycle reachable from it."""
        epsilon = self.config.relaxation_epsilon
        distances: Dict[str, float] = {token: math.inf for token in tokens}
        predecessors: Dict[str, GraphEdge] = {}
        distances[start_token] = 0.0

        for _ in range(len(tokens) - 1):
            changed = False
            for edge in edges:
                dist = distances[edge.from_token]
                if math.isinf(dist):
                    continue
                new_dist = dist + edge.weight
                if new_dist < distances[edge.to_token] - epsilon:
                    distances[edge.to_token] = new_dist
                    predecessors[edge.to_token] = edge
                    changed = True
            if not changed:
                return []

        cycles: Dict[Tuple[str, ...], ArbitragePath] = {}
        for edge in edges:
            dist = distances[edge.from_token]
            if math.isinf(dist):
                continue
            if dist + edge.weight < distances[edge.to_token] - epsilon:
                preds = dict(predecessors)
                preds[edge.to_token] = edge
                cycle = self.reconstruct_cycle(edge.to_token, preds, len(tokens))
                if cycle is not None and cycle.pool_key not in cycles:
                    cycles[cycle.pool_key] = cycle
        return list(cycles.values())

    def reconstruct_cycle(
        self,
        node: str,
        predecessors: Dict[str, GraphEdge],
        vertex_count: int,
    ) -> Optional[ArbitragePath]:
        """
        Walk predecessor links back from ``node`` until a token repeats.

        Cycles longer than the configured hop limit are dropped.
        """
        walk: List[str] = []
        position: Dict[str, int] = {}
        current = node

        for _ in range(vertex_count + 1):
            if current in position:
                break
            position[current] = len(walk)
            walk.append(current)
            edge = predecessors.get(current)
            if edge is None:
                return None
            current = edge.from_token
        else:
            return None

        # walk runs backwards; the slice from the repeated token is the cycle
        cycle_nodes = list(reversed(walk[position[current]:]))
        hops = len(cycle_nodes)
        if hops < 2 or hops > self.config.max_path_length:
            logger.debug("Discarding %d-hop cycle through %s", hops, current)
            return None

        tokens = cycle_nodes + [cycle_nodes[0]]
        pools = [predecessors[tokens[i + 1]].pool for i in range(hops)]
        return ArbitragePath(tokens=tokens, pools=pools)

    def optimize_volume(self, path: ArbitragePath) -> ArbitragePath:
        """
        Bounded search for the most profitable input volume.

        Searches [min_search_volume, min_liquidity / divisor]; each step
        compares profit at the midpoint against a point one tolerance above
        it to decide which half holds the peak. Candidates breaching the
        price impact ceiling shrink the upper bound. The best admissible
        candidate seen is kept.
        """
        try:
            min_liquidity = min(pool.liquidity() for pool in path.pools)
        except (ArbitrageError, ValueError):
            min_liquidity = 0

        left = self.config.min_search_volume
        right = min_liquidity // self.config.liquidity_divisor
        if min_liquidity == 0 or right <= left:
            return ArbitragePath(tokens=path.tokens, pools=path.pools)

        tolerance = self.config.search_tolerance
        max_impact = self.config.max_price_impact_bps
        best_volume = 0
        best: Optional[PathSimulation] = None

        for _ in range(self.config.volume_search_iterations):
            if right - left < tolerance:
                break
            mid = (left + right) // 2
            sim = simulate_path(path.tokens, path.pools, mid)

            if sim.failed or sim.price_impact_bps > max_impact:
                right = mid
                continue

            profit = sim.profit()
            if profit > 0 and (best is None or profit > best.profit()):
                best, best_volume = sim, mid

            probe = simulate_path(path.tokens, path.pools, mid + tolerance)
            if not probe.failed and probe.profit() > profit:
                left = mid
            else:
                right = mid

        if best is None:
            return ArbitragePath(tokens=path.tokens, pools=path.pools)

        return ArbitragePath(
            tokens=path.tokens,
            pools=path.pools,
            volume=best_volume,
            expected_profit=best.profit(),
            price_impact_bps=best.price_impact_bps,
            amounts=best.amounts,
        )

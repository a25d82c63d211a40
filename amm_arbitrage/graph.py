"""
Market graph construction for cycle detection.

Tokens are nodes and every ordered token pair of every pool is a directed
edge whose weight is -ln(rate), the rate being the pool's quote for one unit
of input net of fee. A cycle with negative total weight returns more than it
started with.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, localcontext
from functools import lru_cache
from typing import Dict, Iterator, List

import networkx as nx

from .constants import DECIMAL_PRECISION, ONE_UNIT
from .pools.base import PoolHandle
from .types import MarketsByToken
from .utils import get_logger, short_address

logger = get_logger(__name__)


@lru_cache(maxsize=10000)
def cached_log_rate(amount_out: int, amount_in: int) -> float:
    """
    Negative natural log of ``amount_out / amount_in`` in Decimal precision.

    Args:
        amount_out: Quoted output amount
        amount_in: Quoted input amount

    Returns:
        Edge weight as float
    """
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        return -float((Decimal(amount_out) / Decimal(amount_in)).ln())


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge wrapping one pool."""

    from_token: str
    to_token: str
    pool: PoolHandle
    weight: float

    @property
    def is_dead(self) -> bool:
        return math.isinf(self.weight)


class MarketGraph:
    """Directed multigraph of tokens with one edge per pool direction."""

    def __init__(self, quote_amount: int = ONE_UNIT):
        self.quote_amount = quote_amount
        self.graph = nx.MultiDiGraph()
        self.dead_edge_count = 0
        self.pool_count = 0
        self._markets_by_token: MarketsByToken = {}

    def build(self, markets_by_token: MarketsByToken) -> "MarketGraph":
        """
        Rebuild the graph from the current pool set.

        Pools with an empty reserve are left out until refreshed. Quote
        failures or zero output mark just that edge dead.

        Args:
            markets_by_token: Mapping of token to the pools quoting it

        Returns:
            self, for chaining
        """
        self.graph = nx.MultiDiGraph()
        self.dead_edge_count = 0
        self._markets_by_token = {t: list(p) for t, p in markets_by_token.items()}

        pools: Dict[str, PoolHandle] = {}
        for token_pools in markets_by_token.values():
            for pool in token_pools:
                pools.setdefault(pool.address, pool)
        self.pool_count = len(pools)

        for pool in pools.values():
            if pool.has_zero_reserve():
                logger.debug("Skipping pool %s with empty reserve", short_address(pool.address))
                continue
            for token_in, token_out in pool.pairs():
                weight = self._edge_weight(pool, token_in, token_out)
                if math.isinf(weight):
                    self.dead_edge_count += 1
                self.graph.add_edge(
                    token_in, token_out, key=pool.address, weight=weight, pool=pool
                )

        logger.debug(
            "Built market graph: %d tokens, %d edges (%d dead) from %d pools",
            self.graph.number_of_nodes(),
            self.graph.number_of_edges(),
            self.dead_edge_count,
            self.pool_count,
        )
        return self

    def _edge_weight(self, pool: PoolHandle, token_in: str, token_out: str) -> float:
        try:
            amount_out = pool.get_amount_out(token_in, token_out, self.quote_amount)
        except Exception as e:
            logger.warning(
                "Quote failed on %s (%s -> %s), marking edge dead: %s",
                short_address(pool.address),
                token_in,
                token_out,
                e,
            )
            return math.inf

        if amount_out <= 0:
            logger.debug(
                "Zero quote on %s (%s -> %s), marking edge dead",
                short_address(pool.address),
                token_in,
                token_out,
            )
            return math.inf
        return cached_log_rate(amount_out, self.quote_amount)

    @property
    def tokens(self) -> List[str]:
        return list(self.graph.nodes)

    @property
    def markets_by_token(self) -> MarketsByToken:
        return self._markets_by_token

    @property
    def edge_count(self) -> int:
        return self.graph.number_of_edges()

    def edges(self) -> Iterator[GraphEdge]:
        for u, v, data in self.graph.edges(data=True):
            yield GraphEdge(u, v, data["pool"], data["weight"])

    def live_edges(self) -> List[GraphEdge]:
        """All edges with a finite weight."""
        return [edge for edge in self.edges() if not edge.is_dead]

    def edges_from(self, token: str) -> List[GraphEdge]:
        if token not in self.graph:
            return []
        return [
            GraphEdge(token, v, data["pool"], data["weight"])
            for _, v, data in self.graph.out_edges(token, data=True)
        ]

    @property
    def adjacency(self) -> Dict[str, List[GraphEdge]]:
        """Adjacency list keyed by token."""
        return {token: self.edges_from(token) for token in self.graph.nodes}

    def market_count(self) -> int:
        return self.pool_count

    def most_connected_token(self) -> str:
        """Token quoted by the most pools; ties broken by name."""
        if not self._markets_by_token:
            return ""
        return max(
            sorted(self._markets_by_token),
            key=lambda t: len(self._markets_by_token[t]),
        )

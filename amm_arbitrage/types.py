"""
Core data types shared by the discovery components.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import OpportunitySource
from .pools.base import PoolHandle
from .utils import format_wei

MarketsByToken = Dict[str, List[PoolHandle]]


def pool_key(pools: List[PoolHandle]) -> Tuple[str, ...]:
    """Order-independent identity of a set of pools."""
    return tuple(sorted(p.address for p in pools))


@dataclass
class ArbitragePath:
    """
    A cyclic trade through one or more pools.

    Attributes:
        tokens: Token sequence, first == last
        pools: Pool used for each hop (len(tokens) - 1 entries)
        volume: Input amount of tokens[0]
        expected_profit: Output minus input, in tokens[0] units
        price_impact_bps: Cumulative price impact over all hops
        amounts: Amount held after each hop, starting with the input
    """

    tokens: List[str]
    pools: List[PoolHandle]
    volume: int = 0
    expected_profit: int = 0
    price_impact_bps: int = 0
    amounts: List[int] = field(default_factory=list)

    @property
    def hop_count(self) -> int:
        return len(self.pools)

    @property
    def start_token(self) -> str:
        return self.tokens[0]

    @property
    def pool_key(self) -> Tuple[str, ...]:
        return pool_key(self.pools)

    def describe(self) -> str:
        return " -> ".join(self.tokens)


@dataclass
class Opportunity:
    """
    A ranked, sized opportunity handed to the execution collaborator.

    Attributes:
        source: Which search produced it
        token: Token the profit is denominated in (start and end of the cycle)
        tokens: Full token sequence traded
        pools: Pools in execution order
        volume: Input amount
        expected_profit: Gross profit before gas
        gas_estimate: Gas units for the transaction
        net_profit: Expected profit minus gas cost
        price_impact_bps: Cumulative price impact
        amounts: Simulated amount after each hop
        metadata: Free-form context (prediction reason, GA generation, ...)
    """

    source: OpportunitySource
    token: str
    tokens: List[str]
    pools: List[PoolHandle]
    volume: int
    expected_profit: int
    gas_estimate: int = 0
    net_profit: int = 0
    price_impact_bps: int = 0
    amounts: List[int] = field(default_factory=list)
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def buy_pool(self) -> PoolHandle:
        return self.pools[0]

    @property
    def sell_pool(self) -> PoolHandle:
        return self.pools[-1]

    @property
    def hop_count(self) -> int:
        return len(self.pools)

    @property
    def pool_key(self) -> Tuple[str, ...]:
        return pool_key(self.pools)

    @property
    def opportunity_id(self) -> str:
        digest = hashlib.sha1("|".join(self.pool_key).encode()).hexdigest()
        return digest[:16]

    def as_row(self) -> Dict[str, object]:
        """Display row for the command-line opportunity table."""
        return {
            "ID": self.opportunity_id,
            "Source": self.source.value,
            "Route": " -> ".join(self.tokens),
            "Volume": format_wei(self.volume, 4),
            "Gross": format_wei(self.expected_profit, 6),
            "Net": format_wei(self.net_profit, 6),
            "Impact (bps)": self.price_impact_bps,
        }


def opportunity_from_path(
    path: ArbitragePath,
    source: OpportunitySource,
    gas_estimate: int = 0,
    gas_cost: int = 0,
    metadata: Optional[Dict[str, object]] = None,
) -> Opportunity:
    """Wrap a simulated path as an opportunity."""
    return Opportunity(
        source=source,
        token=path.start_token,
        tokens=list(path.tokens),
        pools=list(path.pools),
        volume=path.volume,
        expected_profit=path.expected_profit,
        gas_estimate=gas_estimate,
        net_profit=path.expected_profit - gas_cost,
        price_impact_bps=path.price_impact_bps,
        amounts=list(path.amounts),
        metadata=dict(metadata or {}),
    )

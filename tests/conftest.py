"""
Shared fixtures: deterministic providers and small pool sets with known
arbitrage structure.

Reserves are large (1e30) and fees zero in the cycle fixtures so that the
profitable direction is obvious and gas never dominates.
"""

import pytest
from prometheus_client import CollectorRegistry

from amm_arbitrage.interfaces import DeterministicRandomProvider, DeterministicTimeProvider
from amm_arbitrage.pools import ConstantProductPool
from amm_arbitrage.snapshot import group_by_token

E18 = 10**18
E30 = 10**30


@pytest.fixture
def clock():
    return DeterministicTimeProvider()


@pytest.fixture
def rng():
    return DeterministicRandomProvider(seed=42)


@pytest.fixture
def registry():
    """Fresh Prometheus registry per test."""
    return CollectorRegistry()


@pytest.fixture
def make_pool():
    """Factory for constant-product pools."""

    def _make(address, tokens, reserves, fee_bps=30, fetcher=None):
        return ConstantProductPool(address, tokens, reserves, fee_bps=fee_bps, fetcher=fetcher)

    return _make


@pytest.fixture
def triangle_pools(make_pool):
    """A -> B -> C -> A returns ~5% before price impact."""
    return [
        make_pool("0xab", ["A", "B"], [E30, E30 * 105 // 100], fee_bps=0),
        make_pool("0xbc", ["B", "C"], [E30, E30], fee_bps=0),
        make_pool("0xca", ["C", "A"], [E30, E30], fee_bps=0),
    ]


@pytest.fixture
def balanced_pools(make_pool):
    """Three fee-charging pools at parity; no cycle pays."""
    return [
        make_pool("0xab", ["A", "B"], [E30, E30]),
        make_pool("0xbc", ["B", "C"], [E30, E30]),
        make_pool("0xca", ["C", "A"], [E30, E30]),
    ]


@pytest.fixture
def fragmented_pools(make_pool):
    """Five pools over three tokens with parallel liquidity on two legs."""
    return [
        make_pool("0xab1", ["A", "B"], [E30, E30 * 105 // 100], fee_bps=0),
        make_pool("0xab2", ["A", "B"], [E30, E30 * 104 // 100], fee_bps=0),
        make_pool("0xbc1", ["B", "C"], [E30, E30], fee_bps=0),
        make_pool("0xca1", ["C", "A"], [E30, E30], fee_bps=0),
        make_pool("0xca2", ["C", "A"], [2 * E30, 2 * E30], fee_bps=0),
    ]


@pytest.fixture
def crossed_pair(make_pool):
    """Two WETH/USDC pools priced 2000 and 2100 USDC per WETH."""
    cheap = make_pool("0xa1", ["WETH", "USDC"], [1000 * E18, 2_000_000 * E18])
    dear = make_pool("0xa2", ["WETH", "USDC"], [1000 * E18, 2_100_000 * E18])
    return cheap, dear


@pytest.fixture
def markets():
    """Turns a pool list into a token -> pools index."""
    return group_by_token

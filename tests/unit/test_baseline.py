"""
Tests for the deterministic multi-path split.
"""

from amm_arbitrage.baseline import BaselineSplitter
from amm_arbitrage.detector import CycleDetector
from amm_arbitrage.graph import MarketGraph
from amm_arbitrage.types import ArbitragePath


def detected(pools, markets):
    return CycleDetector().find_cycles(MarketGraph().build(markets(pools)))


def test_keeps_optimal_volume_when_order_is_large(triangle_pools, markets):
    paths = detected(triangle_pools, markets)
    split = BaselineSplitter().split(paths, paths[0].volume * 10)

    assert len(split) == 1
    assert split[0].volume == paths[0].volume
    assert split[0].expected_profit == paths[0].expected_profit


def test_scales_down_to_order_size(fragmented_pools, markets):
    paths = detected(fragmented_pools, markets)
    order_size = sum(p.volume for p in paths) // 4

    split = BaselineSplitter().split(paths, order_size)

    assert split
    assert sum(p.volume for p in split) <= order_size
    assert all(p.expected_profit > 0 for p in split)


def test_later_paths_see_depleted_reserves(triangle_pools, markets):
    """Repeating a route after it closed the gap no longer pays."""
    path = detected(triangle_pools, markets)[0]
    twin = ArbitragePath(
        tokens=list(path.tokens),
        pools=list(path.pools),
        volume=path.volume,
        expected_profit=path.expected_profit - 1,
    )

    split = BaselineSplitter().split([path, twin], path.volume * 2)

    assert len(split) == 1
    assert split[0].expected_profit == path.expected_profit
    assert triangle_pools[0].reserve_of("A") == 10**30


def test_max_paths(fragmented_pools, markets):
    paths = detected(fragmented_pools, markets)
    split = BaselineSplitter(max_paths=1).split(paths, sum(p.volume for p in paths))
    assert len(split) == 1


def test_nothing_to_split(triangle_pools):
    unsized = ArbitragePath(tokens=["A", "B", "C", "A"], pools=triangle_pools)
    assert BaselineSplitter().split([unsized], 10**20) == []
    assert BaselineSplitter().split([], 10**20) == []

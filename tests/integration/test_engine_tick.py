"""
End-to-end ticks through ArbitrageEngine with deterministic providers.
"""

from unittest.mock import AsyncMock

import pytest

from amm_arbitrage.config_schema import EngineConfig, GeneticConfig, RetryConfig
from amm_arbitrage.constants import OpportunitySource
from amm_arbitrage.engine import ArbitrageEngine
from amm_arbitrage.metrics import ArbitrageMetrics
from amm_arbitrage.predictor import OpportunityPrediction
from amm_arbitrage.types import Opportunity

E18 = 10**18
E28 = 10**28
E30 = 10**30


@pytest.fixture
def config():
    return EngineConfig(
        retry=RetryConfig(max_attempts=2, initial_wait_seconds=0),
        genetic=GeneticConfig(population_size=16, max_generations=5, elite_count=2),
    )


@pytest.fixture
def make_engine(config, clock, rng, registry):
    def _make(pools, engine_config=None):
        return ArbitrageEngine(
            engine_config or config,
            pools,
            time_provider=clock,
            random_provider=rng,
            metrics=ArbitrageMetrics(registry),
        )

    return _make


class TestEngineTick:
    @pytest.mark.asyncio
    async def test_finds_triangle(self, make_engine, triangle_pools, registry):
        engine = make_engine(triangle_pools)

        result = await engine.tick(order_size=E28)

        assert result.tick_id == 1
        assert result.errors == {}
        assert result.refresh.succeeded == 3
        assert len(result.opportunities) == 1
        best = result.best
        assert best.source is OpportunitySource.DETERMINISTIC
        assert best.pool_key == ("0xab", "0xbc", "0xca")
        assert best.net_profit > 0
        assert not result.hybrid.used_ga

        assert registry.get_sample_value("amm_arbitrage_ticks_total") == 1.0
        assert registry.get_sample_value(
            "amm_arbitrage_opportunities_total", {"source": "deterministic"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_nothing_at_parity(self, make_engine, balanced_pools):
        engine = make_engine(balanced_pools)
        result = await engine.tick(order_size=E28)
        assert result.opportunities == []
        assert result.best is None

    @pytest.mark.asyncio
    async def test_refreshed_reserves_apply_same_tick(self, make_engine, make_pool):
        fetcher = AsyncMock(return_value={"A": E30, "B": E30})
        pools = [
            make_pool("0xab", ["A", "B"], [E30, E30 * 105 // 100], fee_bps=0, fetcher=fetcher),
            make_pool("0xbc", ["B", "C"], [E30, E30], fee_bps=0),
            make_pool("0xca", ["C", "A"], [E30, E30], fee_bps=0),
        ]
        engine = make_engine(pools)

        result = await engine.tick(order_size=E28)

        fetcher.assert_awaited_once()
        assert pools[0].reserves_by_token() == {"A": E30, "B": E30}
        assert result.opportunities == []

    @pytest.mark.asyncio
    async def test_failed_refresh_is_isolated(self, make_engine, make_pool, registry):
        fetcher = AsyncMock(side_effect=ConnectionError("rpc timeout"))
        pools = [
            make_pool("0xab", ["A", "B"], [E30, E30 * 105 // 100], fee_bps=0, fetcher=fetcher),
            make_pool("0xbc", ["B", "C"], [E30, E30], fee_bps=0),
            make_pool("0xca", ["C", "A"], [E30, E30], fee_bps=0),
        ]
        engine = make_engine(pools)

        result = await engine.tick(order_size=E28)

        assert fetcher.await_count == 2
        assert result.refresh.failed == 1
        assert result.refresh.succeeded == 2
        # Previous reserves stay in place, so the cycle is still found
        assert len(result.opportunities) == 1
        assert registry.get_sample_value("amm_arbitrage_pool_refresh_failures_total") == 1.0

    @pytest.mark.asyncio
    async def test_ga_runs_on_fragmented_market(self, make_engine, fragmented_pools, registry):
        engine = make_engine(fragmented_pools, EngineConfig(
            base_token="A",
            enable_pairwise_scan=False,
            genetic=GeneticConfig(population_size=16, max_generations=5, elite_count=2),
        ))

        result = await engine.tick(order_size=E28)

        assert result.hybrid.used_ga
        assert result.opportunities
        assert registry.get_sample_value("amm_arbitrage_ga_runs_total") == 1.0

    @pytest.mark.asyncio
    async def test_pairwise_scan_contributes(self, make_engine, crossed_pair):
        engine = make_engine(list(crossed_pair))

        result = await engine.tick(order_size=10 * E18)

        # Pairwise and cycle results over the same two pools collapse to one
        assert len(result.opportunities) == 1
        assert result.best.pool_key == ("0xa1", "0xa2")
        assert result.best.source in (OpportunitySource.PAIRWISE, OpportunitySource.DETERMINISTIC)

    @pytest.mark.asyncio
    async def test_empty_pool_set(self, make_engine):
        engine = make_engine([])
        result = await engine.tick()
        assert result.opportunities == []
        assert result.errors == {}

    @pytest.mark.asyncio
    async def test_tick_ids_increase(self, make_engine, triangle_pools, clock):
        engine = make_engine(triangle_pools)
        first = await engine.tick(order_size=E28)
        clock.advance_time(60)
        second = await engine.tick(order_size=E28)
        assert (first.tick_id, second.tick_id) == (1, 2)
        assert engine.tick_count == 2

    @pytest.mark.asyncio
    async def test_rebalance_throttled_to_interval(self, make_engine, triangle_pools, clock):
        engine = make_engine(triangle_pools)
        interval = engine.config.allocator.rebalance_frequency_seconds

        await engine.tick(order_size=E28)
        first_pass = engine.allocator.last_rebalance
        assert first_pass == clock.current_timestamp()

        clock.advance_time(interval / 2)
        result = await engine.tick(order_size=E28)
        assert engine.allocator.last_rebalance == first_pass
        assert result.opened_positions == []
        assert result.closed_positions == []

        clock.advance_time(interval)
        await engine.tick(order_size=E28)
        assert engine.allocator.last_rebalance == clock.current_timestamp()


class TestEngineBookkeeping:
    def test_statistical_tagging(self, make_engine, triangle_pools):
        engine = make_engine(triangle_pools)
        ab = triangle_pools[0]
        engine._predictions = [
            OpportunityPrediction(
                pool=ab,
                token="A",
                related_pools=[],
                expected_profit_bps=200,
                confidence=90,
                time_horizon_seconds=300,
                reason="high volatility",
                volatility_bps=900,
                should_pre_position=True,
            )
        ]
        on_pool = Opportunity(
            OpportunitySource.DETERMINISTIC, "A", ["A", "B", "C", "A"], list(triangle_pools), E18, 10
        )
        elsewhere = Opportunity(
            OpportunitySource.PAIRWISE, "B", ["B", "C", "B"], [triangle_pools[1]], E18, 10
        )

        tagged = engine._tag_statistical([on_pool, elsewhere])

        assert tagged[0].source is OpportunitySource.STATISTICAL
        assert tagged[0].metadata["origin"] == "deterministic"
        assert tagged[0].metadata["confidence"] == 90
        assert tagged[1].source is OpportunitySource.PAIRWISE

    @pytest.mark.asyncio
    async def test_execution_feedback(self, make_engine, triangle_pools):
        engine = make_engine(triangle_pools)
        result = await engine.tick(order_size=E28)

        engine.record_execution(result.best.opportunity_id, success=True, profit=5 * E18)
        engine.record_execution("unknown", success=False)

        metrics = engine.get_performance_metrics()
        assert metrics["ticks"] == 1
        assert metrics["executions"]["attempted"] == 2
        assert metrics["executions"]["total_profit"] == 5 * E18
        assert metrics["execution_success_rate"] == 50.0
        assert metrics["hybrid"]["total_runs"] == 1
        assert "capital" in metrics and "predictor" in metrics

    @pytest.mark.asyncio
    async def test_reset(self, make_engine, triangle_pools):
        engine = make_engine(triangle_pools)
        await engine.tick(order_size=E28)
        engine.record_execution("x", success=True, profit=1)

        engine.reset()

        metrics = engine.get_performance_metrics()
        assert metrics["ticks"] == 0
        assert metrics["executions"]["attempted"] == 0
        assert metrics["hybrid"]["total_runs"] == 0

"""
Tests for the statistical opportunity predictor.
"""

import pytest

from amm_arbitrage.config_schema import PredictorConfig
from amm_arbitrage.constants import Trend
from amm_arbitrage.pools import ConstantProductPool
from amm_arbitrage.predictor import (
    DEFAULT_VOLATILITY_BPS,
    StatisticalPredictor,
    analyze_trend,
    calculate_returns_bps,
    calculate_volatility,
    mean_reversion_score,
)
from amm_arbitrage.snapshot import group_by_token

E18 = 10**18
E21 = 10**21


@pytest.fixture
def predictor(clock):
    return StatisticalPredictor(PredictorConfig(), clock)


@pytest.fixture
def pool():
    # Spot price 130 Y per X
    return ConstantProductPool("0xp1", ["X", "Y"], [E21, 130 * E21])


@pytest.fixture
def sibling():
    return ConstantProductPool("0xp2", ["X", "Y"], [E21, 100 * E21])


class TestStatistics:
    def test_volatility_defaults(self):
        assert calculate_volatility([]) == DEFAULT_VOLATILITY_BPS
        assert calculate_volatility([100]) == DEFAULT_VOLATILITY_BPS

    def test_flat_prices_have_no_volatility(self):
        assert calculate_volatility([100, 100, 100, 100]) == 0

    def test_returns_keep_sign(self):
        assert calculate_returns_bps([100, 110, 99]) == [1000, -1000]
        assert calculate_returns_bps([100, 110, 99], absolute=True) == [1000, 1000]
        assert calculate_returns_bps([0, 10, 20]) == [10000]

    def test_rising_prices_are_bullish(self):
        trend, momentum = analyze_trend(list(range(100, 110)))
        assert trend is Trend.BULLISH
        assert momentum == 900

    def test_falling_prices_are_bearish(self):
        trend, momentum = analyze_trend(list(range(110, 100, -1)))
        assert trend is Trend.BEARISH
        assert momentum < 0

    def test_short_history_is_neutral(self):
        assert analyze_trend([100, 200]) == (Trend.NEUTRAL, 0)

    def test_mean_reversion_score(self):
        assert mean_reversion_score([100] * 9) == 50
        assert mean_reversion_score([100] * 10) == 0
        assert mean_reversion_score([100] * 9 + [130]) == 100


class TestRecordPrice:
    def test_reads_spot_price_by_default(self, predictor, pool):
        profile = predictor.record_price(pool)

        assert profile.current_price == 130 * E18
        assert profile.liquidity == E21
        assert profile.token_pair == ("X", "Y")

    def test_lookback_evicts_old_samples(self, clock, pool):
        predictor = StatisticalPredictor(PredictorConfig(lookback_seconds=100), clock)
        now = clock.current_timestamp()

        predictor.record_price(pool, price=1, timestamp=now)
        predictor.record_price(pool, price=2, timestamp=now + 50)
        profile = predictor.record_price(pool, price=3, timestamp=now + 200)

        assert [s.price for s in profile.price_history] == [3]

    def test_history_is_bounded(self, clock, pool):
        predictor = StatisticalPredictor(PredictorConfig(max_history=2), clock)
        for price in (1, 2, 3):
            profile = predictor.record_price(pool, price=price)
        assert [s.price for s in profile.price_history] == [2, 3]


class TestSnapshotUpdates:
    def test_throttled_by_update_frequency(self, predictor, clock, pool):
        markets = group_by_token([pool])

        assert predictor.update_from_snapshot(markets)
        assert not predictor.update_from_snapshot(markets)
        assert predictor.update_from_snapshot(markets, force=True)

        clock.advance_time(60)
        assert predictor.update_from_snapshot(markets)
        assert predictor.get_market_statistics("0xp1").sample_count == 3

    def test_each_pool_sampled_once(self, predictor, pool, sibling):
        predictor.update_from_snapshot(group_by_token([pool, sibling]))
        assert predictor.get_market_statistics("0xp1").sample_count == 1
        assert predictor.get_market_statistics("0xp2").sample_count == 1

    def test_empty_pools_skipped(self, predictor):
        empty = ConstantProductPool("0xe", ["X", "Y"], [0, E21])
        predictor.update_from_snapshot(group_by_token([empty]))
        assert predictor.get_market_statistics("0xe") is None


class TestPredictions:
    def seed_history(self, predictor, pool, clock):
        # Nine quiet samples, then a jump to the pool's current 130
        for _ in range(9):
            predictor.record_price(pool, price=100 * E18)
            clock.advance_time(1)
        predictor.record_price(pool, price=130 * E18)

    def test_mean_reverting_pool_is_flagged(self, predictor, pool, sibling, clock):
        self.seed_history(predictor, pool, clock)

        predictions = predictor.predict_opportunities(group_by_token([pool, sibling]))

        assert len(predictions) == 1
        prediction = predictions[0]
        assert prediction.pool is pool
        assert prediction.related_pools == [sibling]
        assert prediction.confidence == 85
        assert prediction.expected_profit_bps == 70
        assert prediction.time_horizon_seconds == 600
        assert prediction.should_pre_position
        assert "mean reversion" in prediction.reason
        assert "bullish momentum" in prediction.reason

    def test_pre_positioning_can_be_disabled(self, clock, pool, sibling):
        predictor = StatisticalPredictor(PredictorConfig(enable_pre_positioning=False), clock)
        self.seed_history(predictor, pool, clock)

        predictions = predictor.predict_opportunities(group_by_token([pool, sibling]))

        assert predictions
        assert not predictions[0].should_pre_position

    def test_pool_without_alternatives_is_ignored(self, predictor, pool, clock):
        self.seed_history(predictor, pool, clock)
        assert predictor.predict_opportunities(group_by_token([pool])) == []

    def test_volatility_outside_band(self, clock, pool, sibling):
        predictor = StatisticalPredictor(
            PredictorConfig(min_volatility_bps=2000, max_volatility_bps=5000), clock
        )
        self.seed_history(predictor, pool, clock)
        assert predictor.predict_opportunities(group_by_token([pool, sibling])) == []

    def test_mean_reversion_candidates(self, predictor, pool, sibling, clock):
        self.seed_history(predictor, pool, clock)
        predictor.record_price(sibling, price=100 * E18)

        candidates = predictor.get_mean_reversion_candidates()

        assert [c.pool_address for c in candidates] == ["0xp1"]
        assert predictor.get_markets_by_volatility()[0].pool_address == "0xp1"


class TestCorrelation:
    def test_identical_series(self, predictor, pool, sibling):
        for price in (100, 102, 101, 105, 103, 108):
            predictor.record_price(pool, price=price * E18)
            predictor.record_price(sibling, price=price * E18)
        assert predictor.calculate_correlation("0xp1", "0xp2") == pytest.approx(1.0)

    def test_opposite_series(self, predictor, pool, sibling):
        for up, down in zip((100, 110, 100, 110, 100, 110), (110, 100, 110, 100, 110, 100)):
            predictor.record_price(pool, price=up * E18)
            predictor.record_price(sibling, price=down * E18)
        assert predictor.calculate_correlation("0xp1", "0xp2") < -0.9

    def test_insufficient_history(self, predictor, pool, sibling):
        predictor.record_price(pool, price=E18)
        predictor.record_price(sibling, price=E18)
        assert predictor.calculate_correlation("0xp1", "0xp2") == 0.0
        assert predictor.calculate_correlation("0xp1", "0xunknown") == 0.0


def test_summary_and_reset(predictor, pool, sibling):
    predictor.update_from_snapshot(group_by_token([pool, sibling]))

    summary = predictor.get_summary()
    assert summary["tracked_pools"] == 2
    assert summary["average_volatility_bps"] == DEFAULT_VOLATILITY_BPS
    assert summary["trends"]["neutral"] == 2

    predictor.reset()
    assert predictor.get_summary()["tracked_pools"] == 0
    assert predictor.average_volatility() == 0.0

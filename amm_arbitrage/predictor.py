"""
Statistical opportunity predictor.

Keeps a bounded, time-windowed price history per pool and derives
volatility, trend, momentum and a mean-reversion score from it. Pools whose
volatility falls inside the configured band are scored for a near-term
opportunity; confident predictions are flagged for capital pre-positioning.

Prices are integers scaled by 1e18 (second token per first token of the
pool), returns and volatility are in basis points.
"""

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .config_schema import PredictorConfig
from .constants import BPS_DENOMINATOR, LOW_LIQUIDITY_THRESHOLD, Trend
from .exceptions import ArbitrageError
from .interfaces import SystemTimeProvider, TimeProvider
from .pools.base import PoolHandle
from .types import MarketsByToken
from .utils import get_logger, mean_and_stddev, short_address

logger = get_logger(__name__)

DEFAULT_VOLATILITY_BPS = 500
TREND_WINDOW = 10
SHORT_MA_WINDOW = 3
MEAN_REVERSION_MIN_SAMPLES = 10
NEUTRAL_MEAN_REVERSION = 50
HIGH_VOLATILITY_BPS = 1000
STRONG_MOMENTUM_BPS = 500


@dataclass
class PriceSample:
    timestamp: float
    price: int


@dataclass
class StatisticalProfile:
    """Rolling statistics for one pool."""

    pool_address: str
    token_pair: Tuple[str, str]
    price_history: List[PriceSample] = field(default_factory=list)
    volatility_bps: int = DEFAULT_VOLATILITY_BPS
    liquidity: int = 0
    trend: Trend = Trend.NEUTRAL
    momentum_bps: int = 0
    mean_reversion: int = NEUTRAL_MEAN_REVERSION
    last_update: float = 0.0

    @property
    def current_price(self) -> int:
        return self.price_history[-1].price if self.price_history else 0

    @property
    def sample_count(self) -> int:
        return len(self.price_history)


@dataclass
class OpportunityPrediction:
    """Predicted near-term opportunity on one pool."""

    pool: PoolHandle
    token: str
    related_pools: List[PoolHandle]
    expected_profit_bps: int
    confidence: int
    time_horizon_seconds: int
    reason: str
    volatility_bps: int
    should_pre_position: bool
    current_price: int = 0

    @property
    def score(self) -> int:
        return self.expected_profit_bps * self.confidence


def calculate_volatility(prices: List[int]) -> int:
    """Standard deviation of absolute consecutive returns, in bps."""
    if len(prices) < 2:
        return DEFAULT_VOLATILITY_BPS
    returns = calculate_returns_bps(prices, absolute=True)
    if not returns:
        return DEFAULT_VOLATILITY_BPS
    _, stddev = mean_and_stddev(returns)
    return int(stddev)


def calculate_returns_bps(prices: List[int], absolute: bool = False) -> List[int]:
    returns = []
    for previous, current in zip(prices, prices[1:]):
        if previous == 0:
            continue
        change = current - previous
        value = abs(change) * BPS_DENOMINATOR // previous
        returns.append(value if absolute or change >= 0 else -value)
    return returns


def analyze_trend(prices: List[int]) -> Tuple[Trend, int]:
    """
    Trend from a short vs long moving average with a 1% band, plus momentum.

    Returns:
        (trend, momentum in bps over the recent window)
    """
    if len(prices) < 3:
        return Trend.NEUTRAL, 0

    recent = prices[-TREND_WINDOW:]
    ma_short = sum(recent[-SHORT_MA_WINDOW:]) // SHORT_MA_WINDOW
    ma_long = sum(recent) // len(recent)

    trend = Trend.NEUTRAL
    if ma_short > ma_long * 1010 // 1000:
        trend = Trend.BULLISH
    elif ma_short < ma_long * 990 // 1000:
        trend = Trend.BEARISH

    first, last = recent[0], recent[-1]
    if first == 0:
        return trend, 0
    change = last - first
    momentum = abs(change) * BPS_DENOMINATOR // first
    return trend, momentum if change >= 0 else -momentum


def mean_reversion_score(prices: List[int]) -> int:
    """0-100; five points per percent of deviation from the window mean."""
    if len(prices) < MEAN_REVERSION_MIN_SAMPLES:
        return NEUTRAL_MEAN_REVERSION
    mean = sum(prices) // len(prices)
    if mean == 0:
        return NEUTRAL_MEAN_REVERSION
    percent_deviation = abs(prices[-1] - mean) * 100 // mean
    return min(100, percent_deviation * 5)


class StatisticalPredictor:
    """Per-pool statistics and opportunity predictions."""

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.config = config or PredictorConfig()
        self.clock = time_provider or SystemTimeProvider()
        self._profiles: Dict[str, StatisticalProfile] = {}
        self._lock = threading.Lock()
        self._last_update = 0.0

        logger.info(
            "Statistical predictor initialized: volatility band %d-%d bps, min confidence %d",
            self.config.min_volatility_bps,
            self.config.max_volatility_bps,
            self.config.min_confidence,
        )

    def record_price(
        self,
        pool: PoolHandle,
        price: Optional[int] = None,
        liquidity: Optional[int] = None,
        timestamp: Optional[float] = None,
    ) -> StatisticalProfile:
        """
        Append a price sample for ``pool`` and refresh its statistics.

        Args:
            pool: Pool the sample belongs to
            price: Price scaled by 1e18; read from the pool when omitted
            liquidity: Liquidity proxy; the pool's smaller reserve when omitted
            timestamp: Sample time; the provider's clock when omitted

        Returns:
            Updated profile
        """
        token_a, token_b = pool.tokens[0], pool.tokens[1]
        if price is None:
            price = pool.spot_price(token_a, token_b)
        if liquidity is None:
            liquidity = pool.liquidity()
        now = self.clock.current_timestamp() if timestamp is None else timestamp

        with self._lock:
            profile = self._profiles.get(pool.address)
            if profile is None:
                profile = StatisticalProfile(pool.address, (token_a, token_b))
                self._profiles[pool.address] = profile

            profile.price_history.append(PriceSample(now, int(price)))
            cutoff = now - self.config.lookback_seconds
            history = [s for s in profile.price_history if s.timestamp >= cutoff]
            profile.price_history = history[-self.config.max_history:]

            prices = [s.price for s in profile.price_history]
            profile.volatility_bps = calculate_volatility(prices)
            profile.trend, profile.momentum_bps = analyze_trend(prices)
            profile.mean_reversion = mean_reversion_score(prices)
            profile.liquidity = liquidity
            profile.last_update = now
            return profile

    def update_from_snapshot(self, markets_by_token: MarketsByToken, force: bool = False) -> bool:
        """
        Sample every pool once, at most once per update interval.

        Returns:
            True if samples were taken
        """
        now = self.clock.current_timestamp()
        if not force and now - self._last_update < self.config.update_frequency_seconds:
            return False

        seen = set()
        for pools in markets_by_token.values():
            for pool in pools:
                if pool.address in seen:
                    continue
                seen.add(pool.address)
                if pool.has_zero_reserve():
                    continue
                try:
                    self.record_price(pool, timestamp=now)
                except (ArbitrageError, ArithmeticError) as e:
                    logger.warning(
                        "Failed to sample %s: %s", short_address(pool.address), e
                    )

        self._last_update = now
        logger.debug("Updated statistics for %d pools", len(seen))
        return True

    def predict_opportunities(self, markets_by_token: MarketsByToken) -> List[OpportunityPrediction]:
        """
        Score every pool whose volatility lies in the configured band.

        A pool quoting several tokens is predicted once, under the token
        with the most alternative pools.

        Returns:
            Predictions at or above the minimum confidence, highest
            expected_profit_bps * confidence first
        """
        self.update_from_snapshot(markets_by_token)

        predictions: Dict[str, OpportunityPrediction] = {}
        for token, pools in markets_by_token.items():
            for pool in pools:
                profile = self.get_market_statistics(pool.address)
                if profile is None:
                    continue
                if not (
                    self.config.min_volatility_bps
                    <= profile.volatility_bps
                    <= self.config.max_volatility_bps
                ):
                    continue

                related = [p for p in pools if p.address != pool.address]
                if not related:
                    continue

                prediction = self.predict_single(pool, token, related, profile)
                if prediction is None:
                    continue
                existing = predictions.get(pool.address)
                if existing is None or len(related) > len(existing.related_pools):
                    predictions[pool.address] = prediction

        ranked = sorted(predictions.values(), key=lambda p: p.score, reverse=True)
        logger.info(
            "Predicted %d statistical opportunities (top confidence %d)",
            len(ranked),
            ranked[0].confidence if ranked else 0,
        )
        return ranked

    def predict_single(
        self,
        pool: PoolHandle,
        token: str,
        related_pools: List[PoolHandle],
        profile: StatisticalProfile,
    ) -> Optional[OpportunityPrediction]:
        confidence = 50
        expected_bps = 0
        reason = "General volatility-based prediction"
        horizon = 300

        if profile.volatility_bps > HIGH_VOLATILITY_BPS:
            confidence += 15
            expected_bps += 50
            reason = "High volatility detected"
            horizon = 180

        if abs(profile.momentum_bps) > STRONG_MOMENTUM_BPS:
            confidence += 10
            expected_bps += 30
            if profile.trend is not Trend.NEUTRAL:
                reason += f", {profile.trend.value} momentum"

        if profile.mean_reversion >= self.config.mean_reversion_threshold:
            confidence += 20
            expected_bps += 40
            reason += ", mean reversion opportunity"
            horizon = 600

        if profile.liquidity < LOW_LIQUIDITY_THRESHOLD:
            confidence -= 10
            expected_bps -= 10

        if profile.sample_count >= MEAN_REVERSION_MIN_SAMPLES:
            confidence += 5

        if confidence < self.config.min_confidence:
            return None

        return OpportunityPrediction(
            pool=pool,
            token=token,
            related_pools=related_pools,
            expected_profit_bps=expected_bps,
            confidence=confidence,
            time_horizon_seconds=horizon,
            reason=reason,
            volatility_bps=profile.volatility_bps,
            should_pre_position=(
                self.config.enable_pre_positioning
                and confidence >= self.config.pre_position_threshold
            ),
            current_price=profile.current_price,
        )

    def get_market_statistics(self, pool_address: str) -> Optional[StatisticalProfile]:
        with self._lock:
            return self._profiles.get(pool_address)

    def get_markets_by_volatility(self) -> List[StatisticalProfile]:
        with self._lock:
            return sorted(self._profiles.values(), key=lambda p: p.volatility_bps, reverse=True)

    def get_mean_reversion_candidates(self) -> List[StatisticalProfile]:
        with self._lock:
            candidates = [
                p
                for p in self._profiles.values()
                if p.mean_reversion >= self.config.mean_reversion_threshold
            ]
        return sorted(candidates, key=lambda p: p.mean_reversion, reverse=True)

    def calculate_correlation(self, pool_a: str, pool_b: str) -> float:
        """Pearson correlation of the most recent aligned returns of two pools."""
        profile_a = self.get_market_statistics(pool_a)
        profile_b = self.get_market_statistics(pool_b)
        if profile_a is None or profile_b is None:
            return 0.0
        if profile_a.sample_count < 5 or profile_b.sample_count < 5:
            return 0.0

        returns_a = calculate_returns_bps([s.price for s in profile_a.price_history])
        returns_b = calculate_returns_bps([s.price for s in profile_b.price_history])
        length = min(len(returns_a), len(returns_b))
        if length < 3:
            return 0.0

        r1 = [r / BPS_DENOMINATOR for r in returns_a[-length:]]
        r2 = [r / BPS_DENOMINATOR for r in returns_b[-length:]]
        mean1 = sum(r1) / length
        mean2 = sum(r2) / length

        numerator = sum((a - mean1) * (b - mean2) for a, b in zip(r1, r2))
        sum_sq1 = sum((a - mean1) ** 2 for a in r1)
        sum_sq2 = sum((b - mean2) ** 2 for b in r2)
        denominator = math.sqrt(sum_sq1 * sum_sq2)
        if denominator == 0:
            return 0.0
        return numerator / denominator

    def average_volatility(self) -> float:
        with self._lock:
            if not self._profiles:
                return 0.0
            return sum(p.volatility_bps for p in self._profiles.values()) / len(self._profiles)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            profiles = list(self._profiles.values())
        trends = {trend.value: 0 for trend in Trend}
        for profile in profiles:
            trends[profile.trend.value] += 1
        return {
            "tracked_pools": len(profiles),
            "average_volatility_bps": self.average_volatility(),
            "trends": trends,
            "mean_reversion_candidates": len(self.get_mean_reversion_candidates()),
            "last_update": self._last_update,
        }

    def reset(self) -> None:
        with self._lock:
            self._profiles.clear()
            self._last_update = 0.0
        logger.info("Statistical predictor reset")

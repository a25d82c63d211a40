"""
Tick orchestration.

One ``ArbitrageEngine`` owns one instance of every component, built from a
single ``EngineConfig`` and the injected time/random providers. Each tick
refreshes reserves into staging, swaps them in, feeds the predictor and the
allocator, runs the hybrid search plus the pairwise scan, and returns the
ranked opportunities. A failing stage is logged and contributes nothing;
it never aborts the tick.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .allocator import CapitalAllocator, Position, PositionPerformance
from .baseline import BaselineSplitter
from .circuit_breaker import CircuitBreaker
from .config_schema import EngineConfig
from .constants import OpportunitySource
from .detector import CycleDetector
from .genetic import GeneticPathOptimizer
from .graph import MarketGraph
from .hybrid import HybridResult, HybridSelector
from .interfaces import (
    RandomProvider,
    SystemRandomProvider,
    SystemTimeProvider,
    TimeProvider,
)
from .metrics import ArbitrageMetrics
from .pools.base import PoolHandle
from .predictor import OpportunityPrediction, StatisticalPredictor
from .retry import RetryPolicy
from .sizer import TradeSizer
from .snapshot import RefreshReport, SnapshotManager
from .types import MarketsByToken, Opportunity
from .utils import get_logger

logger = get_logger(__name__)


@dataclass
class TickResult:
    tick_id: int
    timestamp: float
    opportunities: List[Opportunity] = field(default_factory=list)
    predictions: List[OpportunityPrediction] = field(default_factory=list)
    opened_positions: List[Position] = field(default_factory=list)
    closed_positions: List[PositionPerformance] = field(default_factory=list)
    refresh: RefreshReport = field(default_factory=RefreshReport)
    hybrid: Optional[HybridResult] = None
    duration_ms: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def best(self) -> Optional[Opportunity]:
        return self.opportunities[0] if self.opportunities else None


class ArbitrageEngine:
    """Owns the components and drives them one tick at a time."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        pools: Optional[List[PoolHandle]] = None,
        time_provider: Optional[TimeProvider] = None,
        random_provider: Optional[RandomProvider] = None,
        metrics: Optional[ArbitrageMetrics] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = time_provider or SystemTimeProvider()
        self.rng = random_provider or SystemRandomProvider()
        self.metrics = metrics or ArbitrageMetrics()

        self.retry_policy = RetryPolicy(self.config.retry)
        self.snapshots = SnapshotManager(
            pools or [], self.retry_policy, self.config.max_concurrency, self.clock
        )
        self.sizer = TradeSizer(self.config.sizer)
        self.detector = CycleDetector(self.config.detector)
        self.genetic = GeneticPathOptimizer(self.config.genetic, self.rng, self.clock)
        self.breaker = CircuitBreaker(self.config.circuit_breaker, self.clock)
        self.hybrid = HybridSelector(
            self.config.hybrid,
            detector=self.detector,
            genetic=self.genetic,
            breaker=self.breaker,
            baseline=BaselineSplitter(
                self.config.hybrid.baseline_max_paths,
                self.config.hybrid.max_price_impact_bps,
            ),
            time_provider=self.clock,
        )
        self.predictor = StatisticalPredictor(self.config.predictor, self.clock)
        self.allocator = CapitalAllocator(self.config.allocator, self.clock)
        self.graph = MarketGraph()

        self._predictions: List[OpportunityPrediction] = []
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.tick_count = 0
        self.executions = {
            "attempted": 0,
            "succeeded": 0,
            "failed": 0,
            "total_profit": 0,
        }
        self._recent_ids: Dict[str, str] = {}

    async def tick(self, order_size: Optional[int] = None) -> TickResult:
        """
        Run one evaluation tick.

        Args:
            order_size: Capital for this tick's search; defaults to
                ``default_order_size_wei``

        Returns:
            TickResult with opportunities ranked by net profit
        """
        start_ms = self.clock.current_time_ms()
        order_size = self.config.default_order_size_wei if order_size is None else order_size
        errors: Dict[str, str] = {}

        try:
            refresh = await self.snapshots.refresh_all()
        except Exception as e:
            logger.error("Refresh stage failed: %s", e, exc_info=True)
            errors["refresh"] = str(e)
            refresh = RefreshReport()

        snapshot = self.snapshots.swap()
        markets = snapshot.markets_by_token
        result = TickResult(tick_id=snapshot.tick_id, timestamp=snapshot.timestamp, refresh=refresh)

        if self.config.enable_statistics:
            self._run_statistics(markets, result, errors)

        self.graph = MarketGraph().build(markets)
        try:
            result.hybrid = await self.hybrid.evaluate(
                self.graph,
                order_size,
                base_token=self.config.base_token,
                volatility=self.predictor.average_volatility(),
            )
            candidates = list(result.hybrid.opportunities)
        except Exception as e:
            logger.error("Hybrid stage failed: %s", e, exc_info=True)
            errors["hybrid"] = str(e)
            candidates = []

        if self.config.enable_pairwise_scan:
            try:
                candidates.extend(self.sizer.find_pairwise_opportunities(markets))
            except Exception as e:
                logger.error("Pairwise stage failed: %s", e, exc_info=True)
                errors["pairwise"] = str(e)

        ranked = HybridSelector.rank(candidates)
        result.opportunities = self._tag_statistical(ranked)[: self.config.max_opportunities]
        result.errors = errors
        result.duration_ms = self.clock.current_time_ms() - start_ms
        self.tick_count += 1
        for opportunity in result.opportunities:
            self._recent_ids[opportunity.opportunity_id] = opportunity.source.value

        self._record_metrics(result)
        logger.info(
            "Tick %d: %d opportunities, %d predictions, %d opened, %d closed (%d ms)",
            result.tick_id,
            len(result.opportunities),
            len(result.predictions),
            len(result.opened_positions),
            len(result.closed_positions),
            result.duration_ms,
        )
        return result

    def _run_statistics(
        self, markets: MarketsByToken, result: TickResult, errors: Dict[str, str]
    ) -> None:
        try:
            if self.predictor.update_from_snapshot(markets):
                self._predictions = self.predictor.predict_opportunities(markets)
            result.predictions = list(self._predictions)
        except Exception as e:
            logger.error("Prediction stage failed: %s", e, exc_info=True)
            errors["predictor"] = str(e)
            return

        try:
            rebalance = self.allocator.rebalance_if_due(self._predictions)
            result.closed_positions = rebalance["closed"]
            result.opened_positions = rebalance["opened"]
        except Exception as e:
            logger.error("Allocation stage failed: %s", e, exc_info=True)
            errors["allocator"] = str(e)

    def _tag_statistical(self, opportunities: List[Opportunity]) -> List[Opportunity]:
        """Re-tag opportunities on pools the predictor flagged for pre-positioning."""
        flagged = {
            p.pool.address: p for p in self._predictions if p.should_pre_position
        }
        if not flagged:
            return opportunities
        for opportunity in opportunities:
            hits = [flagged[p.address] for p in opportunity.pools if p.address in flagged]
            if hits:
                opportunity.metadata["origin"] = opportunity.source.value
                opportunity.metadata["prediction"] = hits[0].reason
                opportunity.metadata["confidence"] = hits[0].confidence
                opportunity.source = OpportunitySource.STATISTICAL
        return opportunities

    def _record_metrics(self, result: TickResult) -> None:
        self.metrics.record_tick(result.duration_ms / 1000, self.graph.dead_edge_count)
        self.metrics.record_refresh_failures(result.refresh.failed)
        for source in OpportunitySource:
            self.metrics.record_opportunity(
                source.value, sum(1 for o in result.opportunities if o.source is source)
            )
        hybrid = result.hybrid
        if hybrid is not None and hybrid.used_ga:
            won = bool(hybrid.opportunities) and (
                hybrid.opportunities[0].source is OpportunitySource.GENETIC
            )
            self.metrics.record_ga_run(won=won, failed=hybrid.ga_error is not None)
        for _ in result.opened_positions:
            self.metrics.record_position_opened()
        for record in result.closed_positions:
            self.metrics.record_position_closed(record.exit_reason.value)
        self.metrics.update_deployed_capital(self.allocator.deployed_capital)

    def record_execution(self, opportunity_id: str, success: bool, profit: int = 0) -> None:
        """Feedback from the execution collaborator, used for statistics only."""
        self.executions["attempted"] += 1
        if success:
            self.executions["succeeded"] += 1
            self.executions["total_profit"] += profit
        else:
            self.executions["failed"] += 1
        logger.info(
            "Execution of %s (%s): %s, profit=%d",
            opportunity_id,
            self._recent_ids.get(opportunity_id, "unknown"),
            "success" if success else "failure",
            profit,
        )

    def get_performance_metrics(self) -> Dict[str, Any]:
        attempted = self.executions["attempted"]
        return {
            "ticks": self.tick_count,
            "executions": dict(self.executions),
            "execution_success_rate": (
                self.executions["succeeded"] / attempted * 100 if attempted else 0.0
            ),
            "hybrid": self.hybrid.get_stats(),
            "positions": self.allocator.get_performance_metrics(),
            "capital": self.allocator.get_capital_allocation(),
            "predictor": self.predictor.get_summary(),
        }

    def reset(self) -> None:
        self.hybrid.reset()
        self.breaker.reset()
        self.predictor.reset()
        self.allocator.reset()
        self._predictions = []
        self._reset_counters()
        logger.info("Engine reset")

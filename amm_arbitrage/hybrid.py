"""
Hybrid selection between the deterministic search and the genetic optimizer.

Each evaluation profiles the market instance, always runs the cycle detector
plus baseline split, and runs the GA alongside it only when the profile
suggests fragmented liquidity worth splitting over and the circuit breaker
allows it. Both result sets are merged, post-validated against current
reserves, deduplicated by pool set and ranked.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from .amm_math import estimate_gas, gas_cost_wei
from .baseline import BaselineSplitter
from .circuit_breaker import CircuitBreaker
from .config_schema import HybridConfig
from .constants import OpportunitySource
from .detector import CycleDetector
from .exceptions import ArbitrageError, ConfigurationError
from .genetic import GeneticPathOptimizer, GeneticResult, enumerate_cycles
from .graph import MarketGraph
from .interfaces import SystemTimeProvider, TimeProvider
from .types import ArbitragePath, Opportunity, opportunity_from_path
from .utils import get_logger, update_moving_average

logger = get_logger(__name__)


@dataclass
class InstanceProfile:
    order_size: int
    fragmentation_score: float  # 0-100
    market_count: int
    token_count: int
    volatility: float  # informational, bps
    recommend_ga: bool = False


@dataclass
class HybridResult:
    opportunities: List[Opportunity]
    profile: InstanceProfile
    used_ga: bool = False
    ga_result: Optional[GeneticResult] = None
    ga_error: Optional[str] = None
    deterministic_count: int = 0
    dropped: int = 0
    stats: Dict[str, Any] = field(default_factory=dict)


class HybridSelector:
    """Decides per evaluation whether the GA runs next to the baseline."""

    def __init__(
        self,
        config: Optional[HybridConfig] = None,
        detector: Optional[CycleDetector] = None,
        genetic: Optional[GeneticPathOptimizer] = None,
        breaker: Optional[CircuitBreaker] = None,
        baseline: Optional[BaselineSplitter] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.config = config or HybridConfig()
        self.clock = time_provider or SystemTimeProvider()
        self.detector = detector or CycleDetector()
        self.genetic = genetic or GeneticPathOptimizer(time_provider=self.clock)
        self.breaker = breaker or CircuitBreaker(time_provider=self.clock)
        self.baseline = baseline or BaselineSplitter(
            self.config.baseline_max_paths, self.config.max_price_impact_bps
        )
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.total_runs = 0
            self.ga_runs = 0
            self.ga_wins = 0
            self.dual_wins = 0
            self.ga_failures = 0
            self._ga_completed = 0
            self.avg_ga_time_ms = 0.0
            self.avg_deterministic_time_ms = 0.0
            self._deterministic_samples = 0

    def profile(
        self, graph: MarketGraph, order_size: int, volatility: float = 0.0
    ) -> InstanceProfile:
        """
        Characterize the instance the search is about to run on.

        Fragmentation is the average number of pools quoting each token,
        times 20, capped at 100.
        """
        markets = graph.markets_by_token
        if markets:
            avg_pools_per_token = sum(len(p) for p in markets.values()) / len(markets)
        else:
            avg_pools_per_token = 0.0

        profile = InstanceProfile(
            order_size=order_size,
            fragmentation_score=min(100.0, avg_pools_per_token * 20),
            market_count=graph.market_count(),
            token_count=len(markets),
            volatility=volatility,
        )
        profile.recommend_ga = self.should_use_ga(profile)
        return profile

    def should_use_ga(self, profile: InstanceProfile) -> bool:
        if not self.config.enable_ga:
            return False

        if profile.order_size < self.config.min_order_size_for_ga:
            logger.debug("Skipping GA: order size %d below minimum", profile.order_size)
            return False

        if (
            self.config.enable_fragmentation_check
            and profile.fragmentation_score < self.config.fragmentation_threshold
        ):
            logger.debug(
                "Skipping GA: low fragmentation (%.1f)", profile.fragmentation_score
            )
            return False

        if profile.market_count < self.config.min_market_count:
            logger.debug("Skipping GA: insufficient markets (%d)", profile.market_count)
            return False

        if self.breaker.is_tripped():
            logger.debug("Skipping GA: circuit breaker tripped")
            return False

        return True

    async def evaluate(
        self,
        graph: MarketGraph,
        order_size: int,
        base_token: Optional[str] = None,
        volatility: float = 0.0,
    ) -> HybridResult:
        """
        Run one hybrid evaluation against a built graph.

        Args:
            graph: Market graph for this tick
            order_size: Capital available for the trade, in base token units
            base_token: Token the GA routes start from; defaults to the most
                connected token
            volatility: Market volatility proxy in bps, recorded in the profile

        Returns:
            HybridResult with opportunities ranked by net profit
        """
        with self._lock:
            self.total_runs += 1

        profile = self.profile(graph, order_size, volatility)
        start_token = base_token or graph.most_connected_token()
        logger.info(
            "Hybrid evaluation: GA=%s fragmentation=%.1f markets=%d order=%d",
            profile.recommend_ga,
            profile.fragmentation_score,
            profile.market_count,
            order_size,
        )

        deterministic_task = self._run_deterministic(graph, order_size)
        if profile.recommend_ga:
            with self._lock:
                self.ga_runs += 1
            (baseline_paths, cycle_count), (ga_result, ga_error) = await asyncio.gather(
                deterministic_task,
                self._run_genetic(graph, start_token, order_size),
            )
        else:
            baseline_paths, cycle_count = await deterministic_task
            ga_result, ga_error = None, None

        opportunities = [
            self._to_opportunity(path, OpportunitySource.DETERMINISTIC, {"rank": i})
            for i, path in enumerate(baseline_paths)
        ]
        if ga_result is not None:
            opportunities.extend(
                self._to_opportunity(
                    path,
                    OpportunitySource.GENETIC,
                    {"generations": ga_result.generations, "timed_out": ga_result.timed_out},
                )
                for path in ga_result.candidate_paths()
            )
            self._record_winner(ga_result, baseline_paths)

        validated, dropped = self.post_validate(opportunities)
        ranked = self.rank(validated)

        logger.info(
            "Hybrid evaluation completed: %d opportunities (%d cycles, %d dropped)",
            len(ranked),
            cycle_count,
            dropped,
        )
        return HybridResult(
            opportunities=ranked,
            profile=profile,
            used_ga=profile.recommend_ga,
            ga_result=ga_result,
            ga_error=ga_error,
            deterministic_count=len(baseline_paths),
            dropped=dropped,
            stats=self.get_stats(),
        )

    async def _run_deterministic(
        self, graph: MarketGraph, order_size: int
    ) -> Tuple[List[ArbitragePath], int]:
        start_ms = self.clock.current_time_ms()
        try:
            cycles = await asyncio.to_thread(self.detector.find_cycles, graph)
            paths = self.baseline.split(cycles, order_size)
        except (ArbitrageError, ArithmeticError) as e:
            logger.error("Deterministic search failed: %s", e)
            return [], 0

        elapsed = self.clock.current_time_ms() - start_ms
        with self._lock:
            self._deterministic_samples += 1
            self.avg_deterministic_time_ms = update_moving_average(
                self.avg_deterministic_time_ms, elapsed, self._deterministic_samples
            )
        return paths, len(cycles)

    async def _run_genetic(
        self, graph: MarketGraph, start_token: str, order_size: int
    ) -> Tuple[Optional[GeneticResult], Optional[str]]:
        cancel = threading.Event()
        timeout = (self.genetic.config.time_budget_ms + self.config.ga_grace_ms) / 1000

        def search() -> Optional[GeneticResult]:
            candidates = enumerate_cycles(
                graph,
                start_token,
                self.genetic.config.max_path_length,
                self.genetic.config.max_candidate_paths,
            )
            if not candidates:
                return None
            return self.genetic.optimize(candidates, order_size, cancel)

        try:
            result = await asyncio.wait_for(asyncio.to_thread(search), timeout=timeout)
        except asyncio.TimeoutError:
            cancel.set()
            best = self.genetic.best_so_far
            self._record_ga_failure("timeout")
            logger.warning("GA abandoned after %.2fs, keeping best so far", timeout)
            partial = GeneticResult(
                best=best[0] if best else None,
                runners_up=best[1:],
                elapsed_ms=int(timeout * 1000),
                timed_out=True,
                cancelled=True,
            )
            return partial, "timeout"
        except Exception as e:
            self._record_ga_failure(f"{type(e).__name__}: {e}")
            logger.error("GA execution failed: %s", e, exc_info=True)
            return None, str(e)

        if result is None:
            # Empty search space; the breaker is left untouched
            logger.info("GA skipped: no candidate cycles through %s", start_token)
            return None, None

        self.breaker.record_success()
        with self._lock:
            self._ga_completed += 1
            self.avg_ga_time_ms = update_moving_average(
                self.avg_ga_time_ms, result.elapsed_ms, self._ga_completed
            )
        return result, None

    def _record_ga_failure(self, reason: str) -> None:
        with self._lock:
            self.ga_failures += 1
        self.breaker.record_failure(reason)

    def _record_winner(
        self, ga_result: GeneticResult, baseline_paths: List[ArbitragePath]
    ) -> None:
        if ga_result.best is None and not baseline_paths:
            return
        ga_surplus = ga_result.best.surplus if ga_result.best else 0
        baseline_surplus = sum(p.expected_profit for p in baseline_paths)
        with self._lock:
            if ga_surplus > baseline_surplus:
                self.ga_wins += 1
            else:
                self.dual_wins += 1

    def _to_opportunity(
        self, path: ArbitragePath, source: OpportunitySource, metadata: Dict[str, Any]
    ) -> Opportunity:
        gas = estimate_gas(path.volume)
        return opportunity_from_path(
            path,
            source,
            gas_estimate=gas,
            gas_cost=gas_cost_wei(gas, self.config.gas_price_gwei),
            metadata=metadata,
        )

    def post_validate(
        self, opportunities: List[Opportunity]
    ) -> Tuple[List[Opportunity], int]:
        """
        Re-check executability against current reserves.

        Every hop's input and output must stay below the pool's reserve of
        that token, the cumulative price impact must be within bound and the
        opportunity must pay for its gas. Failures are logged and dropped.
        """
        valid: List[Opportunity] = []
        dropped = 0
        for opportunity in opportunities:
            reason = self._validation_failure(opportunity)
            if reason:
                dropped += 1
                logger.debug(
                    "Dropping %s opportunity %s: %s",
                    opportunity.source.value,
                    opportunity.opportunity_id,
                    reason,
                )
                continue
            valid.append(opportunity)
        return valid, dropped

    def _validation_failure(self, opportunity: Opportunity) -> Optional[str]:
        if opportunity.volume <= 0:
            return "zero volume"
        if opportunity.price_impact_bps > self.config.max_price_impact_bps:
            return f"price impact {opportunity.price_impact_bps} bps"
        if opportunity.net_profit <= 0:
            return "not gas-profitable"

        amounts = opportunity.amounts or [opportunity.volume]
        for hop, pool in enumerate(opportunity.pools):
            token_in, token_out = opportunity.tokens[hop], opportunity.tokens[hop + 1]
            try:
                reserve_in = pool.reserve_of(token_in)
                reserve_out = pool.reserve_of(token_out)
            except ArbitrageError as e:
                return str(e)
            amount_in = amounts[hop] if hop < len(amounts) else 0
            amount_out = amounts[hop + 1] if hop + 1 < len(amounts) else 0
            if amount_in >= reserve_in or amount_out >= reserve_out:
                return f"volume exceeds reserves of {pool.address}"
        return None

    @staticmethod
    def rank(opportunities: List[Opportunity]) -> List[Opportunity]:
        """Keep the most profitable opportunity per pool set, best first."""
        best: Dict[Tuple[str, ...], Opportunity] = {}
        for opportunity in opportunities:
            key = opportunity.pool_key
            current = best.get(key)
            if current is None or opportunity.net_profit > current.net_profit:
                best[key] = opportunity
        return sorted(best.values(), key=lambda o: o.net_profit, reverse=True)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            decided = self.ga_wins + self.dual_wins
            return {
                "total_runs": self.total_runs,
                "ga_runs": self.ga_runs,
                "ga_wins": self.ga_wins,
                "dual_wins": self.dual_wins,
                "ga_failures": self.ga_failures,
                "ga_win_rate": self.ga_wins / decided if decided else 0.0,
                "avg_ga_time_ms": self.avg_ga_time_ms,
                "avg_deterministic_time_ms": self.avg_deterministic_time_ms,
                "circuit_breaker": self.breaker.status(),
            }

    def update_config(self, **changes: Any) -> None:
        """
        Adjust selection thresholds at runtime.

        ``time_budget_ms`` is forwarded to the genetic optimizer.

        Raises:
            ConfigurationError: On an unknown option or an invalid value
        """
        budget = changes.pop("time_budget_ms", None)
        unknown = set(changes) - set(HybridConfig.model_fields)
        if unknown:
            raise ConfigurationError(
                f"Unknown hybrid option(s): {', '.join(sorted(unknown))}",
                details={"options": sorted(unknown)},
            )

        try:
            self.config = HybridConfig.model_validate({**self.config.model_dump(), **changes})
            if budget is not None:
                self.genetic.config = self.genetic.config.model_validate(
                    {**self.genetic.config.model_dump(), "time_budget_ms": budget}
                )
        except PydanticValidationError as e:
            raise ConfigurationError(
                "Invalid hybrid configuration update", details={"errors": e.errors()}
            ) from e

        logger.info("Hybrid configuration updated: %s", ", ".join(sorted(changes)) or "time_budget_ms")

"""
Configuration schema validation using Pydantic
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

ETHER = 10**18


class SizerConfig(BaseModel):
    """Closed-form two-pool trade sizing"""

    min_profit_wei: int = Field(
        default=10**16, ge=0, description="Minimum net profit after gas"
    )
    max_gas_price_gwei: int = Field(
        default=30, ge=0, le=10000, description="Gas price used for cost estimates"
    )
    max_slippage_percent: float = Field(
        default=3.0, ge=0, le=100, description="Maximum slippage on the buy leg"
    )
    max_trade_percent_of_liquidity: int = Field(
        default=20, ge=1, le=100, description="Cap on input as % of buy-side reserve"
    )
    min_spread_bps: int = Field(
        default=10, ge=0, le=10000, description="Minimum price differential"
    )
    sqrt_tolerance: int = Field(default=1, ge=1)
    sqrt_max_iterations: int = Field(default=50, ge=1, le=1024)
    base_gas: int = Field(default=350000, ge=0)
    gas_per_unit_volume: int = Field(default=10000, ge=0)


class DetectorConfig(BaseModel):
    """Bellman-Ford cycle detection and per-cycle volume search"""

    max_path_length: int = Field(default=4, ge=2, le=8, description="Maximum hops")
    min_profit_wei: int = Field(default=10**16, ge=0)
    max_price_impact_bps: int = Field(
        default=500, ge=0, le=10000, description="Cumulative price impact ceiling"
    )
    max_start_tokens: int = Field(default=50, ge=1)
    volume_search_iterations: int = Field(default=20, ge=1, le=200)
    min_search_volume: int = Field(default=10**15, ge=1)
    search_tolerance: int = Field(default=10**14, ge=1)
    liquidity_divisor: int = Field(
        default=10, ge=1, description="Upper search bound is min liquidity / divisor"
    )
    relaxation_epsilon: float = Field(default=1e-12, ge=0)


class GeneticConfig(BaseModel):
    """Genetic multi-path optimizer"""

    population_size: int = Field(default=64, ge=4, le=10000)
    max_generations: int = Field(default=100, ge=1)
    time_budget_ms: int = Field(default=2000, ge=1)
    max_split_paths: int = Field(
        default=3, ge=1, le=16, description="Paths per chromosome"
    )
    elite_count: int = Field(default=4, ge=1)
    tournament_size: int = Field(default=3, ge=2)
    crossover_rate: float = Field(default=0.8, ge=0, le=1)
    mutation_rate: float = Field(default=0.2, ge=0, le=1)
    diversity_bonus_bps: float = Field(
        default=1.0, ge=0, le=100, description="Bonus for rare path sets, vs order size"
    )
    runners_up: int = Field(default=2, ge=0, le=16)
    max_candidate_paths: int = Field(default=128, ge=1)
    max_path_length: int = Field(default=4, ge=2, le=8)
    max_price_impact_bps: int = Field(default=500, ge=0, le=10000)
    gas_price_gwei: int = Field(default=30, ge=0)

    @model_validator(mode="after")
    def validate_population(self):
        if self.elite_count >= self.population_size:
            raise ValueError("elite_count must be smaller than population_size")
        if self.tournament_size > self.population_size:
            raise ValueError("tournament_size cannot exceed population_size")
        return self


class HybridConfig(BaseModel):
    """Policy deciding when the genetic optimizer runs"""

    enable_ga: bool = True
    min_order_size_for_ga: int = Field(default=5 * ETHER, ge=0)
    fragmentation_threshold: float = Field(default=30.0, ge=0, le=100)
    enable_fragmentation_check: bool = True
    min_market_count: int = Field(default=5, ge=0)
    ga_grace_ms: int = Field(
        default=500, ge=0, description="Extra wait past the GA budget before abandoning"
    )
    max_price_impact_bps: int = Field(default=500, ge=0, le=10000)
    baseline_max_paths: int = Field(default=8, ge=1)
    gas_price_gwei: int = Field(default=30, ge=0)


class CircuitBreakerConfig(BaseModel):
    """Failure-counting guard around the genetic optimizer"""

    max_failures: int = Field(default=3, ge=1)
    reset_timeout_seconds: float = Field(default=60.0, ge=0)
    cooldown_seconds: float = Field(default=300.0, ge=0)


class PredictorConfig(BaseModel):
    """Rolling volatility / mean-reversion predictor"""

    min_volatility_bps: int = Field(default=50, ge=0)
    max_volatility_bps: int = Field(default=5000, ge=0)
    min_confidence: int = Field(default=60, ge=0, le=100)
    lookback_seconds: int = Field(default=86400, ge=1)
    update_frequency_seconds: float = Field(default=60.0, ge=0)
    enable_pre_positioning: bool = True
    pre_position_threshold: int = Field(default=75, ge=0, le=100)
    mean_reversion_threshold: int = Field(default=70, ge=0, le=100)
    max_history: int = Field(default=1000, ge=2)

    @model_validator(mode="after")
    def validate_bands(self):
        if self.min_volatility_bps > self.max_volatility_bps:
            raise ValueError("min_volatility_bps must not exceed max_volatility_bps")
        if self.pre_position_threshold < self.min_confidence:
            raise ValueError("pre_position_threshold must be >= min_confidence")
        return self


class AllocatorConfig(BaseModel):
    """Capital pre-positioning and risk limits"""

    max_position_size_wei: int = Field(default=10 * ETHER, ge=0)
    max_total_capital_wei: int = Field(default=100 * ETHER, ge=0)
    initial_capital_wei: Optional[int] = Field(
        default=None, ge=0, description="Defaults to max_total_capital_wei"
    )
    position_size_percentage: int = Field(default=10, ge=0, le=100)
    max_positions: int = Field(default=5, ge=0)
    stop_loss_percentage: int = Field(default=5, ge=0, le=100)
    take_profit_percentage: int = Field(default=10, ge=0, le=1000)
    position_timeout_seconds: float = Field(default=3600.0, ge=0)
    min_confidence_for_position: int = Field(default=75, ge=0, le=100)
    rebalance_frequency_seconds: float = Field(default=300.0, ge=0)
    kelly_cap: float = Field(default=0.5, ge=0, le=1)
    min_position_size_wei: int = Field(default=ETHER // 10, ge=0)

    @model_validator(mode="after")
    def validate_capital(self):
        if self.max_position_size_wei > self.max_total_capital_wei:
            raise ValueError("max_position_size_wei cannot exceed max_total_capital_wei")
        if (
            self.initial_capital_wei is not None
            and self.initial_capital_wei > self.max_total_capital_wei
        ):
            raise ValueError("initial_capital_wei cannot exceed max_total_capital_wei")
        return self


class RetryConfig(BaseModel):
    """Retry policy applied to pool refreshes only"""

    max_attempts: int = Field(default=3, ge=1, le=10)
    initial_wait_seconds: float = Field(default=0.1, ge=0)
    max_wait_seconds: float = Field(default=2.0, ge=0)
    jitter: bool = True


class EngineConfig(BaseModel):
    """Top-level configuration for an arbitrage engine instance"""

    sizer: SizerConfig = Field(default_factory=SizerConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    genetic: GeneticConfig = Field(default_factory=GeneticConfig)
    hybrid: HybridConfig = Field(default_factory=HybridConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    predictor: PredictorConfig = Field(default_factory=PredictorConfig)
    allocator: AllocatorConfig = Field(default_factory=AllocatorConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    base_token: Optional[str] = Field(
        default=None, description="Token cycles start from; most-connected if unset"
    )
    default_order_size_wei: int = Field(default=10 * ETHER, ge=0)
    max_concurrency: int = Field(
        default=10, ge=1, le=256, description="Concurrent pool refreshes per tick"
    )
    enable_pairwise_scan: bool = True
    enable_statistics: bool = True
    max_opportunities: int = Field(default=50, ge=1)

    @field_validator("base_token")
    @classmethod
    def validate_base_token(cls, v):
        if v is not None and not v.strip():
            raise ValueError("base_token cannot be blank")
        return v

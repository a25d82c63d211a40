"""
Closed-form trade sizing between two pools quoting the same token pair.

The buy pool is the one where ``token`` is cheap in terms of ``base_token``;
the sell pool is the one where it is dear. For the buy pool's reserves
(R_base, R_token) and the sell pool's price P (base per token, scaled by
1e18), the input that moves the buy pool to the sell pool's price is

    sqrt(R_base * R_token * P) - R_base

which is then scaled by feeDenominator / (feeDenominator + feeNumerator)
to account for the fee charged on input, and clamped to a fraction of the
buy-side reserve.
"""

from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from .amm_math import estimate_gas, fee_factors, gas_cost_wei, integer_sqrt
from .config_schema import SizerConfig
from .constants import BPS_DENOMINATOR, OpportunitySource, PRECISION
from .exceptions import ArbitrageError
from .pools.base import PoolHandle
from .types import MarketsByToken, Opportunity, pool_key
from .utils import get_logger, short_address

logger = get_logger(__name__)


@dataclass
class TradeSizing:
    """Sized two-pool round trip: base -> token on buy_pool, token -> base on sell_pool."""

    buy_pool: PoolHandle
    sell_pool: PoolHandle
    base_token: str
    token: str
    optimal_input_amount: int  # base_token units
    buy_output: int  # token received from buy_pool
    final_output: int  # base_token received back from sell_pool
    expected_profit: int  # gross, final_output - input
    profit_bps: int  # gross profit vs input
    gas_estimate: int  # gas units
    net_profit: int  # expected_profit - gas cost in wei
    slippage_percent: float  # buy leg slippage vs spot


class TradeSizer:
    """Profit-maximizing input sizing for crossed pool pairs."""

    def __init__(self, config: Optional[SizerConfig] = None):
        self.config = config or SizerConfig()

    def sqrt(self, value: int) -> int:
        return integer_sqrt(
            value, self.config.sqrt_tolerance, self.config.sqrt_max_iterations
        )

    def calculate_optimal_trade(
        self,
        buy_pool: PoolHandle,
        sell_pool: PoolHandle,
        base_token: str,
        token: str,
    ) -> Optional[TradeSizing]:
        """
        Size a base -> token -> base round trip across two pools.

        Args:
            buy_pool: Pool where base_token buys token cheaply
            sell_pool: Pool where token sells back for more base_token
            base_token: Token the trade starts and ends in
            token: Intermediate token

        Returns:
            TradeSizing, or None when there is no opportunity
        """
        try:
            return self._calculate_optimal_trade(buy_pool, sell_pool, base_token, token)
        except (ArbitrageError, ArithmeticError) as e:
            logger.debug(
                "Sizing failed for %s -> %s: %s",
                short_address(buy_pool.address),
                short_address(sell_pool.address),
                e,
            )
            return None

    def _calculate_optimal_trade(
        self,
        buy_pool: PoolHandle,
        sell_pool: PoolHandle,
        base_token: str,
        token: str,
    ) -> Optional[TradeSizing]:
        buy_base = buy_pool.reserve_of(base_token)
        buy_quote = buy_pool.reserve_of(token)
        sell_base = sell_pool.reserve_of(base_token)
        sell_quote = sell_pool.reserve_of(token)

        if buy_base == 0 or buy_quote == 0 or sell_base == 0 or sell_quote == 0:
            return None

        # Price of token in base_token on each side
        buy_price = buy_base * PRECISION // buy_quote
        sell_price = sell_base * PRECISION // sell_quote
        if buy_price == 0 or sell_price <= buy_price:
            return None

        spread_bps = (sell_price - buy_price) * BPS_DENOMINATOR // buy_price
        if spread_bps < self.config.min_spread_bps:
            return None

        target = buy_base * buy_quote * sell_price // PRECISION
        sqrt_target = self.sqrt(target)
        if sqrt_target <= buy_base:
            return None

        fee_numerator, fee_denominator = fee_factors(buy_pool.fee_bps)
        optimal_input = (
            (sqrt_target - buy_base) * fee_denominator // (fee_denominator + fee_numerator)
        )

        max_trade = buy_base * self.config.max_trade_percent_of_liquidity // 100
        input_amount = min(optimal_input, max_trade)
        if input_amount <= 0:
            return None

        buy_output = buy_pool.get_amount_out(base_token, token, input_amount)
        final_output = sell_pool.get_amount_out(token, base_token, buy_output)

        gross_profit = final_output - input_amount
        gas_estimate = estimate_gas(
            input_amount, self.config.base_gas, self.config.gas_per_unit_volume
        )
        net_profit = gross_profit - gas_cost_wei(
            gas_estimate, self.config.max_gas_price_gwei
        )
        profit_bps = gross_profit * BPS_DENOMINATOR // input_amount

        if net_profit < self.config.min_profit_wei:
            return None

        slippage = self.calculate_slippage(input_amount, buy_base, buy_output, buy_quote)
        if slippage > self.config.max_slippage_percent:
            return None

        return TradeSizing(
            buy_pool=buy_pool,
            sell_pool=sell_pool,
            base_token=base_token,
            token=token,
            optimal_input_amount=input_amount,
            buy_output=buy_output,
            final_output=final_output,
            expected_profit=gross_profit,
            profit_bps=profit_bps,
            gas_estimate=gas_estimate,
            net_profit=net_profit,
            slippage_percent=slippage,
        )

    @staticmethod
    def calculate_slippage(
        input_amount: int, input_reserve: int, output_amount: int, output_reserve: int
    ) -> float:
        """Realized output shortfall against the linear spot price, in percent."""
        if input_reserve == 0:
            return 100.0
        spot_price = output_reserve * PRECISION // input_reserve
        expected_output = input_amount * spot_price // PRECISION
        if expected_output == 0:
            return 0.0
        slippage_bps = (expected_output - output_amount) * BPS_DENOMINATOR // expected_output
        return slippage_bps / 100

    def best_trade(
        self,
        pool_a: PoolHandle,
        pool_b: PoolHandle,
        base_token: str,
        token: str,
    ) -> Optional[TradeSizing]:
        """Evaluate both directions of a pool pair and keep the more profitable."""
        candidates = [
            self.calculate_optimal_trade(pool_a, pool_b, base_token, token),
            self.calculate_optimal_trade(pool_b, pool_a, base_token, token),
        ]
        candidates = [c for c in candidates if c is not None]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.net_profit)

    def find_pairwise_opportunities(
        self, markets_by_token: MarketsByToken
    ) -> List[Opportunity]:
        """
        Compare every pool pair quoting the same token pair.

        Args:
            markets_by_token: Mapping of token to the pools quoting it

        Returns:
            Opportunities sorted by net profit, best first
        """
        opportunities: List[Opportunity] = []
        seen: Set[Tuple[Tuple[str, ...], str]] = set()
        comparisons = 0

        for token, pools in markets_by_token.items():
            if len(pools) < 2:
                continue
            for i in range(len(pools)):
                for j in range(i + 1, len(pools)):
                    pool_a, pool_b = pools[i], pools[j]
                    shared = (set(pool_a.tokens) & set(pool_b.tokens)) - {token}
                    for base_token in sorted(shared):
                        key = (pool_key([pool_a, pool_b]), base_token)
                        if key in seen:
                            continue
                        seen.add(key)
                        comparisons += 1

                        sizing = self.best_trade(pool_a, pool_b, base_token, token)
                        if sizing is not None:
                            opportunities.append(self.to_opportunity(sizing))

        opportunities.sort(key=lambda o: o.net_profit, reverse=True)
        logger.debug(
            "Pairwise scan: %d comparisons, %d opportunities",
            comparisons,
            len(opportunities),
        )
        return opportunities

    @staticmethod
    def to_opportunity(sizing: TradeSizing) -> Opportunity:
        return Opportunity(
            source=OpportunitySource.PAIRWISE,
            token=sizing.base_token,
            tokens=[sizing.base_token, sizing.token, sizing.base_token],
            pools=[sizing.buy_pool, sizing.sell_pool],
            volume=sizing.optimal_input_amount,
            expected_profit=sizing.expected_profit,
            gas_estimate=sizing.gas_estimate,
            net_profit=sizing.net_profit,
            price_impact_bps=(
                sizing.buy_pool.price_impact_bps(
                    sizing.base_token, sizing.optimal_input_amount
                )
                + sizing.sell_pool.price_impact_bps(sizing.token, sizing.buy_output)
            ),
            amounts=[sizing.optimal_input_amount, sizing.buy_output, sizing.final_output],
            metadata={"profit_bps": sizing.profit_bps, "slippage_pct": sizing.slippage_percent},
        )

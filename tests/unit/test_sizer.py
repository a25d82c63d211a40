"""
Test closed-form two-pool trade sizing.
"""

import unittest

from amm_arbitrage.config_schema import SizerConfig
from amm_arbitrage.constants import OpportunitySource
from amm_arbitrage.pools import ConstantProductPool
from amm_arbitrage.sizer import TradeSizer
from amm_arbitrage.snapshot import group_by_token

E18 = 10**18


class TestTradeSizer(unittest.TestCase):
    """Test cases for optimal input sizing between crossed pools."""

    def setUp(self):
        """Set up a pair of WETH/USDC pools 5% apart."""
        self.sizer = TradeSizer(SizerConfig())
        self.cheap = ConstantProductPool(
            "0xa1", ["WETH", "USDC"], [1000 * E18, 2_000_000 * E18]
        )
        self.dear = ConstantProductPool(
            "0xa2", ["WETH", "USDC"], [1000 * E18, 2_100_000 * E18]
        )

    def test_buys_where_token_is_cheap(self):
        """WETH bought for USDC on the 2000 pool and sold on the 2100 pool."""
        sizing = self.sizer.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH")

        self.assertIsNotNone(sizing)
        self.assertIs(sizing.buy_pool, self.cheap)
        self.assertIs(sizing.sell_pool, self.dear)
        self.assertGreater(sizing.final_output, sizing.optimal_input_amount)
        self.assertGreater(sizing.net_profit, 0)
        self.assertLess(sizing.net_profit, sizing.expected_profit)
        self.assertEqual(
            sizing.expected_profit, sizing.final_output - sizing.optimal_input_amount
        )

    def test_input_respects_liquidity_cap(self):
        """Input never exceeds the configured share of the buy-side reserve."""
        sizing = self.sizer.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH")
        self.assertLessEqual(sizing.optimal_input_amount, 2_000_000 * E18 * 20 // 100)

        capped = TradeSizer(SizerConfig(max_trade_percent_of_liquidity=1))
        small = capped.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH")
        self.assertEqual(small.optimal_input_amount, 2_000_000 * E18 // 100)

    def test_sized_input_beats_dust_and_overshoot(self):
        """The sized input earns more than a token trade or a pool-draining one."""
        sizing = self.sizer.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH")

        def profit(amount):
            bought = self.cheap.get_amount_out("USDC", "WETH", amount)
            return self.dear.get_amount_out("WETH", "USDC", bought) - amount

        amount = sizing.optimal_input_amount
        self.assertEqual(profit(amount), sizing.expected_profit)
        self.assertGreater(profit(amount), profit(amount // 100))
        self.assertGreater(profit(amount), profit(amount * 4))

    def test_weth_base_orientation_stays_under_first_reserve_cap(self):
        """Trading out of WETH, input stays below 20% of pool A's WETH reserve."""
        pool_a = ConstantProductPool("0xa1", ["WETH", "USDC"], [1000 * E18, 2_000_000 * E18])
        pool_b = ConstantProductPool("0xa2", ["WETH", "USDC"], [1000 * E18, 2_100_000 * E18])

        sizing = self.sizer.best_trade(pool_a, pool_b, "WETH", "USDC")

        self.assertIsNotNone(sizing)
        # USDC is cheaper in WETH terms on pool B
        self.assertIs(sizing.buy_pool, pool_b)
        self.assertIs(sizing.sell_pool, pool_a)
        self.assertGreater(sizing.optimal_input_amount, 0)
        self.assertLess(sizing.optimal_input_amount, pool_a.reserve_of("WETH") * 20 // 100)
        self.assertGreater(sizing.net_profit, 0)

    def test_wrong_direction_returns_none(self):
        """Buying on the dear pool has no spread."""
        self.assertIsNone(
            self.sizer.calculate_optimal_trade(self.dear, self.cheap, "USDC", "WETH")
        )

    def test_best_trade_picks_profitable_direction(self):
        """Argument order does not matter to best_trade."""
        sizing = self.sizer.best_trade(self.dear, self.cheap, "USDC", "WETH")
        self.assertIs(sizing.buy_pool, self.cheap)

    def test_equal_prices_have_no_opportunity(self):
        """Identical pools return None."""
        twin = ConstantProductPool("0xa3", ["WETH", "USDC"], [1000 * E18, 2_000_000 * E18])
        self.assertIsNone(self.sizer.best_trade(self.cheap, twin, "USDC", "WETH"))

    def test_spread_below_minimum(self):
        """A 5 bps difference is below the 10 bps floor."""
        close = ConstantProductPool("0xa3", ["WETH", "USDC"], [1000 * E18, 2_001_000 * E18])
        self.assertIsNone(self.sizer.calculate_optimal_trade(self.cheap, close, "USDC", "WETH"))

    def test_zero_reserve_returns_none(self):
        """An empty pool side is not an opportunity."""
        empty = ConstantProductPool("0xa3", ["WETH", "USDC"], [0, 2_100_000 * E18])
        self.assertIsNone(self.sizer.calculate_optimal_trade(self.cheap, empty, "USDC", "WETH"))

    def test_gas_makes_small_spread_unprofitable(self):
        """A high minimum profit filters the trade out."""
        strict = TradeSizer(SizerConfig(min_profit_wei=10**24))
        self.assertIsNone(strict.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH"))

    def test_slippage_limit(self):
        """A zero slippage allowance rejects any sized trade."""
        strict = TradeSizer(SizerConfig(max_slippage_percent=0))
        self.assertIsNone(strict.calculate_optimal_trade(self.cheap, self.dear, "USDC", "WETH"))

    def test_calculate_slippage(self):
        """Slippage is the output shortfall against the linear spot quote."""
        self.assertEqual(TradeSizer.calculate_slippage(10, 100, 10, 100), 0.0)
        self.assertEqual(TradeSizer.calculate_slippage(10, 100, 9, 100), 10.0)
        self.assertEqual(TradeSizer.calculate_slippage(10, 0, 9, 100), 100.0)


class TestPairwiseScan(unittest.TestCase):
    """Test the all-pairs comparison over pools sharing a token pair."""

    def setUp(self):
        self.sizer = TradeSizer()
        self.pools = [
            ConstantProductPool("0xa1", ["WETH", "USDC"], [1000 * E18, 2_000_000 * E18]),
            ConstantProductPool("0xa2", ["WETH", "USDC"], [1000 * E18, 2_100_000 * E18]),
            ConstantProductPool("0xb1", ["WETH", "DAI"], [1000 * E18, 2_000_000 * E18]),
        ]

    def test_finds_both_base_tokens(self):
        """The crossed pair pays starting from either token."""
        opportunities = self.sizer.find_pairwise_opportunities(group_by_token(self.pools))

        self.assertEqual(len(opportunities), 2)
        self.assertEqual({o.token for o in opportunities}, {"USDC", "WETH"})
        for opportunity in opportunities:
            self.assertEqual(opportunity.source, OpportunitySource.PAIRWISE)
            self.assertEqual(opportunity.pool_key, ("0xa1", "0xa2"))
            self.assertEqual(opportunity.tokens[0], opportunity.tokens[-1])
            self.assertEqual(len(opportunity.amounts), 3)
            self.assertGreater(opportunity.net_profit, 0)

    def test_sorted_by_net_profit(self):
        """Best opportunity first."""
        opportunities = self.sizer.find_pairwise_opportunities(group_by_token(self.pools))
        profits = [o.net_profit for o in opportunities]
        self.assertEqual(profits, sorted(profits, reverse=True))

    def test_single_pool_per_token(self):
        """Nothing to compare against."""
        self.assertEqual(self.sizer.find_pairwise_opportunities(group_by_token(self.pools[2:])), [])


if __name__ == "__main__":
    unittest.main()

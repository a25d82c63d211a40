"""
Command-line runner: evaluate a static pool set for a few ticks.

    python -m amm_arbitrage --pools examples/pools.yaml --ticks 3
"""

import argparse
import asyncio
import sys

from tabulate import tabulate

from . import logging_config
from .config_loader import load_config, load_pool_specs
from .config_schema import EngineConfig
from .engine import ArbitrageEngine, TickResult
from .exceptions import ConfigurationError
from .pools import build_pool
from .utils import format_wei, get_logger, to_wei

logger = get_logger(__name__)

E18 = 10**18

# Three crossed constant-product markets used when no pool file is given
DEMO_POOLS = [
    {
        "address": "0x00000000000000000000000000000000000000a1",
        "tokens": ["WETH", "USDC"],
        "reserves": [1000 * E18, 2_000_000 * E18],
    },
    {
        "address": "0x00000000000000000000000000000000000000a2",
        "tokens": ["WETH", "USDC"],
        "reserves": [1000 * E18, 2_100_000 * E18],
    },
    {
        "address": "0x00000000000000000000000000000000000000a3",
        "tokens": ["USDC", "DAI"],
        "reserves": [5_000_000 * E18, 5_000_000 * E18],
        "type": "stable_swap",
        "amplification": 200,
        "fee_bps": 4,
    },
    {
        "address": "0x00000000000000000000000000000000000000a4",
        "tokens": ["DAI", "WETH"],
        "reserves": [4_000_000 * E18, 2000 * E18],
    },
]


def print_opportunities(result: TickResult):
    if not result.opportunities:
        print(f"Tick {result.tick_id}: no opportunities")
        return

    rows = [{'#': rank, **opp.as_row()} for rank, opp in enumerate(result.opportunities, 1)]

    print(f"\nTick {result.tick_id} ({result.duration_ms} ms)")
    print(tabulate(rows, headers='keys', tablefmt='grid'))


def print_capital_summary(engine: ArbitrageEngine):
    capital = engine.allocator.get_capital_allocation()
    performance = engine.allocator.get_performance_metrics()
    hybrid = engine.hybrid.get_stats()

    rows = [
        ['Total capital', format_wei(capital['total'], 2)],
        ['Deployed', format_wei(capital['deployed'], 4)],
        ['Available', format_wei(capital['available'], 4)],
        ['Utilization', f"{capital['utilization_rate']:.2f}%"],
        ['Open positions', capital['open_positions']],
        ['Closed trades', performance['total_trades']],
        ['Win rate', f"{performance['win_rate']:.1f}%"],
        ['GA runs / wins', f"{hybrid['ga_runs']} / {hybrid['ga_wins']}"],
        ['Circuit breaker', hybrid['circuit_breaker']['state']],
    ]
    print("\nCapital summary")
    print(tabulate(rows, headers=['Metric', 'Value'], tablefmt='grid'))


async def run(engine: ArbitrageEngine, ticks: int, order_size: int, interval: float):
    for index in range(ticks):
        result = await engine.tick(order_size)
        print_opportunities(result)
        if index + 1 < ticks and interval > 0:
            await asyncio.sleep(interval)
    print_capital_summary(engine)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Discover and size AMM arbitrage opportunities over a static pool set'
    )
    parser.add_argument(
        '--config',
        type=str,
        help='Engine configuration YAML (defaults apply when omitted)'
    )
    parser.add_argument(
        '--pools',
        type=str,
        help='Pool set YAML; a built-in demo set is used when omitted'
    )
    parser.add_argument(
        '--order-size',
        type=str,
        default=None,
        help='Order size in whole tokens of the base token (default: from config)'
    )
    parser.add_argument(
        '--ticks',
        type=int,
        default=1,
        help='Number of ticks to run (default: 1)'
    )
    parser.add_argument(
        '--interval',
        type=float,
        default=0.0,
        help='Seconds to wait between ticks (default: 0)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    args = parser.parse_args(argv)
    logging_config.setup(args.log_level)

    try:
        config = load_config(args.config) if args.config else EngineConfig()
        specs = load_pool_specs(args.pools) if args.pools else DEMO_POOLS
        pools = [build_pool(spec) for spec in specs]
        order_size = (
            to_wei(args.order_size)
            if args.order_size is not None
            else config.default_order_size_wei
        )
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2
    except ArithmeticError:
        logger.error("Invalid order size: %s", args.order_size)
        return 2

    engine = ArbitrageEngine(config, pools)
    asyncio.run(run(engine, max(args.ticks, 1), order_size, args.interval))
    return 0


if __name__ == "__main__":
    sys.exit(main())

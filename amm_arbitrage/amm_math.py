"""
Fixed-point AMM arithmetic.

All amounts are non-negative Python integers in the token's smallest unit, so
there is no overflow to guard against; the helpers here only have to avoid
division by zero and non-convergence, and they do so by returning zero rather
than raising.
"""

from .constants import (
    BASE_GAS,
    FEE_DENOMINATOR,
    FEE_NUMERATOR,
    GAS_PER_UNIT_VOLUME,
    ONE_UNIT,
    SQRT_MAX_ITERATIONS,
    SQRT_TOLERANCE,
    WEI_PER_GWEI,
)


def integer_sqrt(
    value: int,
    tolerance: int = SQRT_TOLERANCE,
    max_iterations: int = SQRT_MAX_ITERATIONS,
) -> int:
    """
    Square root of an arbitrary-precision integer by Newton's method.

    The iteration is seeded at ``(value + 1) // 2`` or at the power of two
    just above the root, whichever is smaller, so it approaches the root
    from above. It stops once two successive iterates differ by at most
    ``tolerance`` or after ``max_iterations`` steps, in which case the last
    iterate is returned.

    Args:
        value: Non-negative integer
        tolerance: Absolute convergence tolerance between iterates
        max_iterations: Upper bound on Newton steps

    Returns:
        Approximate integer square root (0 for non-positive input)
    """
    if value <= 0:
        return 0
    if value == 1:
        return 1

    y = min((value + 1) // 2, 1 << ((value.bit_length() + 1) // 2))
    for _ in range(max_iterations):
        x = y
        y = (x + value // x) // 2
        if abs(x - y) <= tolerance:
            break
    return y


def fee_factors(fee_bps: int) -> tuple:
    """
    Fee numerator/denominator pair for a fee in basis points.

    30 bps maps onto the canonical 997/1000 pair; other fees are expressed
    against a 10000 denominator.
    """
    if fee_bps * FEE_DENOMINATOR % 10000 == 0:
        return FEE_DENOMINATOR - fee_bps * FEE_DENOMINATOR // 10000, FEE_DENOMINATOR
    return 10000 - fee_bps, 10000


def get_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_numerator: int = FEE_NUMERATOR,
    fee_denominator: int = FEE_DENOMINATOR,
) -> int:
    """
    Constant-product output amount with the fee taken on input.

    ``amount_in_with_fee = amount_in * fee_numerator``;
    ``out = amount_in_with_fee * reserve_out /
    (reserve_in * fee_denominator + amount_in_with_fee)``.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0

    amount_in_with_fee = amount_in * fee_numerator
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * fee_denominator + amount_in_with_fee
    return numerator // denominator


def estimate_gas(
    input_amount: int,
    base_gas: int = BASE_GAS,
    gas_per_unit: int = GAS_PER_UNIT_VOLUME,
) -> int:
    """Gas units for one arbitrage transaction: a base plus a per-unit surcharge."""
    return base_gas + (max(input_amount, 0) // ONE_UNIT) * gas_per_unit


def gas_cost_wei(gas_units: int, gas_price_gwei: int) -> int:
    """Convert gas units at a gwei price into wei."""
    return gas_units * gas_price_gwei * WEI_PER_GWEI

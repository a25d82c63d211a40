"""
Uniswap V2 style constant-product pool.
"""

from typing import Optional, Sequence

from ..amm_math import fee_factors, get_amount_out
from ..constants import DEFAULT_FEE_BPS
from ..exceptions import ValidationError
from .base import PoolHandle, ReserveFetcher


class ConstantProductPool(PoolHandle):
    """Two-token x*y=k pool with the fee taken on input."""

    pool_type = "constant_product"

    def __init__(
        self,
        address: str,
        tokens: Sequence[str],
        reserves: Sequence[int],
        fee_bps: int = DEFAULT_FEE_BPS,
        fetcher: Optional[ReserveFetcher] = None,
    ):
        if len(tokens) != 2:
            raise ValidationError(
                f"Constant-product pool {address} must hold exactly two tokens"
            )
        super().__init__(address, tokens, reserves, fee_bps, fetcher)
        self._fee_numerator, self._fee_denominator = fee_factors(self._fee_bps)

    @property
    def fee_numerator(self) -> int:
        return self._fee_numerator

    @property
    def fee_denominator(self) -> int:
        return self._fee_denominator

    def get_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in, reserve_out = self._check_pair(token_in, token_out)
        return get_amount_out(
            amount_in,
            reserve_in,
            reserve_out,
            self._fee_numerator,
            self._fee_denominator,
        )

"""
Balancer style weighted pool.

``out = Bo * (1 - (Bi / (Bi + Ai * (1 - fee))) ^ (wi / wo))``, evaluated in
50-digit Decimal arithmetic because the exponent is fractional.
"""

from decimal import Decimal, ROUND_FLOOR, localcontext
from typing import Optional, Sequence

from ..constants import BPS_DENOMINATOR, DECIMAL_PRECISION, DEFAULT_FEE_BPS, PRECISION
from ..exceptions import ValidationError
from .base import PoolHandle, ReserveFetcher


class WeightedPool(PoolHandle):
    """Multi-token pool whose prices follow the token weights."""

    pool_type = "weighted"

    def __init__(
        self,
        address: str,
        tokens: Sequence[str],
        reserves: Sequence[int],
        weights: Sequence[float],
        fee_bps: int = DEFAULT_FEE_BPS,
        fetcher: Optional[ReserveFetcher] = None,
    ):
        if len(weights) != len(tokens) or any(float(w) <= 0 for w in weights):
            raise ValidationError(
                f"Weighted pool {address} needs one positive weight per token",
                details={"weights": list(weights)},
            )
        super().__init__(address, tokens, reserves, fee_bps, fetcher)
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            total = sum(Decimal(str(w)) for w in weights)
            self._weights = {
                token: Decimal(str(w)) / total for token, w in zip(tokens, weights)
            }

    @property
    def weights(self):
        return dict(self._weights)

    def get_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in, reserve_out = self._check_pair(token_in, token_out)
        if amount_in <= 0 or reserve_in == 0 or reserve_out == 0:
            return 0

        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            fee = Decimal(self._fee_bps) / Decimal(BPS_DENOMINATOR)
            amount_after_fee = Decimal(amount_in) * (1 - fee)
            base = Decimal(reserve_in) / (Decimal(reserve_in) + amount_after_fee)
            exponent = self._weights[token_in] / self._weights[token_out]
            out = Decimal(reserve_out) * (1 - base**exponent)
        return max(int(out.to_integral_value(rounding=ROUND_FLOOR)), 0)

    def spot_price(self, token_in: str, token_out: str) -> int:
        reserve_in, reserve_out = self._check_pair(token_in, token_out)
        if reserve_in == 0:
            return 0
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            numerator = Decimal(reserve_out) / self._weights[token_out]
            denominator = Decimal(reserve_in) / self._weights[token_in]
            return int(numerator * PRECISION / denominator)

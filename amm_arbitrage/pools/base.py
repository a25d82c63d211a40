"""
Capability interface shared by every AMM pool variant.

The market graph, the sizers and the optimizers only ever talk to
``PoolHandle``; concrete pricing formulas live in the subclasses.
"""

import copy
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence, Tuple

from ..constants import BPS_DENOMINATOR, DEFAULT_FEE_BPS, MAX_PRICE_IMPACT_BPS, PRECISION
from ..exceptions import DataError, PoolQueryError, ValidationError

ReserveFetcher = Callable[["PoolHandle"], Awaitable[Dict[str, int]]]


class PoolHandle(ABC):
    """
    A liquidity pool trading a fixed set of tokens.

    Attributes:
        address: Pool contract address, used as its identity
        tokens: Ordered token addresses held by the pool
        fee_bps: Swap fee in basis points, taken on the input amount
    """

    pool_type = "abstract"

    def __init__(
        self,
        address: str,
        tokens: Sequence[str],
        reserves: Sequence[int],
        fee_bps: int = DEFAULT_FEE_BPS,
        fetcher: Optional[ReserveFetcher] = None,
    ):
        if not address:
            raise ValidationError("Pool address is required")
        if len(tokens) < 2 or len(set(tokens)) != len(tokens):
            raise ValidationError(
                f"Pool {address} needs at least two distinct tokens",
                details={"tokens": list(tokens)},
            )
        if not 0 <= fee_bps < BPS_DENOMINATOR:
            raise ValidationError(f"Invalid fee for pool {address}: {fee_bps} bps")

        self._address = address
        self._tokens = tuple(tokens)
        self._fee_bps = int(fee_bps)
        self._fetcher = fetcher
        self._reserves: Dict[str, int] = {}
        self.apply_reserves(dict(zip(tokens, reserves)))

    @property
    def address(self) -> str:
        return self._address

    @property
    def tokens(self) -> Tuple[str, ...]:
        return self._tokens

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    def reserves_by_token(self) -> Dict[str, int]:
        """Copy of the current reserves keyed by token."""
        return dict(self._reserves)

    def reserve_of(self, token: str) -> int:
        try:
            return self._reserves[token]
        except KeyError:
            raise DataError(
                f"Token {token} not in pool {self._address}",
                source="reserves",
                pool=self._address,
            )

    def has_zero_reserve(self) -> bool:
        return any(r == 0 for r in self._reserves.values())

    def liquidity(self) -> int:
        """Smallest reserve; the binding constraint on trade size."""
        return min(self._reserves.values())

    def apply_reserves(self, reserves: Dict[str, int]) -> None:
        """
        Replace the pool's reserves.

        Only the snapshot manager calls this, between evaluation ticks.
        """
        if set(reserves) != set(self._tokens):
            raise ValidationError(
                f"Reserve update for {self._address} does not match pool tokens",
                details={"expected": list(self._tokens), "got": list(reserves)},
            )
        for token, amount in reserves.items():
            if int(amount) < 0:
                raise ValidationError(
                    f"Negative reserve for {token} in pool {self._address}",
                    details={"reserve": amount},
                )
        self._reserves = {token: int(reserves[token]) for token in self._tokens}

    def with_reserves(self, reserves: Dict[str, int]) -> "PoolHandle":
        """Shallow copy of this handle holding different reserves."""
        clone = copy.copy(self)
        clone._reserves = {token: int(reserves[token]) for token in self._tokens}
        return clone

    async def refresh(self) -> Dict[str, int]:
        """
        Fetch fresh reserves from the upstream source.

        The result is returned, not applied; staging it for the next tick is
        the caller's job.

        Raises:
            PoolQueryError: If the fetcher fails or returns unusable data
        """
        if self._fetcher is None:
            return self.reserves_by_token()

        try:
            reserves = await self._fetcher(self)
        except PoolQueryError:
            raise
        except Exception as e:
            raise PoolQueryError(
                f"Reserve refresh failed for {self._address}: {e}",
                source="refresh",
                pool=self._address,
            ) from e

        if not isinstance(reserves, dict) or set(reserves) != set(self._tokens):
            raise PoolQueryError(
                f"Malformed reserves returned for {self._address}",
                source="refresh",
                pool=self._address,
                details={"reserves": reserves},
            )
        try:
            return {token: int(amount) for token, amount in reserves.items()}
        except (TypeError, ValueError) as e:
            raise PoolQueryError(
                f"Non-integer reserves returned for {self._address}: {e}",
                source="refresh",
                pool=self._address,
                details={"reserves": reserves},
            ) from e

    def _check_pair(self, token_in: str, token_out: str) -> Tuple[int, int]:
        if token_in == token_out:
            raise DataError(
                f"Cannot swap {token_in} for itself", source="quote", pool=self._address
            )
        return self.reserve_of(token_in), self.reserve_of(token_out)

    @abstractmethod
    def get_amount_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Output amount for swapping ``amount_in`` of ``token_in``."""

    def price_impact_bps(self, token_in: str, amount_in: int) -> int:
        """Trade size relative to the input-side reserve, in basis points."""
        reserve = self.reserve_of(token_in)
        if reserve == 0:
            return MAX_PRICE_IMPACT_BPS
        return amount_in * BPS_DENOMINATOR // reserve

    def spot_price(self, token_in: str, token_out: str) -> int:
        """Marginal units of ``token_out`` per unit of ``token_in``, scaled by 1e18."""
        reserve_in, reserve_out = self._check_pair(token_in, token_out)
        if reserve_in == 0:
            return 0
        return reserve_out * PRECISION // reserve_in

    def pairs(self) -> Iterable[Tuple[str, str]]:
        """Every ordered token pair the pool can quote."""
        for token_in in self._tokens:
            for token_out in self._tokens:
                if token_in != token_out:
                    yield token_in, token_out

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(address={self._address!r}, "
            f"tokens={list(self._tokens)!r}, fee_bps={self._fee_bps})"
        )

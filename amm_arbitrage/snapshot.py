"""
Snapshot-then-compute discipline for pool reserves.

Fresh reserves from ingestion land in a staging buffer. They are applied to
the live pool handles only by ``SnapshotManager.swap()``, which the engine
calls between ticks, so a tick always reads one consistent set of reserves.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .exceptions import ArbitrageError, DataError
from .interfaces import SystemTimeProvider, TimeProvider
from .pools.base import PoolHandle
from .retry import RetryPolicy
from .types import MarketsByToken
from .utils import get_logger, short_address

logger = get_logger(__name__)


def group_by_token(pools: List[PoolHandle]) -> MarketsByToken:
    """Index pools by every token they quote, preserving pool order."""
    markets: MarketsByToken = {}
    for pool in pools:
        for token in pool.tokens:
            markets.setdefault(token, []).append(pool)
    return markets


@dataclass(frozen=True)
class MarketSnapshot:
    """Reserves of every pool as of one tick."""

    tick_id: int
    timestamp: float
    pools: Tuple[PoolHandle, ...]
    reserves: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def markets_by_token(self) -> MarketsByToken:
        return group_by_token(list(self.pools))

    def reserves_of(self, pool_address: str) -> Dict[str, int]:
        return dict(self.reserves.get(pool_address, {}))


@dataclass
class RefreshReport:
    succeeded: int = 0
    failed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)


class SnapshotManager:
    """Owns the staging buffer and the swap into the live pool set."""

    def __init__(
        self,
        pools: List[PoolHandle],
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: int = 10,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.pools: Dict[str, PoolHandle] = {}
        for pool in pools:
            self.pools.setdefault(pool.address, pool)
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max_concurrency
        self.clock = time_provider or SystemTimeProvider()
        self._staged: Dict[str, Dict[str, int]] = {}
        self._tick = 0
        self.current: Optional[MarketSnapshot] = None

    @property
    def staged_count(self) -> int:
        return len(self._staged)

    def stage(self, pool_address: str, reserves: Dict[str, int]) -> None:
        """
        Buffer new reserves for a pool until the next swap.

        Raises:
            DataError: If the pool is unknown
        """
        if pool_address not in self.pools:
            raise DataError(f"Unknown pool {pool_address}", source="stage", pool=pool_address)
        self._staged[pool_address] = {t: int(a) for t, a in reserves.items()}

    async def refresh_all(self, pools: Optional[List[PoolHandle]] = None) -> RefreshReport:
        """
        Refresh every pool concurrently into the staging buffer.

        At most ``max_concurrency`` refreshes run at once. Each goes through
        the retry policy; a pool that still fails is counted and skipped
        without affecting its siblings.
        """
        targets = pools if pools is not None else list(self.pools.values())
        semaphore = asyncio.Semaphore(self.max_concurrency)
        report = RefreshReport()

        async def refresh_one(pool: PoolHandle) -> None:
            async with semaphore:
                try:
                    reserves = await self.retry_policy.call(pool.refresh)
                    self.stage(pool.address, reserves)
                    report.succeeded += 1
                except ArbitrageError as e:
                    report.failed += 1
                    report.errors[pool.address] = str(e)
                    logger.warning(
                        "Refresh failed for %s: %s", short_address(pool.address), e
                    )

        await asyncio.gather(*(refresh_one(pool) for pool in targets))
        logger.debug(
            "Refreshed %d pools (%d failed)", report.succeeded, report.failed
        )
        return report

    def swap(self) -> MarketSnapshot:
        """
        Apply staged reserves to the live pools and freeze a new snapshot.

        Staged reserves a pool rejects are dropped with a warning; the pool
        keeps its previous reserves.
        """
        staged, self._staged = self._staged, {}
        for address, reserves in staged.items():
            try:
                self.pools[address].apply_reserves(reserves)
            except ArbitrageError as e:
                logger.warning("Rejected staged reserves for %s: %s", short_address(address), e)

        self._tick += 1
        self.current = MarketSnapshot(
            tick_id=self._tick,
            timestamp=self.clock.current_timestamp(),
            pools=tuple(self.pools.values()),
            reserves={a: p.reserves_by_token() for a, p in self.pools.items()},
        )
        return self.current

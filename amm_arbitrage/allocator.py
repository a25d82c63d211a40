"""
Capital allocation for speculative positions opened ahead of predictions.

All state changes go through one re-entrant lock so the monitoring pass and
open/close calls never interleave. The allocator keeps
``deployed + available <= max_total_capital`` and ``deployed >= 0`` after
every operation; profit that would push capital past the cap is swept into
``realized_profit`` instead.
"""

import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config_schema import AllocatorConfig
from .constants import BPS_DENOMINATOR, ExitReason
from .exceptions import AllocationError, ArbitrageError
from .interfaces import SystemTimeProvider, TimeProvider
from .pools.base import PoolHandle
from .predictor import OpportunityPrediction
from .utils import get_logger, short_address

logger = get_logger(__name__)

PriceMap = Dict[str, int]


def kelly_fraction(confidence: float, expected_return: float, cap: float = 0.5) -> float:
    """
    Kelly-style fraction ``(c*r - (1-c)) / r`` clamped to ``[0, cap]``.

    Args:
        confidence: Win probability in [0, 1]
        expected_return: Payoff ratio in [0, 1]
        cap: Upper bound on the fraction

    Returns:
        Fraction of the base size to commit; 0 when the edge is negative
    """
    if expected_return <= 0:
        return 0.0
    fraction = (confidence * expected_return - (1 - confidence)) / expected_return
    return max(0.0, min(fraction, cap))


@dataclass
class Position:
    position_id: str
    pool: PoolHandle
    token: str
    amount: int
    entry_price: int
    entry_time: float
    stop_loss: int
    take_profit: int
    expected_exit_time: float
    reason: str
    confidence: int = 0


@dataclass
class PositionPerformance:
    position_id: str
    pool_address: str
    profit_loss: int
    holding_period: float
    exit_reason: ExitReason
    expected_profit: int
    entry_price: int
    exit_price: int


class CapitalAllocator:
    """Sizes, opens, monitors and closes pre-positioned capital."""

    def __init__(
        self,
        config: Optional[AllocatorConfig] = None,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.config = config or AllocatorConfig()
        self.clock = time_provider or SystemTimeProvider()
        self._lock = threading.RLock()
        self._positions: Dict[str, Position] = {}
        self._history: List[PositionPerformance] = []
        self._sequence = 0
        self.deployed_capital = 0
        self.realized_profit = 0
        self.last_rebalance = 0.0
        self.available_capital = self._initial_capital()

    def _initial_capital(self) -> int:
        if self.config.initial_capital_wei is None:
            return self.config.max_total_capital_wei
        return self.config.initial_capital_wei

    def calculate_position_size(self, confidence: int, expected_profit_bps: int) -> int:
        """
        Position size for a prediction.

        ``min(available * pct, max_position)`` scaled by the Kelly fraction
        (truncated to whole percent). Sizes below the minimum are rejected.

        Args:
            confidence: Prediction confidence, 0-100
            expected_profit_bps: Predicted edge in basis points

        Returns:
            Size in wei, 0 when rejected
        """
        with self._lock:
            base_size = self.available_capital * self.config.position_size_percentage // 100
        base_size = min(base_size, self.config.max_position_size_wei)

        fraction = kelly_fraction(
            confidence / 100, expected_profit_bps / BPS_DENOMINATOR, self.config.kelly_cap
        )
        size = base_size * math.floor(fraction * 100) // 100
        if size < self.config.min_position_size_wei:
            return 0
        return size

    def current_price(self, pool: PoolHandle, prices: Optional[PriceMap] = None) -> int:
        if prices and pool.address in prices:
            return prices[pool.address]
        return pool.spot_price(pool.tokens[0], pool.tokens[1])

    def evaluate_positioning(
        self,
        predictions: List[OpportunityPrediction],
        prices: Optional[PriceMap] = None,
    ) -> List[Position]:
        """
        Open positions for the best qualifying predictions.

        A prediction qualifies when flagged for pre-positioning and at or
        above the allocator's confidence floor. Free slots go to the highest
        expected_profit_bps * confidence first; pools already held are
        skipped.

        Returns:
            Newly opened positions
        """
        qualified = [
            p
            for p in predictions
            if p.should_pre_position and p.confidence >= self.config.min_confidence_for_position
        ]
        if not qualified:
            return []

        opened: List[Position] = []
        with self._lock:
            slots = self.config.max_positions - len(self._positions)
            if slots <= 0:
                logger.info(
                    "No available position slots (%d/%d)",
                    len(self._positions),
                    self.config.max_positions,
                )
                return []

            held = {p.pool.address for p in self._positions.values()}
            for prediction in sorted(qualified, key=lambda p: p.score, reverse=True):
                if len(opened) >= slots:
                    break
                if prediction.pool.address in held:
                    continue

                size = self.calculate_position_size(
                    prediction.confidence, prediction.expected_profit_bps
                )
                if size == 0:
                    logger.debug(
                        "Rejected position on %s: size below minimum",
                        short_address(prediction.pool.address),
                    )
                    continue

                try:
                    price = self.current_price(prediction.pool, prices)
                except (ArbitrageError, ArithmeticError) as e:
                    logger.warning("No price for %s: %s", short_address(prediction.pool.address), e)
                    continue

                position = self.open_position(
                    pool=prediction.pool,
                    token=prediction.pool.tokens[0],
                    amount=size,
                    entry_price=price,
                    horizon_seconds=prediction.time_horizon_seconds,
                    reason=prediction.reason,
                    confidence=prediction.confidence,
                )
                if position is not None:
                    opened.append(position)
                    held.add(prediction.pool.address)
        return opened

    def open_position(
        self,
        pool: PoolHandle,
        token: str,
        amount: int,
        entry_price: int,
        horizon_seconds: float,
        reason: str = "",
        confidence: int = 0,
    ) -> Optional[Position]:
        """
        Commit ``amount`` to a new position.

        Returns:
            The position, or None when capital, slots or the price do not
            allow it (state is left unchanged)
        """
        with self._lock:
            try:
                self._check_can_open(amount, entry_price)
            except AllocationError as e:
                logger.warning("Cannot open position on %s: %s", short_address(pool.address), e)
                return None

            now = self.clock.current_timestamp()
            self._sequence += 1
            position = Position(
                position_id=f"{pool.address}-{int(now * 1000)}-{self._sequence}",
                pool=pool,
                token=token,
                amount=amount,
                entry_price=entry_price,
                entry_time=now,
                stop_loss=entry_price * (100 - self.config.stop_loss_percentage) // 100,
                take_profit=entry_price * (100 + self.config.take_profit_percentage) // 100,
                expected_exit_time=now + horizon_seconds,
                reason=reason,
                confidence=confidence,
            )
            self._positions[position.position_id] = position
            self.available_capital -= amount
            self.deployed_capital += amount

        logger.info(
            "Opened position %s: size=%d entry=%d stop=%d target=%d (%s)",
            position.position_id,
            amount,
            entry_price,
            position.stop_loss,
            position.take_profit,
            reason,
        )
        return position

    def _check_can_open(self, amount: int, entry_price: int) -> None:
        if amount <= 0:
            raise AllocationError("Position size must be positive", reason="size", required=amount)
        if entry_price <= 0:
            raise AllocationError("Entry price unavailable", reason="price")
        if len(self._positions) >= self.config.max_positions:
            raise AllocationError("Maximum open positions reached", reason="slots")
        if amount > self.available_capital:
            raise AllocationError(
                "Insufficient capital",
                reason="capital",
                required=amount,
                available=self.available_capital,
            )

    def monitor_positions(self, prices: Optional[PriceMap] = None) -> List[PositionPerformance]:
        """
        Close positions that hit stop-loss, take-profit or timed out.

        Returns:
            Performance records of the positions closed in this pass
        """
        closed: List[PositionPerformance] = []
        with self._lock:
            now = self.clock.current_timestamp()
            for position_id, position in list(self._positions.items()):
                try:
                    price = self.current_price(position.pool, prices)
                except (ArbitrageError, ArithmeticError) as e:
                    logger.error("Error monitoring position %s: %s", position_id, e)
                    continue

                reason = self._exit_reason(position, price, now)
                if reason is None:
                    continue
                record = self._close(position_id, price, reason)
                if record is not None:
                    closed.append(record)
        return closed

    def _exit_reason(self, position: Position, price: int, now: float) -> Optional[ExitReason]:
        if price <= position.stop_loss:
            logger.warning(
                "Position %s hit stop loss (entry=%d current=%d)",
                position.position_id,
                position.entry_price,
                price,
            )
            return ExitReason.STOP_LOSS
        if price >= position.take_profit:
            logger.info(
                "Position %s hit take profit (entry=%d current=%d)",
                position.position_id,
                position.entry_price,
                price,
            )
            return ExitReason.PROFIT
        if now >= position.expected_exit_time + self.config.position_timeout_seconds:
            logger.warning(
                "Position %s timed out after %.0fs",
                position.position_id,
                now - position.entry_time,
            )
            return ExitReason.TIMEOUT
        return None

    def close_position(
        self,
        position_id: str,
        current_price: Optional[int] = None,
        reason: ExitReason = ExitReason.MANUAL,
    ) -> bool:
        """
        Close a position by id.

        Returns:
            False when no such position is open
        """
        with self._lock:
            position = self._positions.get(position_id)
            if position is None:
                logger.warning("Position not found: %s", position_id)
                return False
            if current_price is None:
                try:
                    current_price = self.current_price(position.pool)
                except (ArbitrageError, ArithmeticError):
                    current_price = position.entry_price
            return self._close(position_id, current_price, reason) is not None

    def _close(
        self, position_id: str, exit_price: int, reason: ExitReason
    ) -> Optional[PositionPerformance]:
        position = self._positions.pop(position_id, None)
        if position is None:
            return None

        # Relative price move applied to the committed amount; never below -amount
        if position.entry_price > 0:
            profit_loss = position.amount * (exit_price - position.entry_price) // position.entry_price
        else:
            profit_loss = 0
        profit_loss = max(profit_loss, -position.amount)

        expected_bps = 40 if "reversion" in position.reason else 50
        record = PositionPerformance(
            position_id=position_id,
            pool_address=position.pool.address,
            profit_loss=profit_loss,
            holding_period=self.clock.current_timestamp() - position.entry_time,
            exit_reason=reason,
            expected_profit=position.amount * expected_bps // BPS_DENOMINATOR,
            entry_price=position.entry_price,
            exit_price=exit_price,
        )
        self._history.append(record)

        self.deployed_capital -= position.amount
        returned = position.amount + profit_loss
        headroom = self.config.max_total_capital_wei - self.deployed_capital - self.available_capital
        credited = min(returned, headroom)
        self.available_capital += credited
        self.realized_profit += returned - credited

        logger.info(
            "Closed position %s (%s): pnl=%d held=%.0fs",
            position_id,
            reason.value,
            profit_loss,
            record.holding_period,
        )
        return record

    def sync_balance(self, balance: int) -> None:
        """Reconcile available capital with an external wallet balance."""
        with self._lock:
            available = balance - self.deployed_capital
            cap = self.config.max_total_capital_wei - self.deployed_capital
            self.available_capital = max(0, min(available, cap))
            logger.debug(
                "Synced capital: balance=%d deployed=%d available=%d",
                balance,
                self.deployed_capital,
                self.available_capital,
            )

    def rebalance_if_due(
        self,
        predictions: Optional[List[OpportunityPrediction]] = None,
        prices: Optional[PriceMap] = None,
    ) -> Dict[str, Any]:
        """
        Monitor, then pre-position, at most once per rebalance interval.

        Returns:
            Summary with ``ran``, ``closed`` and ``opened`` entries
        """
        with self._lock:
            now = self.clock.current_timestamp()
            if now - self.last_rebalance < self.config.rebalance_frequency_seconds:
                return {"ran": False, "closed": [], "opened": []}
            self.last_rebalance = now

            logger.info(
                "Rebalancing: %d open positions, %d deployed",
                len(self._positions),
                self.deployed_capital,
            )
            closed = self.monitor_positions(prices)
            opened = self.evaluate_positioning(predictions or [], prices)
            return {"ran": True, "closed": closed, "opened": opened}

    def get_open_positions(self) -> List[Position]:
        with self._lock:
            return list(self._positions.values())

    def get_performance_history(self) -> List[PositionPerformance]:
        with self._lock:
            return list(self._history)

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Trade count, win rate (%), total P&L, average holding time and a Sharpe approximation."""
        with self._lock:
            history = list(self._history)
        if not history:
            return {
                "total_trades": 0,
                "win_rate": 0.0,
                "total_profit": 0,
                "avg_holding_period": 0.0,
                "sharpe_ratio": 0.0,
            }

        total = len(history)
        winners = sum(1 for h in history if h.profit_loss > 0)
        returns = [
            (h.profit_loss * BPS_DENOMINATOR // max(h.expected_profit, 1)) / BPS_DENOMINATOR
            for h in history
        ]
        mean_return = sum(returns) / total
        variance = sum((r - mean_return) ** 2 for r in returns) / total
        std_dev = math.sqrt(variance)

        return {
            "total_trades": total,
            "win_rate": winners / total * 100,
            "total_profit": sum(h.profit_loss for h in history),
            "avg_holding_period": sum(h.holding_period for h in history) / total,
            "sharpe_ratio": mean_return / std_dev if std_dev > 0 else 0.0,
            "exit_reasons": {
                reason.value: sum(1 for h in history if h.exit_reason is reason)
                for reason in ExitReason
            },
        }

    def get_capital_allocation(self) -> Dict[str, Any]:
        with self._lock:
            total = self.config.max_total_capital_wei
            return {
                "total": total,
                "deployed": self.deployed_capital,
                "available": self.available_capital,
                "realized_profit": self.realized_profit,
                "open_positions": len(self._positions),
                "utilization_rate": (
                    self.deployed_capital * 10000 // total / 100 if total else 0.0
                ),
            }

    def reset(self) -> None:
        with self._lock:
            self._positions.clear()
            self._history = []
            self.deployed_capital = 0
            self.realized_profit = 0
            self.last_rebalance = 0.0
            self.available_capital = self._initial_capital()
        logger.info("Capital allocator reset")

"""
Failure-counting guard for the genetic search.

The breaker opens once ``max_failures`` failures have been recorded without
an intervening success, and reports itself tripped while open and within
``cooldown_seconds`` of the most recent failure. Reaching the failure limit
also schedules an automatic reset ``reset_timeout_seconds`` later; the reset
is applied lazily on the next read instead of from a timer thread.
"""

import threading
from enum import Enum
from typing import Any, Dict, Optional

from .config_schema import CircuitBreakerConfig
from .interfaces import SystemTimeProvider, TimeProvider
from .utils import get_logger

logger = get_logger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Trip after N failures, auto-reset after a timeout."""

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        name: str = "genetic",
    ):
        self.config = config or CircuitBreakerConfig()
        self.clock = time_provider or SystemTimeProvider()
        self.name = name
        self._lock = threading.Lock()
        self._failures = 0
        self._last_failure_time = 0.0
        self._state = BreakerState.CLOSED
        self._reset_at: Optional[float] = None
        self._trip_count = 0
        self._last_reason = ""

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._apply_scheduled_reset()
            return self._state

    def record_failure(self, reason: str = "") -> None:
        """Count one failure; opens the breaker at the configured limit."""
        with self._lock:
            self._apply_scheduled_reset()
            now = self.clock.current_timestamp()
            self._failures += 1
            self._last_failure_time = now
            self._last_reason = reason

            if self._failures < self.config.max_failures:
                return

            if self._state is BreakerState.CLOSED:
                self._state = BreakerState.OPEN
                self._trip_count += 1
                logger.warning(
                    "Circuit breaker '%s' tripped after %d failures: %s",
                    self.name,
                    self._failures,
                    reason or "max failures exceeded",
                )
            if self._reset_at is None:
                self._reset_at = now + self.config.reset_timeout_seconds

    def record_success(self) -> None:
        """Clear the failure count and cancel any pending automatic reset."""
        with self._lock:
            self._failures = 0
            self._reset_at = None

    def is_tripped(self) -> bool:
        with self._lock:
            self._apply_scheduled_reset()
            if self._state is BreakerState.CLOSED:
                return False
            elapsed = self.clock.current_timestamp() - self._last_failure_time
            return elapsed < self.config.cooldown_seconds

    def reset(self) -> None:
        with self._lock:
            self._reset()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the breaker for stats and logging."""
        with self._lock:
            self._apply_scheduled_reset()
            now = self.clock.current_timestamp()
            tripped = (
                self._state is BreakerState.OPEN
                and now - self._last_failure_time < self.config.cooldown_seconds
            )
            return {
                "name": self.name,
                "state": self._state.value,
                "tripped": tripped,
                "failures": self._failures,
                "max_failures": self.config.max_failures,
                "trip_count": self._trip_count,
                "last_failure_reason": self._last_reason,
                "seconds_until_reset": (
                    max(self._reset_at - now, 0.0) if self._reset_at is not None else None
                ),
            }

    def _apply_scheduled_reset(self) -> None:
        if self._reset_at is not None and self.clock.current_timestamp() >= self._reset_at:
            logger.info("Circuit breaker '%s' reset after timeout", self.name)
            self._reset()

    def _reset(self) -> None:
        self._failures = 0
        self._state = BreakerState.CLOSED
        self._reset_at = None

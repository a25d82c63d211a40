"""
Clock and randomness providers injected into every time- or chance-driven
component.

The genetic search (time budget, selection), the circuit breaker (reset
schedule), the predictor windows and position timeouts all read through
these, never through ``time`` or ``random`` directly. Components fall back
to the system providers when none is passed in; there is no shared default
instance.
"""

import random
import time
from typing import Optional, Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class TimeProvider(Protocol):
    """Wall clock as seen by the engine."""

    def current_timestamp(self) -> float:
        """Unix timestamp in seconds."""
        ...

    def current_time_ms(self) -> int:
        """Unix timestamp in milliseconds, used for budgets and durations."""
        ...


@runtime_checkable
class RandomProvider(Protocol):
    """The draws the genetic optimizer needs."""

    def random(self) -> float:
        ...

    def randint(self, a: int, b: int) -> int:
        """Integer in [a, b], both inclusive."""
        ...

    def uniform(self, a: float, b: float) -> float:
        ...


class SystemTimeProvider:
    def current_timestamp(self) -> float:
        return time.time()

    def current_time_ms(self) -> int:
        return int(time.time() * 1000)


class SystemRandomProvider:
    """Backed by a private ``random.Random`` so engines never share state."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)


class DeterministicTimeProvider:
    """
    Manually driven clock for tests and replays.

    Args:
        start_time: Initial timestamp (defaults to 2022-01-01 UTC)
        step_ms: Milliseconds the clock moves forward on every
            ``current_time_ms`` read; lets time budgets expire without
            real waiting
    """

    def __init__(self, start_time: float = 1640995200.0, step_ms: int = 0):
        self._current_time = start_time
        self._step = step_ms / 1000

    def current_timestamp(self) -> float:
        return self._current_time

    def current_time_ms(self) -> int:
        self._current_time += self._step
        return int(self._current_time * 1000)

    def advance_time(self, seconds: float) -> None:
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        self._current_time = timestamp


class DeterministicRandomProvider:
    """Seeded provider; the same seed replays the same search."""

    def __init__(self, seed: int = 42):
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def reseed(self, seed: int) -> None:
        self._rng = random.Random(seed)


def choose(provider: RandomProvider, items: Sequence[T]) -> T:
    """Pick one element of a non-empty sequence using the given provider."""
    return items[provider.randint(0, len(items) - 1)]

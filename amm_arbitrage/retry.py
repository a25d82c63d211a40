"""
Retry policy for calls that cross the I/O boundary.

Only pool refreshes and other collaborator calls go through here; the
search and allocation code never retries.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
    wait_random_exponential,
)

from .config_schema import RetryConfig
from .exceptions import NetworkError, PoolQueryError
from .utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (PoolQueryError, NetworkError)


class RetryPolicy:
    """Bounded exponential backoff around an async callable."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def _wait(self):
        if self.config.initial_wait_seconds <= 0:
            return wait_none()
        if self.config.jitter:
            return wait_random_exponential(
                multiplier=self.config.initial_wait_seconds,
                max=self.config.max_wait_seconds,
            )
        return wait_exponential(
            multiplier=self.config.initial_wait_seconds,
            max=self.config.max_wait_seconds,
        )

    def _log_retry(self, name: str):
        def before_sleep(retry_state) -> None:
            logger.debug(
                "Retrying %s (attempt %d/%d): %s",
                name,
                retry_state.attempt_number,
                self.config.max_attempts,
                retry_state.outcome.exception(),
            )

        return before_sleep

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Await ``fn(*args, **kwargs)``, retrying pool and network errors.

        Raises:
            The last exception once attempts are exhausted, or any
            non-retryable exception immediately
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry(getattr(fn, "__qualname__", repr(fn))),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await fn(*args, **kwargs)

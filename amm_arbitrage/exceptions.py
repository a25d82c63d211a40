"""
Exception hierarchy for the AMM arbitrage system.

Provides specific exception types for the error categories the discovery
and allocation layers distinguish between, so that failures can be isolated
per pool or per path instead of aborting a whole evaluation tick.
"""

from typing import Optional, Dict, Any


class ArbitrageError(Exception):
    """Base exception for all AMM arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(ArbitrageError):
    """Raised when validation of data or configuration fails."""

    pass


class DataError(ArbitrageError):
    """Raised when pool state is missing, zero or otherwise unusable."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        pool: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.pool = pool


class PoolQueryError(DataError):
    """Raised when a quote or reserve refresh against a single pool fails."""

    pass


class SearchError(ArbitrageError):
    """Raised when an optimizer run fails or cannot produce a result."""

    def __init__(
        self,
        message: str,
        strategy: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.strategy = strategy


class AllocationError(ArbitrageError):
    """Raised when capital allocation state cannot be updated."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        required: Optional[int] = None,
        available: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.reason = reason
        self.required = required
        self.available = available


class NetworkError(ArbitrageError):
    """Raised when network or connectivity issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code

"""
Tests for the exception hierarchy.
"""

import pytest

from amm_arbitrage.exceptions import (
    AllocationError,
    ArbitrageError,
    ConfigurationError,
    DataError,
    NetworkError,
    PoolQueryError,
    SearchError,
    ValidationError,
)


def test_base_error_details_default_to_empty():
    error = ArbitrageError("boom")
    assert str(error) == "boom"
    assert error.details == {}


def test_all_errors_share_base():
    for cls in (ConfigurationError, ValidationError, DataError, SearchError, AllocationError, NetworkError):
        assert issubclass(cls, ArbitrageError)


def test_pool_query_error_is_data_error():
    error = PoolQueryError("quote failed", source="quote", pool="0xab")
    assert isinstance(error, DataError)
    assert error.pool == "0xab"
    assert error.source == "quote"


def test_search_error_strategy():
    error = SearchError("timed out", strategy="genetic", details={"elapsed_ms": 2500})
    assert error.strategy == "genetic"
    assert error.details["elapsed_ms"] == 2500


def test_allocation_error_amounts():
    error = AllocationError("short", reason="capital", required=10, available=3)
    assert (error.reason, error.required, error.available) == ("capital", 10, 3)


def test_network_error_fields():
    error = NetworkError("503", endpoint="rpc", status_code=503)
    assert error.endpoint == "rpc"
    assert error.status_code == 503


def test_catch_by_base_class():
    with pytest.raises(ArbitrageError):
        raise PoolQueryError("stale reserves", pool="0xca")

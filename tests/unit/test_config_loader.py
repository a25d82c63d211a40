"""Tests for YAML configuration loading and schema validation."""

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError

from amm_arbitrage.config_loader import (
    load_config,
    load_config_from_dict,
    load_pool_specs,
    load_yaml_config,
)
from amm_arbitrage.config_schema import (
    AllocatorConfig,
    EngineConfig,
    PredictorConfig,
)
from amm_arbitrage.exceptions import ConfigurationError


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults():
    """An empty mapping yields the default configuration."""
    config = load_config_from_dict({})
    assert config == EngineConfig()
    assert config.hybrid.min_order_size_for_ga == 5 * 10**18
    assert config.circuit_breaker.max_failures == 3
    assert config.genetic.time_budget_ms == 2000


def test_load_config_with_overrides(tmp_path):
    """Nested sections override only the keys they name."""
    path = write_yaml(
        tmp_path / "config.yaml",
        {
            "base_token": "WETH",
            "genetic": {"population_size": 32, "elite_count": 2},
            "allocator": {"max_positions": 2},
        },
    )

    config = load_config(path)

    assert config.base_token == "WETH"
    assert config.genetic.population_size == 32
    assert config.genetic.max_generations == 100
    assert config.allocator.max_positions == 2


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(tmp_path / "missing.yaml")
    assert exc_info.value.details["path"].endswith("missing.yaml")


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ConfigurationError):
        load_yaml_config(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("genetic: [unclosed")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_validation_errors_are_collected(tmp_path):
    """Every offending field is reported with its dotted path."""
    path = write_yaml(
        tmp_path / "bad.yaml",
        {"genetic": {"population_size": 1}, "max_concurrency": 0},
    )

    with pytest.raises(ConfigurationError) as exc_info:
        load_config(path)

    errors = exc_info.value.details["errors"]
    assert any(e.startswith("genetic.population_size") for e in errors)
    assert any(e.startswith("max_concurrency") for e in errors)


def test_non_mapping_rejected():
    with pytest.raises(ConfigurationError):
        load_config_from_dict(["not", "a", "mapping"])


def test_load_pool_specs(tmp_path):
    path = write_yaml(
        tmp_path / "pools.yaml",
        {"pools": [{"address": "0x1", "tokens": ["A", "B"], "reserves": [1, 2]}]},
    )
    specs = load_pool_specs(path)
    assert specs[0]["address"] == "0x1"


def test_load_pool_specs_requires_pools(tmp_path):
    path = write_yaml(tmp_path / "pools.yaml", {"pools": []})
    with pytest.raises(ConfigurationError):
        load_pool_specs(path)


class TestSchemaValidation:
    def test_volatility_band(self):
        with pytest.raises(PydanticValidationError):
            PredictorConfig(min_volatility_bps=100, max_volatility_bps=50)

    def test_pre_position_threshold_above_min_confidence(self):
        with pytest.raises(PydanticValidationError):
            PredictorConfig(min_confidence=80, pre_position_threshold=70)

    def test_position_cannot_exceed_total(self):
        with pytest.raises(PydanticValidationError):
            AllocatorConfig(max_total_capital_wei=10, max_position_size_wei=11)

    def test_initial_capital_within_total(self):
        with pytest.raises(PydanticValidationError):
            AllocatorConfig(max_total_capital_wei=10, max_position_size_wei=5, initial_capital_wei=11)

    def test_blank_base_token(self):
        with pytest.raises(PydanticValidationError):
            EngineConfig(base_token="   ")

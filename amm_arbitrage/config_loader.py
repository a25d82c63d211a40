"""
Configuration loading for the AMM arbitrage engine.

Reads YAML files, validates them against the Pydantic schema and converts
every failure into a ConfigurationError carrying the offending path and the
validation messages.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from .config_schema import EngineConfig
from .exceptions import ConfigurationError


def load_yaml_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse a YAML mapping."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}",
            details={"path": str(config_path)},
        )

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {config_path}: {e}", details={"path": str(config_path)}
        )
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config {config_path}: {e}",
            details={"path": str(config_path)},
        )

    if config_dict is None:
        raise ConfigurationError(
            f"Empty configuration file: {config_path}",
            details={"path": str(config_path)},
        )
    return config_dict


def load_config_from_dict(config_dict: Dict[str, Any]) -> EngineConfig:
    """
    Validate an in-memory mapping into an EngineConfig.

    Args:
        config_dict: Raw configuration, typically parsed YAML

    Returns:
        Validated engine configuration

    Raises:
        ConfigurationError: If the mapping is not a dict or fails validation
    """
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(config_dict).__name__}"
        )

    try:
        return EngineConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(
            f"Configuration validation failed: {'; '.join(errors)}",
            details={"errors": errors},
        )


def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """
    Load and validate an engine configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated engine configuration

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    return load_config_from_dict(load_yaml_config(config_path))


def load_pool_specs(pools_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load the ``pools:`` list used by the command-line runner."""
    data = load_yaml_config(pools_path)
    specs = data.get("pools") if isinstance(data, dict) else data
    if not isinstance(specs, list) or not specs:
        raise ConfigurationError(
            f"No pools defined in {pools_path}", details={"path": str(pools_path)}
        )
    return specs

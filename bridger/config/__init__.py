"""Configuration utilities for bridger."""

from .loader import (
    BridgerConfig,
    ChainConfig,
    ConfigError,
    DefaultsConfig,
    FeeOracleConfig,
    load_config,
    parse_config,
)
from .registry import build_registry, load_registry

__all__ = [
    "BridgerConfig",
    "ChainConfig",
    "ConfigError",
    "DefaultsConfig",
    "FeeOracleConfig",
    "build_registry",
    "load_config",
    "load_registry",
    "parse_config",
]

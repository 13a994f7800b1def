"""Config loader for bridger runtime settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from web3 import Web3


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError/TypeError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc


def _to_chain_id(value: Any, *, context: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{context} has invalid chain id: {value!r}") from exc


@dataclass(frozen=True)
class ChainConfig:
    """Connection settings for a blockchain network."""

    chain_id: int
    rpc_url: Optional[str] = None

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            raise ConfigError(f"RPC URL required for chain {self.chain_id} but not configured")
        return self.rpc_url


@dataclass(frozen=True)
class DefaultsConfig:
    """Default operational parameters."""

    slippage_tolerance: float = 0.995
    api_timeout: int = 10
    deadline_seconds: int = 600
    zero_below_minimum: bool = True


@dataclass(frozen=True)
class FeeOracleConfig:
    """Location of the BridgeConfig contract used for fee and limit lookups."""

    chain_id: int
    bridge_config_address: str


@dataclass(frozen=True)
class BridgerConfig:
    """Typed wrapper around the bridger configuration."""

    chains: Mapping[int, ChainConfig]
    defaults: DefaultsConfig
    fee_oracle: FeeOracleConfig
    registry_path: Optional[Path] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def chain(self, chain_id: int) -> ChainConfig:
        """Return settings for ``chain_id``; unknown chains have no RPC URL."""
        return self.chains.get(chain_id, ChainConfig(chain_id=chain_id))

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def _parse_chains(chains: Mapping[str, Any], environ: Mapping[str, str]) -> Dict[int, ChainConfig]:
    result: Dict[int, ChainConfig] = {}
    for key, value in chains.items():
        chain_id = _to_chain_id(key, context="chains")
        rpc_url = value.get("rpc_url") if isinstance(value, Mapping) else None
        result[chain_id] = ChainConfig(chain_id=chain_id, rpc_url=rpc_url)

    # RPC_URL_<chain id> environment variables take precedence over the file.
    for name, value in environ.items():
        if not name.startswith("RPC_URL_") or not value.strip():
            continue
        chain_id = _to_chain_id(name[len("RPC_URL_"):], context=f"environment variable {name}")
        result[chain_id] = ChainConfig(chain_id=chain_id, rpc_url=value.strip())
    return result


def _parse_defaults(defaults: Mapping[str, Any]) -> DefaultsConfig:
    base = DefaultsConfig()
    zero_below_minimum = defaults.get("zero_below_minimum", base.zero_below_minimum)
    if not isinstance(zero_below_minimum, bool):
        raise ConfigError(f"defaults.zero_below_minimum must be true or false, got {zero_below_minimum!r}")
    try:
        config = DefaultsConfig(
            slippage_tolerance=float(defaults.get("slippage_tolerance", base.slippage_tolerance)),
            api_timeout=int(defaults.get("api_timeout", base.api_timeout)),
            deadline_seconds=int(defaults.get("deadline_seconds", base.deadline_seconds)),
            zero_below_minimum=zero_below_minimum,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"defaults contains an invalid value: {exc}") from exc

    if config.slippage_tolerance <= 0 or config.slippage_tolerance > 1:
        raise ConfigError("defaults.slippage_tolerance must be between 0 (exclusive) and 1")
    if config.api_timeout <= 0:
        raise ConfigError("defaults.api_timeout must be positive")
    if config.deadline_seconds <= 0:
        raise ConfigError("defaults.deadline_seconds must be positive")
    return config


def parse_config(
    data: Mapping[str, Any],
    *,
    base_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BridgerConfig:
    """Validate an already-decoded configuration mapping."""
    _require_keys(data, ["chains", "fee_oracle"], "config")

    fee_oracle_data = data["fee_oracle"]
    _require_keys(fee_oracle_data, ["chain_id", "bridge_config_address"], "fee_oracle")
    fee_oracle = FeeOracleConfig(
        chain_id=_to_chain_id(fee_oracle_data["chain_id"], context="fee_oracle"),
        bridge_config_address=_to_checksum(
            fee_oracle_data["bridge_config_address"], field_name="fee_oracle.bridge_config_address"
        ),
    )

    registry_path = None
    if data.get("registry_path"):
        registry_path = Path(data["registry_path"])
        if base_dir is not None and not registry_path.is_absolute():
            registry_path = base_dir / registry_path

    return BridgerConfig(
        chains=_parse_chains(data["chains"], os.environ if environ is None else environ),
        defaults=_parse_defaults(data.get("defaults", {})),
        fee_oracle=fee_oracle,
        registry_path=registry_path,
        raw=data,
    )


def load_config(config_path: Optional[Path] = None) -> BridgerConfig:
    """Load and validate bridger configuration data."""
    config_path = config_path or Path("config.json")
    data = _load_json(config_path)
    return parse_config(data, base_dir=config_path.parent)


__all__ = [
    "BridgerConfig",
    "ChainConfig",
    "ConfigError",
    "DefaultsConfig",
    "FeeOracleConfig",
    "load_config",
    "parse_config",
]

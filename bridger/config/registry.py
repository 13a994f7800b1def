"""Loader for the static network and asset registry."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set

from bridger.config.loader import ConfigError, _load_json, _require_keys, _to_chain_id, _to_checksum
from bridger.core.networks import DEFAULT_ZAP, Network, PoolGroup, RouteRestriction, WrapPair
from bridger.core.registry import Registry
from bridger.core.tokens import NATIVE_ADDRESS, Asset

DEFAULT_REGISTRY = "registry.json"


def _parse_asset(data: Mapping[str, Any]) -> Asset:
    _require_keys(data, ["symbol", "decimals", "addresses"], "asset")
    symbol = str(data["symbol"])
    is_native = bool(data.get("native", False))

    addresses: Dict[int, str] = {}
    for chain, address in data["addresses"].items():
        chain_id = _to_chain_id(chain, context=f"asset {symbol}")
        if address == "native":
            if not is_native:
                raise ConfigError(f"asset {symbol} uses a native address but is not marked native")
            addresses[chain_id] = NATIVE_ADDRESS
        else:
            addresses[chain_id] = _to_checksum(address, field_name=f"{symbol} on chain {chain_id}")

    network_decimals = {
        _to_chain_id(chain, context=f"asset {symbol} decimals"): int(value)
        for chain, value in data.get("network_decimals", {}).items()
    }

    return Asset(
        symbol=symbol,
        name=str(data.get("name", symbol)),
        decimals=int(data["decimals"]),
        addresses=MappingProxyType(addresses),
        network_decimals=MappingProxyType(network_decimals),
        is_native=is_native,
        is_bridge_token=bool(data.get("bridge_token", False)),
    )


def _parse_pool(data: Mapping[str, Any], chain_id: int, assets: Mapping[str, Asset]) -> PoolGroup:
    _require_keys(data, ["id", "address", "tokens"], f"pool on chain {chain_id}")
    group_id = str(data["id"])
    context = f"pool {group_id} on chain {chain_id}"

    members = tuple(str(symbol) for symbol in data["tokens"])
    for symbol in members:
        asset = assets.get(symbol)
        if asset is None:
            raise ConfigError(f"{context} references unknown asset {symbol}")
        if not asset.is_present_on(chain_id) or asset.is_native:
            raise ConfigError(f"{context} member {symbol} has no ERC20 deployment on chain {chain_id}")

    priority = tuple(str(symbol) for symbol in data.get("bridge_priority", ()))
    for symbol in priority:
        if symbol not in members or not assets[symbol].is_bridge_token:
            raise ConfigError(f"{context} priority {symbol} must be a bridge token in the pool")

    return PoolGroup(
        group_id=group_id,
        chain_id=chain_id,
        address=_to_checksum(data["address"], field_name=context),
        members=members,
        bridge_priority=priority,
    )


def _parse_network(data: Mapping[str, Any], assets: Mapping[str, Asset]) -> Network:
    _require_keys(data, ["chain_id", "name", "bridge"], "network")
    chain_id = _to_chain_id(data["chain_id"], context="network")
    name = str(data["name"])

    zaps = {
        str(key): _to_checksum(value, field_name=f"{name} zap {key}")
        for key, value in data.get("zaps", {}).items()
    }

    wrap_pair = None
    if data.get("wrap_pair"):
        _require_keys(data["wrap_pair"], ["native", "wrapped"], f"{name} wrap_pair")
        wrap_pair = WrapPair(native=str(data["wrap_pair"]["native"]), wrapped=str(data["wrap_pair"]["wrapped"]))
        native, wrapped = assets.get(wrap_pair.native), assets.get(wrap_pair.wrapped)
        if native is None or not native.is_native or not native.is_present_on(chain_id):
            raise ConfigError(f"{name} wrap_pair native {wrap_pair.native} must be a native asset on the network")
        if wrapped is None or wrapped.is_native or not wrapped.is_present_on(chain_id):
            raise ConfigError(f"{name} wrap_pair wrapped {wrap_pair.wrapped} must be an ERC20 on the network")

    pools = tuple(_parse_pool(pool, chain_id, assets) for pool in data.get("pools", ()))
    seen: Set[str] = set()
    for pool in pools:
        overlap = seen.intersection(pool.members)
        if overlap:
            raise ConfigError(f"{name} lists {', '.join(sorted(overlap))} in more than one pool")
        seen.update(pool.members)

    if (pools or wrap_pair) and DEFAULT_ZAP not in zaps:
        raise ConfigError(f"{name} has pools or a wrap pair but no default zap")

    deposit_tokens = frozenset(str(symbol) for symbol in data.get("deposit_tokens", ()))
    for symbol in deposit_tokens:
        asset = assets.get(symbol)
        if asset is None or not asset.is_bridge_token or not asset.is_present_on(chain_id):
            raise ConfigError(f"{name} deposit token {symbol} must be a bridge token deployed on the network")

    return Network(
        chain_id=chain_id,
        name=name,
        bridge_address=_to_checksum(data["bridge"], field_name=f"{name} bridge"),
        zap_addresses=MappingProxyType(zaps),
        wrap_pair=wrap_pair,
        pools=pools,
        deposit_tokens=deposit_tokens,
    )


def _parse_restriction(data: Mapping[str, Any], networks: Mapping[int, Network], assets: Mapping[str, Asset]) -> RouteRestriction:
    _require_keys(data, ["tokens"], "restriction")
    source = _to_chain_id(data["source"], context="restriction") if data.get("source") is not None else None
    dest = _to_chain_id(data["dest"], context="restriction") if data.get("dest") is not None else None
    for chain_id in (source, dest):
        if chain_id is not None and chain_id not in networks:
            raise ConfigError(f"restriction references unknown network {chain_id}")

    tokens = frozenset(str(symbol) for symbol in data["tokens"])
    for symbol in tokens:
        if symbol not in assets or not assets[symbol].is_bridge_token:
            raise ConfigError(f"restriction token {symbol} is not a bridge token")
    return RouteRestriction(source=source, dest=dest, tokens=tokens)


def _check_wrapped_bridge_tokens(networks: Mapping[int, Network], registry: Registry) -> None:
    # A wrapped native aliasing a bridge token must be a deposit token on that network.
    for network in networks.values():
        if network.wrap_pair is None:
            continue
        wrapped = registry.asset(network.wrap_pair.wrapped)
        for symbol in registry.aliases(wrapped, network):
            if registry.asset(symbol).is_bridge_token and symbol not in network.deposit_tokens:
                raise ConfigError(
                    f"{network.name} wraps its native coin into bridge token {symbol}, "
                    "which must be listed in deposit_tokens"
                )


def build_registry(data: Mapping[str, Any]) -> Registry:
    """Validate a decoded registry mapping and return an immutable registry."""
    _require_keys(data, ["assets", "networks"], "registry")

    assets: Dict[str, Asset] = {}
    for item in data["assets"]:
        asset = _parse_asset(item)
        if asset.symbol in assets:
            raise ConfigError(f"asset {asset.symbol} is defined twice")
        assets[asset.symbol] = asset

    networks: Dict[int, Network] = {}
    for item in data["networks"]:
        network = _parse_network(item, assets)
        if network.chain_id in networks:
            raise ConfigError(f"network {network.chain_id} is defined twice")
        networks[network.chain_id] = network

    for asset in assets.values():
        unknown = [chain_id for chain_id in asset.addresses if chain_id not in networks]
        if unknown:
            raise ConfigError(f"asset {asset.symbol} references unknown networks {unknown}")

    restrictions: List[RouteRestriction] = [
        _parse_restriction(item, networks, assets) for item in data.get("restrictions", ())
    ]

    registry = Registry(networks.values(), assets.values(), restrictions)
    _check_wrapped_bridge_tokens(networks, registry)
    return registry


def load_registry(path: Optional[Path] = None) -> Registry:
    """Load the registry from ``path`` or from the packaged default."""
    if path is not None:
        return build_registry(_load_json(Path(path)))

    with resources.files(__package__).joinpath(DEFAULT_REGISTRY).open("r", encoding="utf-8") as fh:
        return build_registry(json.load(fh))


__all__ = ["build_registry", "load_registry"]

"""Route classification for cross-network transfers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from bridger.core.networks import Network, PoolGroup
from bridger.core.registry import Registry
from bridger.core.tokens import Asset
from bridger.core.utils import get_logger

LOGGER = get_logger("bridger.routes")


class RouteKind(str, enum.Enum):
    DIRECT = "direct"
    LOCAL_SWAP = "local_swap"
    REMOTE_SWAP = "remote_swap"
    SWAP_BOTH = "swap_both"
    WRAP = "wrap"


class BridgeAction(str, enum.Enum):
    """How the bridge token leaves the source network."""

    DEPOSIT = "deposit"
    REDEEM = "redeem"
    NONE = "none"


class UnsupportedReason(str, enum.Enum):
    ASSET_ABSENT = "asset not available on network"
    NO_COMMON_BRIDGE_TOKEN = "no common bridge token"
    NETWORK_PAIR_RESTRICTED = "route disabled for this network pair"
    SAME_NETWORK = "invalid same-network pair"


@dataclass(frozen=True)
class TransferRequest:
    source_chain: int
    source_token: str
    dest_chain: int
    dest_token: str
    amount_in: int = 0


@dataclass(frozen=True)
class SwapLeg:
    """A single pool swap performed on one side of the bridge."""

    network: Network
    pool: PoolGroup
    token_in: Asset
    token_out: Asset

    @property
    def index_from(self) -> int:
        return self.pool.index_of(self.token_in.symbol)

    @property
    def index_to(self) -> int:
        return self.pool.index_of(self.token_out.symbol)


@dataclass(frozen=True)
class RouteClassification:
    """Strategy chosen for a transfer request."""

    request: TransferRequest
    source_network: Network
    dest_network: Network
    source_asset: Asset
    dest_asset: Asset
    kind: RouteKind
    bridge_token: Optional[Asset]
    action: BridgeAction
    native_in: bool
    native_out: bool
    local_swap: Optional[SwapLeg] = None
    remote_swap: Optional[SwapLeg] = None

    @property
    def needs_local_swap(self) -> bool:
        return self.local_swap is not None

    @property
    def needs_remote_swap(self) -> bool:
        return self.remote_swap is not None


@dataclass(frozen=True)
class Unsupported:
    """Typed rejection returned instead of a classification."""

    reason: UnsupportedReason
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}" if self.detail else self.reason.value


ClassifyResult = Union[RouteClassification, Unsupported]


def classify_route(registry: Registry, request: TransferRequest) -> ClassifyResult:
    """Decide whether ``request`` can be executed and which strategy applies."""
    source = registry.network(request.source_chain)
    dest = registry.network(request.dest_chain)
    token_from = registry.asset(request.source_token)
    token_to = registry.asset(request.dest_token)

    if source.chain_id == dest.chain_id:
        return _classify_same_network(registry, request, source, token_from, token_to)

    if registry.lookup(token_from, source) is None:
        return Unsupported(UnsupportedReason.ASSET_ABSENT, f"{token_from.symbol} is not available on {source.name}")
    if registry.lookup(token_to, dest) is None:
        return Unsupported(UnsupportedReason.ASSET_ABSENT, f"{token_to.symbol} is not available on {dest.name}")

    effective_from = registry.effective_asset(token_from, source)
    effective_to = registry.effective_asset(token_to, dest)
    if effective_from is None or effective_to is None:
        return Unsupported(
            UnsupportedReason.NO_COMMON_BRIDGE_TOKEN,
            f"{token_from.symbol} on {source.name} and {token_to.symbol} on {dest.name}",
        )

    reach_from = registry.reachable(effective_from, source)
    reach_to = registry.reachable(effective_to, dest)
    candidates = [
        token
        for token in registry.bridge_tokens()
        if token.is_present_on(source.chain_id)
        and token.is_present_on(dest.chain_id)
        and token.symbol in reach_from
        and token.symbol in reach_to
    ]
    if not candidates:
        return Unsupported(
            UnsupportedReason.NO_COMMON_BRIDGE_TOKEN,
            f"{token_from.symbol} on {source.name} and {token_to.symbol} on {dest.name}",
        )

    allowed = registry.allowed_bridge_tokens(source, dest)
    if allowed is not None:
        candidates = [token for token in candidates if token.symbol in allowed]
        if not candidates:
            return Unsupported(
                UnsupportedReason.NETWORK_PAIR_RESTRICTED,
                f"{source.name} -> {dest.name}",
            )

    group_from = registry.pool_group(effective_from, source)
    group_to = registry.pool_group(effective_to, dest)

    def preference(token: Asset) -> tuple:
        legs = int(not registry.same_token(effective_from, token, source))
        legs += int(not registry.same_token(token, effective_to, dest))
        return (
            legs,
            group_from.priority_of(token.symbol) if group_from is not None else 0,
            group_to.priority_of(token.symbol) if group_to is not None else 0,
            token.symbol,
        )

    bridge_token = min(candidates, key=preference)

    local_swap = None
    if not registry.same_token(effective_from, bridge_token, source):
        local_swap = SwapLeg(network=source, pool=group_from, token_in=effective_from, token_out=bridge_token)
    remote_swap = None
    if not registry.same_token(bridge_token, effective_to, dest):
        remote_swap = SwapLeg(network=dest, pool=group_to, token_in=bridge_token, token_out=effective_to)

    if local_swap and remote_swap:
        kind = RouteKind.SWAP_BOTH
    elif local_swap:
        kind = RouteKind.LOCAL_SWAP
    elif remote_swap:
        kind = RouteKind.REMOTE_SWAP
    else:
        kind = RouteKind.DIRECT

    action = BridgeAction.DEPOSIT if bridge_token.symbol in source.deposit_tokens else BridgeAction.REDEEM

    LOGGER.debug(
        "Classified %s@%s -> %s@%s as %s via %s (%s)",
        token_from.symbol,
        source.chain_id,
        token_to.symbol,
        dest.chain_id,
        kind.value,
        bridge_token.symbol,
        action.value,
    )

    return RouteClassification(
        request=request,
        source_network=source,
        dest_network=dest,
        source_asset=token_from,
        dest_asset=token_to,
        kind=kind,
        bridge_token=bridge_token,
        action=action,
        native_in=token_from.is_native,
        native_out=token_to.is_native,
        local_swap=local_swap,
        remote_swap=remote_swap,
    )


def _classify_same_network(
    registry: Registry,
    request: TransferRequest,
    network: Network,
    token_from: Asset,
    token_to: Asset,
) -> ClassifyResult:
    pair = registry.wrap_pair_of(network)
    if pair is None or {token_from.symbol, token_to.symbol} != {pair.native, pair.wrapped}:
        return Unsupported(
            UnsupportedReason.SAME_NETWORK,
            f"{token_from.symbol} -> {token_to.symbol} on {network.name}",
        )

    return RouteClassification(
        request=request,
        source_network=network,
        dest_network=network,
        source_asset=token_from,
        dest_asset=token_to,
        kind=RouteKind.WRAP,
        bridge_token=None,
        action=BridgeAction.NONE,
        native_in=token_from.is_native,
        native_out=token_to.is_native,
    )


__all__ = [
    "BridgeAction",
    "ClassifyResult",
    "RouteClassification",
    "RouteKind",
    "SwapLeg",
    "TransferRequest",
    "Unsupported",
    "UnsupportedReason",
    "classify_route",
]

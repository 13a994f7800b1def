"""Network, pool and route restriction definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional, Tuple

DEFAULT_ZAP = "default"


@dataclass(frozen=True)
class WrapPair:
    """The gas coin of a network and its wrapped ERC20 counterpart."""

    native: str
    wrapped: str


@dataclass(frozen=True)
class PoolGroup:
    """Assets mutually swappable through a single pool on one network.

    ``members`` follows the pool's on-chain token index order and
    ``bridge_priority`` ranks the members used to cross networks.
    """

    group_id: str
    chain_id: int
    address: str
    members: Tuple[str, ...]
    bridge_priority: Tuple[str, ...] = ()

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.members

    def index_of(self, symbol: str) -> int:
        return self.members.index(symbol)

    def priority_of(self, symbol: str) -> int:
        if symbol in self.bridge_priority:
            return self.bridge_priority.index(symbol)
        return len(self.bridge_priority)


@dataclass(frozen=True)
class Network:
    """Static configuration of a supported chain."""

    chain_id: int
    name: str
    bridge_address: str
    zap_addresses: Mapping[str, str] = field(default_factory=dict)
    wrap_pair: Optional[WrapPair] = None
    pools: Tuple[PoolGroup, ...] = ()
    deposit_tokens: FrozenSet[str] = frozenset()

    def zap_for(self, group_id: Optional[str] = None) -> Optional[str]:
        """Return the zap serving ``group_id``, falling back to the default zap."""
        if group_id is not None and group_id in self.zap_addresses:
            return self.zap_addresses[group_id]
        return self.zap_addresses.get(DEFAULT_ZAP)


@dataclass(frozen=True)
class RouteRestriction:
    """Allow-list of bridge tokens for an ordered network pair.

    ``None`` on either side matches any network.
    """

    source: Optional[int]
    dest: Optional[int]
    tokens: FrozenSet[str]

    def applies(self, source: int, dest: int) -> bool:
        return (self.source is None or self.source == source) and (self.dest is None or self.dest == dest)


__all__ = ["DEFAULT_ZAP", "Network", "PoolGroup", "RouteRestriction", "WrapPair"]

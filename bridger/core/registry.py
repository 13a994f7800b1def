"""Read-only lookups over networks, assets and pools."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from bridger.core.networks import Network, PoolGroup, RouteRestriction, WrapPair
from bridger.core.tokens import Asset


class RegistryError(LookupError):
    """Raised when an unknown network or asset identifier is requested."""


class Registry:
    """Immutable registry of supported networks and assets.

    Built once from static configuration and shared by reference between the
    classifier, estimator and builder.
    """

    def __init__(
        self,
        networks: Iterable[Network],
        assets: Iterable[Asset],
        restrictions: Iterable[RouteRestriction] = (),
    ) -> None:
        self._networks: Dict[int, Network] = {network.chain_id: network for network in networks}
        self._assets: Dict[str, Asset] = {asset.symbol: asset for asset in assets}
        self._restrictions: Tuple[RouteRestriction, ...] = tuple(restrictions)

        self._groups: Dict[Tuple[str, int], PoolGroup] = {}
        for network in self._networks.values():
            for pool in network.pools:
                for symbol in pool.members:
                    self._groups[(symbol, network.chain_id)] = pool

        self._aliases: Dict[Tuple[str, int], FrozenSet[str]] = {}
        for network in self._networks.values():
            by_address: Dict[str, List[str]] = {}
            for asset in self._assets.values():
                address = asset.address_on(network.chain_id)
                if address is None or asset.is_native:
                    continue
                by_address.setdefault(address.lower(), []).append(asset.symbol)
            for symbols in by_address.values():
                for symbol in symbols:
                    self._aliases[(symbol, network.chain_id)] = frozenset(symbols)

    @property
    def networks(self) -> Tuple[Network, ...]:
        return tuple(self._networks.values())

    @property
    def assets(self) -> Tuple[Asset, ...]:
        return tuple(self._assets.values())

    @property
    def restrictions(self) -> Tuple[RouteRestriction, ...]:
        return self._restrictions

    def network(self, chain_id: int) -> Network:
        try:
            return self._networks[chain_id]
        except KeyError:
            raise RegistryError(f"Unknown network id: {chain_id}") from None

    def asset(self, symbol: str) -> Asset:
        try:
            return self._assets[symbol]
        except KeyError:
            raise RegistryError(f"Unknown asset symbol: {symbol}") from None

    def lookup(self, asset: Asset, network: Network) -> Optional[str]:
        """Return the contract address of ``asset`` on ``network`` if deployed there."""
        self.network(network.chain_id)
        return asset.address_on(network.chain_id)

    def pool_group(self, asset: Asset, network: Network) -> Optional[PoolGroup]:
        return self._groups.get((asset.symbol, network.chain_id))

    def is_bridge_token(self, asset: Asset) -> bool:
        return asset.is_bridge_token

    def bridge_tokens(self) -> List[Asset]:
        return [asset for asset in self._assets.values() if asset.is_bridge_token]

    def wrap_pair_of(self, network: Network) -> Optional[WrapPair]:
        return self.network(network.chain_id).wrap_pair

    def effective_asset(self, asset: Asset, network: Network) -> Optional[Asset]:
        """Return the ERC20 that stands in for ``asset`` in pools and bridge calls.

        Native coins resolve to their wrapped counterpart, or ``None`` when the
        network has no wrap pair.
        """
        if not asset.is_native:
            return asset
        pair = self.wrap_pair_of(network)
        if pair is None or pair.native != asset.symbol:
            return None
        return self.asset(pair.wrapped)

    def aliases(self, asset: Asset, network: Network) -> FrozenSet[str]:
        """Symbols sharing ``asset``'s contract address on ``network`` (itself included)."""
        return self._aliases.get((asset.symbol, network.chain_id), frozenset({asset.symbol}))

    def same_token(self, first: Asset, second: Asset, network: Network) -> bool:
        return second.symbol in self.aliases(first, network)

    def reachable(self, asset: Asset, network: Network) -> FrozenSet[str]:
        """Symbols ``asset`` can be exchanged with on ``network`` without bridging."""
        group = self.pool_group(asset, network)
        members = frozenset(group.members) if group is not None else frozenset()
        return members | self.aliases(asset, network)

    def allowed_bridge_tokens(self, source: Network, dest: Network) -> Optional[FrozenSet[str]]:
        """Intersect every restriction for the ordered pair; ``None`` means unrestricted."""
        allowed: Optional[FrozenSet[str]] = None
        for restriction in self._restrictions:
            if not restriction.applies(source.chain_id, dest.chain_id):
                continue
            allowed = restriction.tokens if allowed is None else allowed & restriction.tokens
        return allowed


__all__ = ["Registry", "RegistryError"]

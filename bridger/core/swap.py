"""Pool swap quoting backed by on-chain swap pools."""

from __future__ import annotations

import functools
from typing import Callable

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError

from bridger.contracts import load_contract_abi
from bridger.core.networks import Network
from bridger.core.quotes import EstimationFailureReason, QuoteError
from bridger.core.registry import Registry
from bridger.core.tokens import Asset
from bridger.core.utils import get_logger

LOGGER = get_logger("bridger.swap")


@functools.lru_cache(maxsize=1)
def _cached_swap_pool_abi() -> list:
    return load_contract_abi("swap_pool.json")


class SwapPoolOracle:
    """Quote swaps with ``calculateSwap`` on the pool serving both tokens.

    Token indexes come from the registry, which mirrors the pools' on-chain order.
    """

    def __init__(self, registry: Registry, web3_for: Callable[[int], Web3]) -> None:
        self._registry = registry
        self._web3_for = web3_for

    def quote_swap(self, network: Network, token_in: Asset, token_out: Asset, amount_in: int) -> int:
        pool = self._registry.pool_group(token_in, network)
        if pool is None or token_out.symbol not in pool:
            raise ValueError(f"No pool swaps {token_in.symbol} for {token_out.symbol} on {network.name}")

        web3 = self._web3_for(network.chain_id)
        contract = web3.eth.contract(address=Web3.to_checksum_address(pool.address), abi=_cached_swap_pool_abi())
        index_from = pool.index_of(token_in.symbol)
        index_to = pool.index_of(token_out.symbol)
        try:
            amount_out = contract.functions.calculateSwap(index_from, index_to, amount_in).call()
        except ContractLogicError as exc:
            raise QuoteError(
                EstimationFailureReason.INSUFFICIENT_LIQUIDITY,
                f"{pool.group_id} pool on {network.name} cannot swap {amount_in} {token_in.symbol}: {exc}",
            ) from exc
        except requests.Timeout as exc:
            raise QuoteError(EstimationFailureReason.TIMEOUT, f"Pool quote timed out on {network.name}: {exc}") from exc

        LOGGER.debug(
            "Pool %s on %s quoted %s %s -> %s %s",
            pool.group_id,
            network.name,
            amount_in,
            token_in.symbol,
            amount_out,
            token_out.symbol,
        )
        return int(amount_out)


__all__ = ["SwapPoolOracle"]

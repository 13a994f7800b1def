"""Unit tests for the swap pool oracle."""

from unittest.mock import MagicMock

import pytest
import requests
from web3.exceptions import ContractLogicError

from bridger.core.quotes import EstimationFailureReason, QuoteError
from bridger.core.swap import SwapPoolOracle
from conftest import BSC, ETHEREUM


@pytest.fixture
def pool_contract():
    contract = MagicMock()
    contract.functions.calculateSwap.return_value.call.return_value = 999_000
    return contract


@pytest.fixture
def oracle(registry, pool_contract):
    web3 = MagicMock()
    web3.eth.contract.return_value = pool_contract
    return SwapPoolOracle(registry, lambda chain_id: web3), web3


class TestSwapPoolOracle:
    """Tests for on-chain pool quotes."""

    def test_quotes_with_registry_indexes(self, registry, oracle, pool_contract):
        """Token indexes follow the registry's pool order."""
        pool_oracle, web3 = oracle
        ethereum = registry.network(ETHEREUM)
        amount = pool_oracle.quote_swap(ethereum, registry.asset("DAI"), registry.asset("USDC"), 10**18)

        assert amount == 999_000
        pool_contract.functions.calculateSwap.assert_called_once_with(1, 2, 10**18)
        assert web3.eth.contract.call_args.kwargs["address"] == ethereum.pools[0].address
        assert [entry["name"] for entry in web3.eth.contract.call_args.kwargs["abi"]] == ["calculateSwap"]

    def test_uses_network_connection(self, registry, pool_contract):
        """The web3 factory is asked for the pool's network."""
        requested = []
        web3 = MagicMock()
        web3.eth.contract.return_value = pool_contract

        def web3_for(chain_id):
            requested.append(chain_id)
            return web3

        SwapPoolOracle(registry, web3_for).quote_swap(
            registry.network(BSC), registry.asset("BUSD"), registry.asset("NUSD"), 10**18
        )

        assert requested == [BSC]
        pool_contract.functions.calculateSwap.assert_called_once_with(1, 0, 10**18)

    def test_tokens_outside_one_pool(self, registry, oracle):
        """Quoting assets that share no pool is a caller defect."""
        pool_oracle, _ = oracle

        with pytest.raises(ValueError, match="No pool"):
            pool_oracle.quote_swap(registry.network(ETHEREUM), registry.asset("SYN"), registry.asset("USDC"), 1)

    def test_revert_is_insufficient_liquidity(self, registry, oracle, pool_contract):
        """A reverting pool reports insufficient liquidity."""
        pool_oracle, _ = oracle
        pool_contract.functions.calculateSwap.return_value.call.side_effect = ContractLogicError("execution reverted")

        with pytest.raises(QuoteError) as exc_info:
            pool_oracle.quote_swap(registry.network(ETHEREUM), registry.asset("DAI"), registry.asset("USDC"), 10**30)

        assert exc_info.value.reason is EstimationFailureReason.INSUFFICIENT_LIQUIDITY

    def test_timeout(self, registry, oracle, pool_contract):
        """RPC timeouts surface as timeouts."""
        pool_oracle, _ = oracle
        pool_contract.functions.calculateSwap.return_value.call.side_effect = requests.Timeout()

        with pytest.raises(QuoteError) as exc_info:
            pool_oracle.quote_swap(registry.network(ETHEREUM), registry.asset("DAI"), registry.asset("USDC"), 10**18)

        assert exc_info.value.reason is EstimationFailureReason.TIMEOUT

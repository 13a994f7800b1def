"""Unit tests for output estimation."""

from unittest.mock import MagicMock

import pytest
import requests
from web3.exceptions import ContractLogicError

from bridger.core.quotes import (
    BridgeConfigOracle,
    BridgeStage,
    Estimate,
    EstimationFailed,
    EstimationFailureReason,
    LocalSwapStage,
    QuoteError,
    RemoteSwapStage,
    build_pipeline,
    estimate_output,
)
from conftest import BSC, ETHEREUM, OPTIMISM, POLYGON, StubBridgeOracle, StubPoolOracle, classify

ORACLE_ADDRESS = "0x2222222222222222222222222222222222222222"


def _estimate(route, amount, bridge=None, pool=None, **kwargs):
    return estimate_output(
        route,
        amount,
        bridge_oracle=bridge or StubBridgeOracle(),
        pool_oracle=pool or StubPoolOracle(),
        **kwargs,
    )


class TestPipeline:
    """Tests for assembling estimator stages."""

    def test_swap_both_has_three_stages(self, registry):
        """Local swap, bridge and remote swap run in causal order."""
        stages = build_pipeline(classify(registry, ETHEREUM, "DAI", POLYGON, "DAI"))

        assert [type(stage) for stage in stages] == [LocalSwapStage, BridgeStage, RemoteSwapStage]

    def test_direct_route_only_bridges(self, registry):
        """Direct routes have a single bridge stage."""
        stages = build_pipeline(classify(registry, ETHEREUM, "USDC", BSC, "USDC"))

        assert [stage.name for stage in stages] == ["bridge"]

    def test_wrap_has_no_stages(self, registry):
        """Wrapping is quoted without oracles."""
        assert build_pipeline(classify(registry, ETHEREUM, "ETH", ETHEREUM, "WETH")) == ()


class TestEstimateOutput:
    """Tests for composing stage quotes."""

    def test_direct_route_pays_fee(self, registry):
        """Direct output is the bridged amount minus the fee."""
        route = classify(registry, OPTIMISM, "NETH", ETHEREUM, "ETH")
        result = _estimate(route, 10**18, bridge=StubBridgeOracle(fee=10**15))

        assert isinstance(result, Estimate)
        assert result.amount_out == 10**18 - 10**15
        assert result.bridge_fee == 10**15

    def test_decimals_rescaled_across_networks(self, registry):
        """USDC moves from 6 decimals on Ethereum to 18 on BSC."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")

        assert _estimate(route, 2_500_000).amount_out == 2_500_000 * 10**12

    def test_stages_feed_each_other(self, registry):
        """Each stage consumes the previous stage's output."""
        route = classify(registry, ETHEREUM, "DAI", POLYGON, "DAI")
        pool = StubPoolOracle(bps=100)
        result = _estimate(route, 10**18, bridge=StubBridgeOracle(fee=10**16), pool=pool)

        after_local = 10**18 * 99 // 100
        after_bridge = after_local - 10**16
        assert result.amount_out == after_bridge * 99 // 100
        assert [stage.amount_in for stage in result.stages] == [10**18, after_local, after_bridge]
        assert pool.calls[1] == (POLYGON, "NUSD", "DAI", after_bridge)

    def test_wrap_is_one_to_one(self, registry):
        """Wrapping returns the input amount."""
        route = classify(registry, ETHEREUM, "ETH", ETHEREUM, "WETH")

        assert _estimate(route, 5 * 10**17).amount_out == 5 * 10**17

    def test_zero_amount_short_circuits(self, registry):
        """A zero input never consults the oracles."""
        route = classify(registry, ETHEREUM, "DAI", BSC, "USDC")
        bridge, pool = StubBridgeOracle(), StubPoolOracle()
        result = _estimate(route, 0, bridge=bridge, pool=pool)

        assert result == Estimate(amount_out=0, bridge_fee=0)
        assert bridge.calls == [] and pool.calls == []

    def test_negative_amount_rejected(self, registry):
        """Negative inputs are caller defects."""
        route = classify(registry, ETHEREUM, "DAI", BSC, "USDC")

        with pytest.raises(ValueError, match="non-negative"):
            _estimate(route, -1)

    def test_remote_pool_without_liquidity(self, registry):
        """A failing remote pool reports insufficient liquidity at that stage."""
        route = classify(registry, ETHEREUM, "ETH", OPTIMISM, "ETH")
        pool = StubPoolOracle(errors={OPTIMISM: QuoteError(EstimationFailureReason.INSUFFICIENT_LIQUIDITY)})
        result = _estimate(route, 10**18, pool=pool)

        assert isinstance(result, EstimationFailed)
        assert result.reason is EstimationFailureReason.INSUFFICIENT_LIQUIDITY
        assert result.stage == "remote_swap"

    def test_below_bridge_minimum_estimates_zero(self, registry):
        """Amounts under the bridge minimum succeed with zero output."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")
        result = _estimate(route, 1_000, bridge=StubBridgeOracle(minimum=10**18))

        assert isinstance(result, Estimate)
        assert result.amount_out == 0

    def test_below_bridge_minimum_can_fail(self, registry):
        """Callers can ask for the minimum to surface as a failure."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")
        result = _estimate(route, 1_000, bridge=StubBridgeOracle(minimum=10**18), zero_below_minimum=False)

        assert result.reason is EstimationFailureReason.BELOW_MINIMUM
        assert result.stage == "bridge"

    def test_above_bridge_maximum(self, registry):
        """Amounts over the bridge maximum fail."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")
        result = _estimate(route, 10**12, bridge=StubBridgeOracle(maximum=10**18))

        assert result.reason is EstimationFailureReason.ABOVE_MAXIMUM

    def test_zero_after_stage_skips_rest(self, registry):
        """Once a stage yields zero the remaining stages are skipped."""
        route = classify(registry, ETHEREUM, "DAI", POLYGON, "DAI")
        pool = StubPoolOracle()
        result = _estimate(route, 10**15, bridge=StubBridgeOracle(fee=10**18), pool=pool)

        assert result.amount_out == 0
        assert len(pool.calls) == 1

    def test_deadline_exceeded_before_stage(self, registry):
        """An expired deadline reports a timeout at the next stage."""
        route = classify(registry, ETHEREUM, "DAI", BSC, "USDC")
        ticks = iter([0.0, 5.0])
        result = _estimate(route, 10**18, deadline=1.0, clock=lambda: next(ticks))

        assert isinstance(result, EstimationFailed)
        assert result.reason is EstimationFailureReason.TIMEOUT
        assert result.stage == "bridge"

    def test_idempotent(self, registry):
        """Unchanged oracles give identical estimates."""
        route = classify(registry, ETHEREUM, "DAI", POLYGON, "DAI")
        bridge, pool = StubBridgeOracle(fee=123), StubPoolOracle(bps=30)

        assert _estimate(route, 10**18, bridge, pool) == _estimate(route, 10**18, bridge, pool)

    def test_direct_output_monotonic(self, registry):
        """Direct output never decreases as the input grows."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")
        bridge = StubBridgeOracle(fee=10**17, minimum=10**18)
        outputs = [_estimate(route, amount, bridge).amount_out for amount in range(0, 5_000_000, 250_000)]

        assert outputs == sorted(outputs)


class TestBridgeConfigOracle:
    """Tests for the on-chain bridge fee oracle."""

    @staticmethod
    def _oracle(*, max_swap=10**30, min_swap=0, fee=0):
        contract = MagicMock()
        contract.functions.getTokenID.return_value.call.return_value = "usdc"
        contract.functions.getToken.return_value.call.return_value = (
            BSC, "0xusdc", 18, max_swap, min_swap, 0, 0, 0, False, False,
        )
        contract.functions.calculateSwapFee.return_value.call.return_value = fee
        web3 = MagicMock()
        web3.eth.contract.return_value = contract
        return BridgeConfigOracle(web3, ORACLE_ADDRESS), contract

    def test_fee_deducted_in_destination_units(self, registry):
        """The amount is rescaled before the fee lookup."""
        oracle, contract = self._oracle(fee=10**17)
        usdc = registry.asset("USDC")
        quote = oracle.quote_bridge(usdc, registry.network(ETHEREUM), registry.network(BSC), 2_000_000)

        assert quote.amount_out == 2 * 10**18 - 10**17
        assert quote.fee == 10**17
        contract.functions.calculateSwapFee.assert_called_once_with(
            usdc.address_on(BSC).lower(), BSC, 2 * 10**18
        )

    def test_limits(self, registry):
        """Limits from getToken map to typed quote errors."""
        usdc = registry.asset("USDC")
        source, dest = registry.network(ETHEREUM), registry.network(BSC)

        oracle, _ = self._oracle(min_swap=10**19)
        with pytest.raises(QuoteError) as below:
            oracle.quote_bridge(usdc, source, dest, 1_000_000)
        oracle, _ = self._oracle(max_swap=10**17)
        with pytest.raises(QuoteError) as above:
            oracle.quote_bridge(usdc, source, dest, 1_000_000)

        assert below.value.reason is EstimationFailureReason.BELOW_MINIMUM
        assert above.value.reason is EstimationFailureReason.ABOVE_MAXIMUM

    def test_revert_is_insufficient_liquidity(self, registry):
        """Reverted calls surface as liquidity failures."""
        oracle, contract = self._oracle()
        contract.functions.calculateSwapFee.return_value.call.side_effect = ContractLogicError("execution reverted")

        with pytest.raises(QuoteError) as exc_info:
            oracle.quote_bridge(registry.asset("NUSD"), registry.network(ETHEREUM), registry.network(BSC), 10**18)

        assert exc_info.value.reason is EstimationFailureReason.INSUFFICIENT_LIQUIDITY

    def test_rpc_timeout(self, registry):
        """RPC timeouts surface as timeouts."""
        oracle, contract = self._oracle()
        contract.functions.getTokenID.return_value.call.side_effect = requests.Timeout("read timed out")

        with pytest.raises(QuoteError) as exc_info:
            oracle.quote_bridge(registry.asset("NUSD"), registry.network(ETHEREUM), registry.network(BSC), 10**18)

        assert exc_info.value.reason is EstimationFailureReason.TIMEOUT

    def test_oracle_timeout_becomes_failure(self, registry):
        """The estimator converts oracle timeouts into a typed failure."""
        route = classify(registry, ETHEREUM, "USDC", BSC, "USDC")
        oracle, contract = self._oracle()
        contract.functions.getTokenID.return_value.call.side_effect = requests.Timeout("read timed out")
        result = estimate_output(route, 10**6, bridge_oracle=oracle, pool_oracle=StubPoolOracle())

        assert result.reason is EstimationFailureReason.TIMEOUT
        assert "timed out" in result.detail

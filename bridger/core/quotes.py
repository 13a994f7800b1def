"""Output estimation over bridge fee and pool quote oracles."""

from __future__ import annotations

import enum
import functools
import time
from dataclasses import dataclass
from typing import Callable, ClassVar, Optional, Protocol, Tuple, Union

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError

from bridger.contracts import load_contract_abi
from bridger.core.networks import Network
from bridger.core.routes import RouteClassification, RouteKind, SwapLeg
from bridger.core.tokens import Asset
from bridger.core.utils import get_logger

LOGGER = get_logger("bridger.quotes")


class EstimationFailureReason(str, enum.Enum):
    INSUFFICIENT_LIQUIDITY = "insufficient liquidity"
    BELOW_MINIMUM = "below minimum"
    ABOVE_MAXIMUM = "above maximum"
    TIMEOUT = "timeout"


class QuoteError(Exception):
    """Raised by oracles when live liquidity or limits cannot serve an amount."""

    def __init__(self, reason: EstimationFailureReason, message: str = "") -> None:
        super().__init__(message or reason.value)
        self.reason = reason


@dataclass(frozen=True)
class BridgeQuote:
    """Bridge leg output expressed in destination network units."""

    amount_out: int
    fee: int


class BridgeFeeOracle(Protocol):
    def quote_bridge(self, token: Asset, source: Network, dest: Network, amount_in: int) -> BridgeQuote:
        ...


class PoolQuoteOracle(Protocol):
    def quote_swap(self, network: Network, token_in: Asset, token_out: Asset, amount_in: int) -> int:
        ...


@dataclass(frozen=True)
class StageResult:
    name: str
    amount_in: int
    amount_out: int
    fee: int = 0


@dataclass(frozen=True)
class LocalSwapStage:
    """Swap the source asset into the bridge token on the source network."""

    leg: SwapLeg
    name: str = "local_swap"
    rpc_calls: ClassVar[int] = 1

    def run(self, amount: int, *, bridge_oracle: BridgeFeeOracle, pool_oracle: PoolQuoteOracle) -> StageResult:
        out = pool_oracle.quote_swap(self.leg.network, self.leg.token_in, self.leg.token_out, amount)
        return StageResult(self.name, amount, out)


@dataclass(frozen=True)
class BridgeStage:
    """Move the bridge token across networks, paying the bridge fee."""

    token: Asset
    source: Network
    dest: Network
    name: str = "bridge"
    # getTokenID, getToken, calculateSwapFee
    rpc_calls: ClassVar[int] = 3

    def run(self, amount: int, *, bridge_oracle: BridgeFeeOracle, pool_oracle: PoolQuoteOracle) -> StageResult:
        quote = bridge_oracle.quote_bridge(self.token, self.source, self.dest, amount)
        return StageResult(self.name, amount, quote.amount_out, quote.fee)


@dataclass(frozen=True)
class RemoteSwapStage:
    """Swap the bridge token into the destination asset after bridging."""

    leg: SwapLeg
    name: str = "remote_swap"
    rpc_calls: ClassVar[int] = 1

    def run(self, amount: int, *, bridge_oracle: BridgeFeeOracle, pool_oracle: PoolQuoteOracle) -> StageResult:
        out = pool_oracle.quote_swap(self.leg.network, self.leg.token_in, self.leg.token_out, amount)
        return StageResult(self.name, amount, out)


Stage = Union[LocalSwapStage, BridgeStage, RemoteSwapStage]


@dataclass(frozen=True)
class Estimate:
    amount_out: int
    bridge_fee: int
    stages: Tuple[StageResult, ...] = ()


@dataclass(frozen=True)
class EstimationFailed:
    reason: EstimationFailureReason
    stage: Optional[str] = None
    detail: str = ""

    def __str__(self) -> str:
        where = f" at {self.stage}" if self.stage else ""
        return f"{self.reason.value}{where}: {self.detail}" if self.detail else f"{self.reason.value}{where}"


EstimateResult = Union[Estimate, EstimationFailed]


def build_pipeline(classification: RouteClassification) -> Tuple[Stage, ...]:
    """Return the ordered stages needed to quote ``classification``."""
    if classification.kind is RouteKind.WRAP:
        return ()

    stages = []
    if classification.local_swap is not None:
        stages.append(LocalSwapStage(classification.local_swap))
    stages.append(
        BridgeStage(
            token=classification.bridge_token,
            source=classification.source_network,
            dest=classification.dest_network,
        )
    )
    if classification.remote_swap is not None:
        stages.append(RemoteSwapStage(classification.remote_swap))
    return tuple(stages)


def estimate_output(
    classification: RouteClassification,
    amount_in: int,
    *,
    bridge_oracle: BridgeFeeOracle,
    pool_oracle: PoolQuoteOracle,
    deadline: Optional[float] = None,
    zero_below_minimum: bool = True,
    clock: Callable[[], float] = time.monotonic,
) -> EstimateResult:
    """Run the quote pipeline for ``classification`` and compose the amount out."""
    if amount_in < 0:
        raise ValueError(f"amount_in must be non-negative, got {amount_in}")

    amount = amount_in
    bridge_fee = 0
    results = []

    for stage in build_pipeline(classification):
        if amount == 0:
            LOGGER.debug("Stage %s skipped: amount reached zero", stage.name)
            return Estimate(amount_out=0, bridge_fee=bridge_fee, stages=tuple(results))
        if deadline is not None and clock() >= deadline:
            return EstimationFailed(EstimationFailureReason.TIMEOUT, stage.name, "deadline exceeded")

        try:
            result = stage.run(amount, bridge_oracle=bridge_oracle, pool_oracle=pool_oracle)
        except QuoteError as exc:
            if (
                exc.reason is EstimationFailureReason.BELOW_MINIMUM
                and isinstance(stage, BridgeStage)
                and zero_below_minimum
            ):
                LOGGER.debug("Bridge minimum not met for %s, estimating zero", amount)
                results.append(StageResult(stage.name, amount, 0))
                return Estimate(amount_out=0, bridge_fee=bridge_fee, stages=tuple(results))
            return EstimationFailed(exc.reason, stage.name, str(exc))

        LOGGER.debug("Stage %s: %s -> %s (fee %s)", result.name, result.amount_in, result.amount_out, result.fee)
        results.append(result)
        bridge_fee += result.fee
        amount = result.amount_out

    return Estimate(amount_out=amount, bridge_fee=bridge_fee, stages=tuple(results))


@functools.lru_cache(maxsize=1)
def _cached_bridge_config_abi() -> list:
    return load_contract_abi("bridge_config.json")


class BridgeConfigOracle:
    """Bridge fee and limit lookups against the on-chain BridgeConfig contract."""

    def __init__(self, web3: Web3, address: str) -> None:
        self._contract = web3.eth.contract(address=Web3.to_checksum_address(address), abi=_cached_bridge_config_abi())

    def quote_bridge(self, token: Asset, source: Network, dest: Network, amount_in: int) -> BridgeQuote:
        dest_address = token.address_on(dest.chain_id)
        if dest_address is None:
            raise ValueError(f"{token.symbol} is not deployed on {dest.name}")

        amount = token.rescale(amount_in, source.chain_id, dest.chain_id)
        functions = self._contract.functions
        try:
            token_id = functions.getTokenID(dest_address.lower(), dest.chain_id).call()
            limits = functions.getToken(token_id, dest.chain_id).call()
            max_swap, min_swap = int(limits[3]), int(limits[4])
            if amount > max_swap:
                raise QuoteError(EstimationFailureReason.ABOVE_MAXIMUM, f"{amount} exceeds bridge maximum {max_swap}")
            if amount < min_swap:
                raise QuoteError(EstimationFailureReason.BELOW_MINIMUM, f"{amount} below bridge minimum {min_swap}")
            fee = int(functions.calculateSwapFee(dest_address.lower(), dest.chain_id, amount).call())
        except ContractLogicError as exc:
            raise QuoteError(EstimationFailureReason.INSUFFICIENT_LIQUIDITY, f"BridgeConfig reverted: {exc}") from exc
        except requests.Timeout as exc:
            raise QuoteError(EstimationFailureReason.TIMEOUT, f"BridgeConfig call timed out: {exc}") from exc

        return BridgeQuote(amount_out=max(amount - fee, 0), fee=fee)


__all__ = [
    "BridgeConfigOracle",
    "BridgeFeeOracle",
    "BridgeQuote",
    "BridgeStage",
    "Estimate",
    "EstimateResult",
    "EstimationFailed",
    "EstimationFailureReason",
    "LocalSwapStage",
    "PoolQuoteOracle",
    "QuoteError",
    "RemoteSwapStage",
    "StageResult",
    "build_pipeline",
    "estimate_output",
]

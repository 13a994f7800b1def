"""Bridge transaction construction."""

from __future__ import annotations

import enum
import functools
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from web3 import Web3

from bridger.contracts import load_contract_abi
from bridger.core.networks import Network
from bridger.core.routes import BridgeAction, RouteClassification, RouteKind
from bridger.core.tokens import rescale_amount
from bridger.core.utils import TransactionPayload, get_logger
from bridger.core.validation import BuildFailed, validate_amounts, validate_recipient

LOGGER = get_logger("bridger.bridge")

DEFAULT_DEADLINE_SECONDS = 600


class RouteTableError(LookupError):
    """Raised when a classification has no entry point; indicates a table or registry defect."""


class ContractRole(str, enum.Enum):
    BRIDGE = "bridge"
    ZAP = "zap"
    WRAPPED = "wrapped"


@dataclass(frozen=True)
class EntryPoint:
    function: str
    role: ContractRole
    payable: bool = False


_BRIDGE_ENTRY_POINTS: Dict[Tuple[RouteKind, BridgeAction, bool], EntryPoint] = {
    (RouteKind.DIRECT, BridgeAction.DEPOSIT, False): EntryPoint("deposit", ContractRole.BRIDGE),
    (RouteKind.DIRECT, BridgeAction.DEPOSIT, True): EntryPoint("depositETH", ContractRole.ZAP, payable=True),
    (RouteKind.DIRECT, BridgeAction.REDEEM, False): EntryPoint("redeem", ContractRole.BRIDGE),
    (RouteKind.LOCAL_SWAP, BridgeAction.DEPOSIT, False): EntryPoint("swapAndDeposit", ContractRole.ZAP),
    (RouteKind.LOCAL_SWAP, BridgeAction.DEPOSIT, True): EntryPoint("swapETHAndDeposit", ContractRole.ZAP, payable=True),
    (RouteKind.LOCAL_SWAP, BridgeAction.REDEEM, False): EntryPoint("swapAndRedeem", ContractRole.ZAP),
    (RouteKind.LOCAL_SWAP, BridgeAction.REDEEM, True): EntryPoint("swapETHAndRedeem", ContractRole.ZAP, payable=True),
    (RouteKind.REMOTE_SWAP, BridgeAction.DEPOSIT, False): EntryPoint("depositAndSwap", ContractRole.BRIDGE),
    (RouteKind.REMOTE_SWAP, BridgeAction.DEPOSIT, True): EntryPoint("depositETHAndSwap", ContractRole.ZAP, payable=True),
    (RouteKind.REMOTE_SWAP, BridgeAction.REDEEM, False): EntryPoint("redeemAndSwap", ContractRole.BRIDGE),
    (RouteKind.SWAP_BOTH, BridgeAction.DEPOSIT, False): EntryPoint("swapAndDepositAndSwap", ContractRole.ZAP),
    (RouteKind.SWAP_BOTH, BridgeAction.DEPOSIT, True): EntryPoint(
        "swapETHAndDepositAndSwap", ContractRole.ZAP, payable=True
    ),
    (RouteKind.SWAP_BOTH, BridgeAction.REDEEM, False): EntryPoint("swapAndRedeemAndSwap", ContractRole.ZAP),
    (RouteKind.SWAP_BOTH, BridgeAction.REDEEM, True): EntryPoint(
        "swapETHAndRedeemAndSwap", ContractRole.ZAP, payable=True
    ),
}

# Keyed by (kind, action, native_in, native_out). The destination bridge unwraps
# native coins itself, so native_out only selects between wrap and unwrap.
ENTRY_POINTS: Dict[Tuple[RouteKind, BridgeAction, bool, bool], EntryPoint] = {
    (RouteKind.WRAP, BridgeAction.NONE, True, False): EntryPoint("deposit", ContractRole.WRAPPED, payable=True),
    (RouteKind.WRAP, BridgeAction.NONE, False, True): EntryPoint("withdraw", ContractRole.WRAPPED),
}
ENTRY_POINTS.update(
    {
        (kind, action, native_in, native_out): entry
        for (kind, action, native_in), entry in _BRIDGE_ENTRY_POINTS.items()
        for native_out in (False, True)
    }
)

_ABI_FILES = {
    ContractRole.BRIDGE: "synapse_bridge.json",
    ContractRole.ZAP: "bridge_zap.json",
    ContractRole.WRAPPED: "wrapped_native.json",
}


@functools.lru_cache(maxsize=None)
def _cached_abi(role: ContractRole) -> list:
    return load_contract_abi(_ABI_FILES[role])


def select_entry_point(classification: RouteClassification) -> EntryPoint:
    key = (classification.kind, classification.action, classification.native_in, classification.native_out)
    try:
        return ENTRY_POINTS[key]
    except KeyError:
        raise RouteTableError(f"No entry point for {key}") from None


def _target_address(classification: RouteClassification, entry: EntryPoint) -> str:
    network = classification.source_network
    if entry.role is ContractRole.WRAPPED:
        wrapped = classification.dest_asset if classification.native_in else classification.source_asset
        return wrapped.address_on(network.chain_id)
    if entry.role is ContractRole.BRIDGE:
        return network.bridge_address

    group_id = classification.local_swap.pool.group_id if classification.local_swap is not None else None
    zap = network.zap_for(group_id)
    if zap is None:
        raise RouteTableError(f"{network.name} has no zap for {entry.function}")
    return zap


def approval_spender(classification: RouteClassification) -> Optional[str]:
    """Return the contract that must be allowed to pull the source token, if any."""
    if classification.native_in or classification.kind is RouteKind.WRAP:
        return None
    return _target_address(classification, select_entry_point(classification))


def _local_minimum(classification: RouteClassification, amount_out_min: int) -> int:
    # The bridge token received from the local swap can never be less than the final output.
    return rescale_amount(
        amount_out_min,
        classification.dest_asset.decimals_on(classification.dest_network.chain_id),
        classification.bridge_token.decimals_on(classification.source_network.chain_id),
    )


def _call_args(
    classification: RouteClassification,
    amount_in: int,
    amount_out_min: int,
    recipient: str,
    deadline: int,
) -> List[object]:
    kind = classification.kind
    if kind is RouteKind.WRAP:
        return [] if classification.native_in else [amount_in]

    source: Network = classification.source_network
    token = classification.bridge_token.address_on(source.chain_id)
    args: List[object] = [recipient, classification.dest_network.chain_id]

    if kind in (RouteKind.DIRECT, RouteKind.REMOTE_SWAP):
        args += [amount_in] if classification.native_in else [token, amount_in]
    else:
        local = classification.local_swap
        args += [
            token,
            local.index_from,
            local.index_to,
            amount_in,
            _local_minimum(classification, amount_out_min),
            deadline,
        ]

    if kind in (RouteKind.REMOTE_SWAP, RouteKind.SWAP_BOTH):
        remote = classification.remote_swap
        args += [remote.index_from, remote.index_to, amount_out_min, deadline]
    return args


def build_transaction(
    classification: RouteClassification,
    amount_in: int,
    amount_out_min: int,
    recipient: str,
    *,
    deadline: Optional[int] = None,
    deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
    clock: Callable[[], float] = time.time,
) -> Union[TransactionPayload, BuildFailed]:
    """Encode the single contract call that executes ``classification``."""
    failure = validate_amounts(classification, amount_in, amount_out_min) or validate_recipient(recipient)
    if failure is not None:
        return failure

    entry = select_entry_point(classification)
    target = _target_address(classification, entry)
    if deadline is None:
        deadline = int(clock()) + deadline_seconds

    args = _call_args(
        classification,
        amount_in,
        amount_out_min,
        Web3.to_checksum_address(recipient),
        deadline,
    )
    contract = Web3().eth.contract(address=Web3.to_checksum_address(target), abi=_cached_abi(entry.role))
    data = contract.encode_abi(entry.function, args=args)

    LOGGER.debug(
        "Prepared %s on %s target=%s amount_in=%s min_out=%s",
        entry.function,
        classification.source_network.name,
        target,
        amount_in,
        amount_out_min,
    )

    return TransactionPayload(
        chain_id=classification.source_network.chain_id,
        to=Web3.to_checksum_address(target),
        data=data,
        value=amount_in if entry.payable else 0,
        function=entry.function,
        args=tuple(args),
    )


def _bridge_contract(web3: Web3, network: Network):
    return web3.eth.contract(
        address=Web3.to_checksum_address(network.bridge_address),
        abi=_cached_abi(ContractRole.BRIDGE),
    )


def read_bridge_version(web3: Web3, network: Network) -> int:
    """Read ``bridgeVersion()`` from the network's bridge contract."""
    return int(_bridge_contract(web3, network).functions.bridgeVersion().call())


def read_weth_address(web3: Web3, network: Network) -> str:
    """Read the wrapped native address the bridge unwraps into (zero when unset)."""
    return Web3.to_checksum_address(_bridge_contract(web3, network).functions.WETH_ADDRESS().call())


__all__ = [
    "DEFAULT_DEADLINE_SECONDS",
    "ENTRY_POINTS",
    "ContractRole",
    "EntryPoint",
    "RouteTableError",
    "approval_spender",
    "build_transaction",
    "read_bridge_version",
    "read_weth_address",
    "select_entry_point",
]

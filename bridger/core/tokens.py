"""Asset definitions, unit conversion and ERC20 approval helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import TYPE_CHECKING, Mapping, Optional, Union

from web3 import Web3

from bridger.core.utils import TransactionPayload

if TYPE_CHECKING:
    from bridger.core.networks import Network

NATIVE_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
MAX_UINT256 = 2**256 - 1

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}, {"name": "_spender", "type": "address"}],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [{"name": "_spender", "type": "address"}, {"name": "_value", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass(frozen=True)
class Asset:
    """A logical token identity and its per-network deployments."""

    symbol: str
    name: str
    decimals: int
    addresses: Mapping[int, str] = field(default_factory=dict)
    network_decimals: Mapping[int, int] = field(default_factory=dict)
    is_native: bool = False
    is_bridge_token: bool = False

    def address_on(self, chain_id: int) -> Optional[str]:
        return self.addresses.get(chain_id)

    def is_present_on(self, chain_id: int) -> bool:
        return chain_id in self.addresses

    def decimals_on(self, chain_id: int) -> int:
        return self.network_decimals.get(chain_id, self.decimals)

    def to_wei(self, value: Union[str, int, Decimal], chain_id: int) -> int:
        """Convert a human readable amount to the smallest unit on ``chain_id``."""
        scaled = Decimal(str(value)) * (Decimal(10) ** self.decimals_on(chain_id))
        return int(scaled.quantize(Decimal("1"), rounding=ROUND_DOWN))

    def from_wei(self, amount: int, chain_id: int) -> Decimal:
        return Decimal(amount) / (Decimal(10) ** self.decimals_on(chain_id))

    def rescale(self, amount: int, from_chain: int, to_chain: int) -> int:
        """Move ``amount`` between the precisions used on two networks, rounding down."""
        return rescale_amount(amount, self.decimals_on(from_chain), self.decimals_on(to_chain))


def rescale_amount(amount: int, from_decimals: int, to_decimals: int) -> int:
    if to_decimals >= from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def build_approve_transaction(
    *,
    asset: Asset,
    network: "Network",
    spender: str,
    amount: int = MAX_UINT256,
) -> TransactionPayload:
    """Build an unsigned ``approve`` call letting ``spender`` pull ``asset``."""
    if asset.is_native:
        raise ValueError(f"{asset.symbol} is the native coin on {network.name} and needs no approval")
    token_address = asset.address_on(network.chain_id)
    if token_address is None:
        raise ValueError(f"{asset.symbol} is not deployed on {network.name}")

    contract = Web3().eth.contract(address=token_address, abi=ERC20_ABI)
    args = (Web3.to_checksum_address(spender), amount)
    return TransactionPayload(
        chain_id=network.chain_id,
        to=token_address,
        data=contract.encode_abi("approve", args=list(args)),
        value=0,
        function="approve",
        args=args,
    )


def allowance_of(web3: Web3, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    contract = web3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
    return contract.functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


__all__ = [
    "ERC20_ABI",
    "MAX_UINT256",
    "NATIVE_ADDRESS",
    "Asset",
    "allowance_of",
    "build_approve_transaction",
    "rescale_amount",
]

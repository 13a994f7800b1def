"""Core domain logic for bridge routing."""

from .bridge import approval_spender, build_transaction, select_entry_point
from .quotes import BridgeConfigOracle, estimate_output
from .registry import Registry, RegistryError
from .routes import TransferRequest, classify_route
from .swap import SwapPoolOracle

__all__ = [
    "BridgeConfigOracle",
    "Registry",
    "RegistryError",
    "SwapPoolOracle",
    "TransferRequest",
    "approval_spender",
    "build_transaction",
    "classify_route",
    "estimate_output",
    "select_entry_point",
]

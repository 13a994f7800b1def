"""Utility helpers shared across bridger core modules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Optional, Tuple

from web3 import Web3


def get_logger(name: str = "bridger") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def apply_discount(value: int, multiplier: Decimal) -> int:
    """Apply a multiplier to a value and round down to the nearest wei."""
    return int((Decimal(value) * multiplier).quantize(Decimal("1"), rounding=ROUND_DOWN))


@dataclass(frozen=True)
class TransactionPayload:
    """Unsigned contract call ready to be signed by an external wallet."""

    chain_id: int
    to: str
    data: str
    value: int
    function: str
    args: Tuple[Any, ...] = field(default=())

    @property
    def selector(self) -> str:
        return self.data[:10]

    def to_tx_params(self) -> Dict[str, Any]:
        """Return the payload as web3 transaction parameters."""
        return {
            "chainId": self.chain_id,
            "to": self.to,
            "data": self.data,
            "value": self.value,
        }


__all__ = [
    "TransactionPayload",
    "apply_discount",
    "ensure_web3_connected",
    "get_logger",
]

"""Validation helpers for bridge transaction inputs."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from bridger.core.routes import RouteClassification
from bridger.core.tokens import rescale_amount

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class BuildFailureReason(str, enum.Enum):
    INVALID_AMOUNT = "invalid amount"
    INVALID_ADDRESS = "invalid address"


@dataclass(frozen=True)
class BuildFailed:
    """Typed rejection returned instead of a transaction payload."""

    reason: BuildFailureReason
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}" if self.detail else self.reason.value


def max_plausible_output(classification: RouteClassification, amount_in: int) -> int:
    """Upper bound for the amount received: ``amount_in`` at destination precision."""
    return rescale_amount(
        amount_in,
        classification.source_asset.decimals_on(classification.source_network.chain_id),
        classification.dest_asset.decimals_on(classification.dest_network.chain_id),
    )


def validate_amounts(
    classification: RouteClassification,
    amount_in: int,
    amount_out_min: int,
) -> Optional[BuildFailed]:
    if amount_in <= 0:
        return BuildFailed(BuildFailureReason.INVALID_AMOUNT, f"amount_in must be positive, got {amount_in}")
    if amount_out_min < 0:
        return BuildFailed(BuildFailureReason.INVALID_AMOUNT, f"amount_out_min must be non-negative, got {amount_out_min}")

    ceiling = max_plausible_output(classification, amount_in)
    if amount_out_min > ceiling:
        return BuildFailed(
            BuildFailureReason.INVALID_AMOUNT,
            f"amount_out_min {amount_out_min} exceeds {ceiling} available from amount_in {amount_in}",
        )
    return None


def validate_recipient(recipient: str) -> Optional[BuildFailed]:
    if not isinstance(recipient, str) or not Web3.is_address(recipient):
        return BuildFailed(BuildFailureReason.INVALID_ADDRESS, f"recipient is not an address: {recipient!r}")
    if recipient.lower() == ZERO_ADDRESS:
        return BuildFailed(BuildFailureReason.INVALID_ADDRESS, "recipient is the zero address")
    return None


__all__ = [
    "BuildFailed",
    "BuildFailureReason",
    "max_plausible_output",
    "validate_amounts",
    "validate_recipient",
]

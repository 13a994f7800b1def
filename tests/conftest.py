"""Pytest configuration and fixtures."""

import copy
import json
from pathlib import Path
from typing import Dict, Optional

import pytest

from bridger.config import build_registry, load_registry
from bridger.core.networks import Network
from bridger.core.quotes import BridgeQuote, EstimationFailureReason, QuoteError
from bridger.core.registry import Registry
from bridger.core.routes import TransferRequest, classify_route
from bridger.core.tokens import Asset, rescale_amount

REGISTRY_JSON = Path(__file__).resolve().parent.parent / "bridger" / "config" / "registry.json"

RECIPIENT = "0x1111111111111111111111111111111111111111"

ETHEREUM = 1
OPTIMISM = 10
BSC = 56
POLYGON = 137
BOBA = 288
ARBITRUM = 42161
AVALANCHE = 43114
AURORA = 1313161554


@pytest.fixture(scope="session")
def shipped_registry_data() -> dict:
    """Decoded packaged registry, shared read-only."""
    with REGISTRY_JSON.open("r", encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture
def registry_data(shipped_registry_data) -> dict:
    """A mutable copy of the packaged registry for validation tests."""
    return copy.deepcopy(shipped_registry_data)


@pytest.fixture(scope="session")
def registry() -> Registry:
    return load_registry()


@pytest.fixture
def small_registry() -> Registry:
    """Two networks sharing one stable pool layout, built from a plain dict."""
    return build_registry(
        {
            "assets": [
                {
                    "symbol": "NUSD",
                    "decimals": 18,
                    "bridge_token": True,
                    "addresses": {
                        "1": "0x00000000000000000000000000000000000000a1",
                        "2": "0x00000000000000000000000000000000000000a2",
                    },
                },
                {
                    "symbol": "USDX",
                    "decimals": 6,
                    "addresses": {
                        "1": "0x00000000000000000000000000000000000000b1",
                        "2": "0x00000000000000000000000000000000000000b2",
                    },
                },
            ],
            "networks": [
                {
                    "chain_id": 1,
                    "name": "Home",
                    "bridge": "0x0000000000000000000000000000000000000001",
                    "zaps": {"default": "0x0000000000000000000000000000000000000011"},
                    "deposit_tokens": ["NUSD"],
                    "pools": [
                        {
                            "id": "stable",
                            "address": "0x0000000000000000000000000000000000000021",
                            "tokens": ["NUSD", "USDX"],
                            "bridge_priority": ["NUSD"],
                        }
                    ],
                },
                {
                    "chain_id": 2,
                    "name": "Away",
                    "bridge": "0x0000000000000000000000000000000000000002",
                    "zaps": {"default": "0x0000000000000000000000000000000000000012"},
                    "pools": [
                        {
                            "id": "stable",
                            "address": "0x0000000000000000000000000000000000000022",
                            "tokens": ["NUSD", "USDX"],
                        }
                    ],
                },
            ],
        }
    )


def classify(registry: Registry, source_chain: int, source_token: str, dest_chain: int, dest_token: str):
    """Classify a transfer described by chain ids and symbols."""
    return classify_route(
        registry,
        TransferRequest(
            source_chain=source_chain,
            source_token=source_token,
            dest_chain=dest_chain,
            dest_token=dest_token,
        ),
    )


class StubBridgeOracle:
    """Bridge oracle charging a flat fee with optional limits, in destination units."""

    def __init__(
        self,
        *,
        fee: int = 0,
        minimum: int = 0,
        maximum: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.fee = fee
        self.minimum = minimum
        self.maximum = maximum
        self.error = error
        self.calls = []

    def quote_bridge(self, token: Asset, source: Network, dest: Network, amount_in: int) -> BridgeQuote:
        self.calls.append((token.symbol, source.chain_id, dest.chain_id, amount_in))
        if self.error is not None:
            raise self.error
        amount = token.rescale(amount_in, source.chain_id, dest.chain_id)
        if amount < self.minimum:
            raise QuoteError(EstimationFailureReason.BELOW_MINIMUM)
        if self.maximum is not None and amount > self.maximum:
            raise QuoteError(EstimationFailureReason.ABOVE_MAXIMUM)
        fee = min(self.fee, amount)
        return BridgeQuote(amount_out=amount - fee, fee=fee)


class StubPoolOracle:
    """Pool oracle swapping at par (adjusted for decimals) minus a rate in basis points."""

    def __init__(self, *, bps: int = 0, errors: Optional[Dict[int, Exception]] = None) -> None:
        self.bps = bps
        self.errors = errors or {}
        self.calls = []

    def quote_swap(self, network: Network, token_in: Asset, token_out: Asset, amount_in: int) -> int:
        self.calls.append((network.chain_id, token_in.symbol, token_out.symbol, amount_in))
        if network.chain_id in self.errors:
            raise self.errors[network.chain_id]
        amount = rescale_amount(
            amount_in,
            token_in.decimals_on(network.chain_id),
            token_out.decimals_on(network.chain_id),
        )
        return amount * (10_000 - self.bps) // 10_000

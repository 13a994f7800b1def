"""CLI entrypoint for classifying, quoting and preparing bridge transfers."""

from __future__ import annotations

import argparse
import json
import sys
import time
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from web3 import Web3

from bridger.config import BridgerConfig, ConfigError, load_config, load_registry
from bridger.core.bridge import approval_spender, build_transaction, read_bridge_version, read_weth_address
from bridger.core.quotes import (
    BridgeConfigOracle,
    Estimate,
    EstimateResult,
    EstimationFailed,
    build_pipeline,
    estimate_output,
)
from bridger.core.registry import Registry
from bridger.core.routes import RouteClassification, TransferRequest, Unsupported, classify_route
from bridger.core.swap import SwapPoolOracle
from bridger.core.tokens import allowance_of, build_approve_transaction
from bridger.core.utils import TransactionPayload, apply_discount, ensure_web3_connected, get_logger
from bridger.core.validation import BuildFailed

LOGGER = get_logger("bridger.cli")

load_dotenv()


@dataclass(frozen=True)
class BuildPlan:
    """Everything a wallet needs to execute a transfer."""

    classification: RouteClassification
    amount_in: int
    amount_out_min: int
    transaction: TransactionPayload
    estimate: Optional[Estimate] = None
    approval: Optional[TransactionPayload] = None


class BridgeRouter:
    """High-level orchestrator over the registry, quote oracles and transaction builder."""

    def __init__(
        self,
        *,
        config: Optional[BridgerConfig] = None,
        registry: Optional[Registry] = None,
        web3_factory: Optional[Callable[[str], Web3]] = None,
    ) -> None:
        self.config = config
        if registry is None:
            registry = load_registry(config.registry_path if config is not None else None)
        self.registry = registry
        self._web3_factory = web3_factory or self._default_web3_factory
        self._web3: Dict[int, Web3] = {}

    def _default_web3_factory(self, url: str) -> Web3:
        timeout = self._require_config().defaults.api_timeout
        provider = Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}, exception_retry_configuration=None)
        return Web3(provider)

    def _require_config(self) -> BridgerConfig:
        if self.config is None:
            raise ConfigError("This command needs a config file with RPC and fee oracle settings")
        return self.config

    def web3(self, chain_id: int) -> Web3:
        """Return a connected Web3 instance for ``chain_id``, reusing earlier connections."""
        if chain_id not in self._web3:
            rpc_url = self._require_config().chain(chain_id).ensure_rpc_url()
            web3 = self._web3_factory(rpc_url)
            ensure_web3_connected(web3, expected_chain_id=chain_id)
            LOGGER.info("Connected to chain %s", chain_id)
            self._web3[chain_id] = web3
        return self._web3[chain_id]

    def classify(self, request: TransferRequest) -> RouteClassification:
        result = classify_route(self.registry, request)
        if isinstance(result, Unsupported):
            raise ValueError(f"Route not supported: {result}")
        return result

    def estimate(self, classification: RouteClassification, amount_in: int) -> EstimateResult:
        config = self._require_config()
        # Every RPC call in the pipeline gets its own api_timeout.
        rpc_calls = max(sum(stage.rpc_calls for stage in build_pipeline(classification)), 1)
        bridge_oracle = BridgeConfigOracle(
            self.web3(config.fee_oracle.chain_id),
            config.fee_oracle.bridge_config_address,
        )
        pool_oracle = SwapPoolOracle(self.registry, self.web3)
        return estimate_output(
            classification,
            amount_in,
            bridge_oracle=bridge_oracle,
            pool_oracle=pool_oracle,
            deadline=time.monotonic() + config.defaults.api_timeout * rpc_calls,
            zero_below_minimum=config.defaults.zero_below_minimum,
        )

    def build(
        self,
        classification: RouteClassification,
        amount_in: int,
        recipient: str,
        *,
        amount_out_min: Optional[int] = None,
        approve: bool = False,
        sender: Optional[str] = None,
    ) -> BuildPlan:
        """Prepare the transfer call, estimating the minimum output when not given."""
        config = self._require_config()

        estimate = None
        if amount_out_min is None:
            result = self.estimate(classification, amount_in)
            if isinstance(result, EstimationFailed):
                raise ValueError(f"Estimate failed: {result}")
            estimate = result
            amount_out_min = apply_discount(estimate.amount_out, Decimal(str(config.defaults.slippage_tolerance)))
            LOGGER.info("Estimated %s out, minimum after slippage %s", estimate.amount_out, amount_out_min)

        transaction = build_transaction(
            classification,
            amount_in,
            amount_out_min,
            recipient,
            deadline_seconds=config.defaults.deadline_seconds,
        )
        if isinstance(transaction, BuildFailed):
            raise ValueError(f"Cannot build transaction: {transaction}")

        approval = None
        spender = approval_spender(classification) if approve else None
        if spender is not None:
            approval = self._approval_for(classification, amount_in, spender, sender)

        return BuildPlan(
            classification=classification,
            amount_in=amount_in,
            amount_out_min=amount_out_min,
            transaction=transaction,
            estimate=estimate,
            approval=approval,
        )

    def _approval_for(
        self,
        classification: RouteClassification,
        amount_in: int,
        spender: str,
        sender: Optional[str],
    ) -> Optional[TransactionPayload]:
        asset = classification.source_asset
        network = classification.source_network
        if sender is not None:
            current = allowance_of(self.web3(network.chain_id), asset.address_on(network.chain_id), sender, spender)
            if current >= amount_in:
                LOGGER.info("Allowance for %s already covers %s", asset.symbol, amount_in)
                return None
            LOGGER.info("Allowance for %s is %s, approval required", asset.symbol, current)
        return build_approve_transaction(asset=asset, network=network, spender=spender, amount=amount_in)

    def info(self, chain_id: int) -> Dict[str, Any]:
        network = self.registry.network(chain_id)
        web3 = self.web3(chain_id)
        return {
            "chain_id": network.chain_id,
            "name": network.name,
            "bridge": network.bridge_address,
            "bridge_version": read_bridge_version(web3, network),
            "weth_address": read_weth_address(web3, network),
        }


def _classification_to_dict(classification: RouteClassification) -> Dict[str, Any]:
    def leg(swap) -> Optional[Dict[str, Any]]:
        if swap is None:
            return None
        return {
            "pool": swap.pool.address,
            "token_in": swap.token_in.symbol,
            "token_out": swap.token_out.symbol,
            "index_from": swap.index_from,
            "index_to": swap.index_to,
        }

    bridge_token = classification.bridge_token
    return {
        "source": f"{classification.source_asset.symbol}@{classification.source_network.name}",
        "dest": f"{classification.dest_asset.symbol}@{classification.dest_network.name}",
        "kind": classification.kind.value,
        "bridge_token": bridge_token.symbol if bridge_token is not None else None,
        "action": classification.action.value,
        "native_in": classification.native_in,
        "native_out": classification.native_out,
        "local_swap": leg(classification.local_swap),
        "remote_swap": leg(classification.remote_swap),
    }


def _estimate_to_dict(classification: RouteClassification, estimate: Estimate) -> Dict[str, Any]:
    dest = classification.dest_asset
    return {
        "amount_out": str(estimate.amount_out),
        "amount_out_formatted": str(dest.from_wei(estimate.amount_out, classification.dest_network.chain_id)),
        "bridge_fee": str(estimate.bridge_fee),
        "stages": [
            {"name": stage.name, "amount_in": str(stage.amount_in), "amount_out": str(stage.amount_out)}
            for stage in estimate.stages
        ],
    }


def _payload_to_dict(payload: TransactionPayload) -> Dict[str, Any]:
    params = payload.to_tx_params()
    params["value"] = str(payload.value)
    params["function"] = payload.function
    return params


def _request_from_args(args: argparse.Namespace) -> TransferRequest:
    return TransferRequest(
        source_chain=args.from_chain,
        source_token=args.from_token,
        dest_chain=args.to_chain,
        dest_token=args.to_token,
    )


def _amount_in(classification: RouteClassification, args: argparse.Namespace) -> int:
    return classification.source_asset.to_wei(args.amount, classification.source_network.chain_id)


def _cmd_classify(router: BridgeRouter, args: argparse.Namespace) -> Dict[str, Any]:
    return _classification_to_dict(router.classify(_request_from_args(args)))


def _cmd_estimate(router: BridgeRouter, args: argparse.Namespace) -> Dict[str, Any]:
    classification = router.classify(_request_from_args(args))
    result = router.estimate(classification, _amount_in(classification, args))
    if isinstance(result, EstimationFailed):
        raise ValueError(f"Estimate failed: {result}")
    return {"route": _classification_to_dict(classification), "estimate": _estimate_to_dict(classification, result)}


def _cmd_build(router: BridgeRouter, args: argparse.Namespace) -> Dict[str, Any]:
    classification = router.classify(_request_from_args(args))
    amount_out_min = None
    if args.min_out is not None:
        amount_out_min = classification.dest_asset.to_wei(args.min_out, classification.dest_network.chain_id)

    plan = router.build(
        classification,
        _amount_in(classification, args),
        args.to,
        amount_out_min=amount_out_min,
        approve=args.approve,
        sender=args.sender,
    )
    output: Dict[str, Any] = {
        "route": _classification_to_dict(classification),
        "amount_in": str(plan.amount_in),
        "amount_out_min": str(plan.amount_out_min),
        "transaction": _payload_to_dict(plan.transaction),
    }
    if plan.estimate is not None:
        output["estimate"] = _estimate_to_dict(classification, plan.estimate)
    if plan.approval is not None:
        output["approval"] = _payload_to_dict(plan.approval)
    return output


def _cmd_info(router: BridgeRouter, args: argparse.Namespace) -> Dict[str, Any]:
    return router.info(args.chain)


_COMMANDS = {
    "classify": _cmd_classify,
    "estimate": _cmd_estimate,
    "build": _cmd_build,
    "info": _cmd_info,
}


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve and prepare cross-network bridge transfers")
    parser.add_argument("--config", default="config.json", help="Path to the settings file")
    parser.add_argument("--registry", help="Path to a registry JSON overriding the packaged one")

    route = argparse.ArgumentParser(add_help=False)
    route.add_argument("from_chain", type=int, help="Source chain id")
    route.add_argument("from_token", help="Source asset symbol")
    route.add_argument("to_chain", type=int, help="Destination chain id")
    route.add_argument("to_token", help="Destination asset symbol")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("classify", parents=[route], help="Show the route strategy")

    estimate = subparsers.add_parser("estimate", parents=[route], help="Quote the amount received")
    estimate.add_argument("--amount", required=True, help="Amount to send in token units (e.g. 1.5)")

    build = subparsers.add_parser("build", parents=[route], help="Prepare the unsigned transaction")
    build.add_argument("--amount", required=True, help="Amount to send in token units (e.g. 1.5)")
    build.add_argument("--to", required=True, help="Recipient address on the destination chain")
    build.add_argument("--min-out", help="Minimum amount received; estimated with slippage when omitted")
    build.add_argument("--approve", action="store_true", help="Include an ERC20 approve transaction if needed")
    build.add_argument("--sender", help="Sender address used to check the existing allowance")

    info = subparsers.add_parser("info", help="Read bridge contract details for a chain")
    info.add_argument("chain", type=int, help="Chain id")
    return parser.parse_args(argv)


def _router_from_args(args: argparse.Namespace) -> BridgeRouter:
    config_path = Path(args.config)
    config = None
    if args.command != "classify" or config_path.exists():
        config = load_config(config_path)

    registry = load_registry(Path(args.registry)) if args.registry else None
    return BridgeRouter(config=config, registry=registry)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    try:
        router = _router_from_args(args)
        result = _COMMANDS[args.command](router, args)
    except Exception as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)

    print(json.dumps(result, indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()

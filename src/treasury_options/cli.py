"""Treasury options CLI: command-line interface for the options engine.

Usage:
    treasury-options status
    treasury-options sample --seed 12345 --count 5
    treasury-options simulate --amount 1000 --max-discount 20 --recipients 3 --out batch.json
    treasury-options verify-claim --batch batch.json --index 0
    treasury-options check-policy
    treasury-options anchor --batch batch.json
"""

from __future__ import annotations

import argparse
import hashlib
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from treasury_options.collaborators.authority import RoleGate
from treasury_options.collaborators.claim_tokens import InMemoryClaimTokenStore
from treasury_options.collaborators.randomness import QueuedRandomnessProvider
from treasury_options.collaborators.treasury import InMemoryTreasury
from treasury_options.crypto.commitment import get_scheme
from treasury_options.distribution.rarity import rarity_score
from treasury_options.models.claim import Allocation
from treasury_options.persistence.event_log import EventLog
from treasury_options.policy.resolver import PolicyResolver
from treasury_options.service import OptionsService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"

OPERATOR = "operator"


def _make_service(
    config_dir: Path,
    event_path: Optional[Path] = None,
) -> tuple[OptionsService, InMemoryTreasury, QueuedRandomnessProvider]:
    """Create a service wired to in-memory collaborators."""
    resolver = PolicyResolver.from_config_dir(config_dir)
    treasury = InMemoryTreasury(governance_token=resolver.governance_token())
    gate = RoleGate()
    gate.grant(OPERATOR)
    provider = QueuedRandomnessProvider(resolver.oracle_address())
    service = OptionsService(
        resolver,
        treasury,
        gate,
        provider,
        InMemoryClaimTokenStore(),
        event_log=EventLog(storage_path=event_path),
    )
    return service, treasury, provider


def _load_batch(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _seeded_word(seed: str, index: int) -> int:
    digest = hashlib.sha256(f"{seed}:{index}".encode("utf-8")).digest()
    return int.from_bytes(digest, "big")


def cmd_status(args: argparse.Namespace) -> int:
    service, _, _ = _make_service(args.config)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_sample(args: argparse.Namespace) -> int:
    """Show the share and discount the active ladder gives some seeds."""
    resolver = PolicyResolver.from_config_dir(args.config)
    calculator = resolver.build_calculator()
    curve = resolver.rarity_curve()
    rows = []
    for i in range(args.count):
        word = _seeded_word(args.seed, i)
        share = calculator.get_share(word)
        discount = calculator.get_discount(word)
        rows.append({
            "index": i,
            "share": share,
            "discount": discount,
            "rarity": rarity_score(share, discount, calculator.max_discount, calculator, curve),
        })
    print(json.dumps({"calculator": calculator.describe(), "samples": rows}, indent=2))
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run one pool through generation and claiming in memory."""
    service, treasury, provider = _make_service(args.config, args.events)
    now = datetime.now(timezone.utc)

    treasury.deposit(args.asset, args.amount)
    created = service.create_pool(
        OPERATOR, args.asset, args.amount, args.max_discount,
        expiry=now + timedelta(days=args.days),
    )
    if not created.success:
        print(f"Failed: {'; '.join(created.errors)}", file=sys.stderr)
        return 1
    pool_id = created.data["pool_id"]

    funded = service.deposit_fee(OPERATOR, args.fee_deposit)
    if not funded.success:
        print(f"Failed: {'; '.join(funded.errors)}", file=sys.stderr)
        return 1
    recipients = [f"recipient-{i}" for i in range(args.recipients)]
    result = service.generate_allocations(OPERATOR, pool_id, recipients)
    if not result.success:
        print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
        return 1
    request_id = result.data["request_id"]

    if args.seed is None:
        fulfilled = provider.fulfil_next()
    else:
        words = [_seeded_word(args.seed, i) for i in range(len(recipients))]
        fulfilled = provider.deliver(request_id, words)
    if not fulfilled.success:
        print(f"Failed: {'; '.join(fulfilled.errors)}", file=sys.stderr)
        return 1

    batch = service.get_batch(request_id)
    claimed = 0
    for index, allocation in enumerate(batch.allocations):
        outcome = service.claim(
            allocation.recipient, allocation, index, batch.proofs[index].path,
        )
        if outcome.success:
            claimed += 1

    if args.out is not None:
        batch.write(args.out)
        print(f"Batch written to {args.out}")
    print(json.dumps({
        "pool_id": pool_id,
        "request_id": request_id,
        "commitment": batch.commitment,
        "allocations": [a.to_dict() for a in batch.allocations],
        "total_amount": batch.total_amount,
        "claimed": claimed,
    }, indent=2, default=str))
    return 0


def cmd_verify_claim(args: argparse.Namespace) -> int:
    """Check one published claim against its batch's commitment."""
    document = _load_batch(args.batch)
    claims = document["claims"]
    if not 0 <= args.index < len(claims):
        print(f"FAIL: index {args.index} outside batch of {len(claims)}", file=sys.stderr)
        return 1

    entry = claims[args.index]
    scheme = get_scheme(document["scheme"])
    leaf = Allocation.from_dict(entry["leaf"])
    if scheme.verify(document["commitment"], leaf, entry["leaf_index"], entry["proof"]):
        print(f"OK: {leaf.recipient} allocated {leaf.amount} at discount {leaf.discount}")
        return 0
    print(f"FAIL: proof for leaf {args.index} does not match commitment", file=sys.stderr)
    return 1


def cmd_check_policy(args: argparse.Namespace) -> int:
    """Load the policy and run its invariant checks."""
    try:
        resolver = PolicyResolver.from_config_dir(args.config)
    except (OSError, ValueError) as e:
        print(f"FAIL: {e}", file=sys.stderr)
        return 1
    calculator = resolver.build_calculator()
    print(
        f"Policy OK: ceiling={resolver.max_discount_ceiling()} "
        f"scheme={resolver.commitment_scheme().name} "
        f"ladder={calculator.describe()['max_share']} buckets"
    )
    return 0


def cmd_anchor(args: argparse.Namespace) -> int:
    """Anchor a published batch root on chain (reads RPC_URL and PRIVATE_KEY)."""
    from dotenv import load_dotenv
    from treasury_options.crypto.anchor import anchor_to_chain

    load_dotenv(args.env_file)
    rpc_url = os.getenv("RPC_URL")
    private_key = os.getenv("PRIVATE_KEY")
    if not rpc_url or not private_key:
        print("ERROR: RPC_URL and PRIVATE_KEY must be set (environment or .env)", file=sys.stderr)
        return 1

    document = _load_batch(args.batch)
    record = anchor_to_chain(
        pool_id=int(document["pool_id"]),
        commitment=document["commitment"],
        rpc_url=rpc_url,
        private_key=private_key,
        chain_id=args.chain_id,
    )
    print(json.dumps({
        "pool_id": record.pool_id,
        "commitment": record.commitment,
        "tx_hash": record.tx_hash,
        "block_number": record.block_number,
        "chain_id": record.chain_id,
        "timestamp_utc": record.timestamp_utc,
        "explorer_url": record.explorer_url,
    }, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treasury-options",
        description="Treasury options allocation and redemption engine",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable info logging")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show engine status")

    # sample
    p_sample = sub.add_parser("sample", help="Sample the distribution ladder")
    p_sample.add_argument("--seed", required=True, help="Seed string")
    p_sample.add_argument("--count", type=int, default=10, help="Samples (default: 10)")

    # simulate
    p_sim = sub.add_parser("simulate", help="Run a pool through generation and claims")
    p_sim.add_argument("--asset", default="WETH", help="Pool asset (default: WETH)")
    p_sim.add_argument("--amount", type=int, default=1000, help="Pool size in units")
    p_sim.add_argument("--max-discount", type=int, default=20, help="Pool discount ceiling")
    p_sim.add_argument("--days", type=int, default=30, help="Days until expiry")
    p_sim.add_argument("--recipients", type=int, default=3, help="Number of recipients")
    p_sim.add_argument("--fee-deposit", default="10", help="Fee balance to fund (Decimal)")
    p_sim.add_argument("--seed", help="Deterministic seed for the random words")
    p_sim.add_argument("--out", type=Path, help="Write the published batch JSON here")
    p_sim.add_argument("--events", type=Path, help="Append the audit trail to this JSONL file")

    # verify-claim
    p_verify = sub.add_parser("verify-claim", help="Verify a claim in a published batch")
    p_verify.add_argument("--batch", type=Path, required=True, help="Batch JSON file")
    p_verify.add_argument("--index", type=int, required=True, help="Leaf index")

    # check-policy
    sub.add_parser("check-policy", help="Validate the options policy")

    # anchor
    p_anchor = sub.add_parser("anchor", help="Anchor a batch commitment on chain")
    p_anchor.add_argument("--batch", type=Path, required=True, help="Batch JSON file")
    p_anchor.add_argument("--chain-id", type=int, default=11155111, help="EVM chain ID")
    p_anchor.add_argument("--env-file", type=Path, default=Path(".env"), help="dotenv file")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "sample": cmd_sample,
        "simulate": cmd_simulate,
        "verify-claim": cmd_verify_claim,
        "check-policy": cmd_check_policy,
        "anchor": cmd_anchor,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())

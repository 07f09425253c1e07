"""Allocation generator: turns fulfilled random words into a committed batch.

For each (recipient, word) pair of a fulfilled request:
    share    = calculator.get_share(word)
    discount = bound(calculator.get_discount(word)) onto pool.max_discount
    amount   = min(share, uncommitted pool balance)
    rarity   = how common (amount, discount) is under the ladder

Recipients whose amount would be zero (the pool is fully committed) are
dropped from the batch. The batch is then committed as a single Merkle
root stored against the pool; individual allocations are never stored,
only published off-chain with their inclusion proofs.

The batch total is checked against amount_remaining and amount_initial
before the root is stored. A failure there is an invariant violation:
upstream validation in the orchestrator is expected to make it
impossible.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from treasury_options.crypto.commitment import CommitmentScheme
from treasury_options.crypto.merkle import MerkleProof
from treasury_options.distribution.ladder import DistributionCalculator, bound_discount
from treasury_options.distribution.rarity import RarityCurve, RarityScorer
from treasury_options.errors import InvariantViolation
from treasury_options.models.claim import Allocation
from treasury_options.models.pool import Pool, RandomnessRequest
from treasury_options.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationBatch:
    """A committed batch and everything needed to publish it."""
    pool_id: int
    request_id: int
    scheme: str
    commitment: str
    allocations: tuple[Allocation, ...]
    rarities: tuple[int, ...]
    proofs: tuple[MerkleProof, ...]

    @property
    def total_amount(self) -> int:
        return sum(a.amount for a in self.allocations)

    @property
    def leaf_count(self) -> int:
        return len(self.allocations)

    def proof_for(self, recipient: str) -> Optional[tuple[int, Allocation, MerkleProof]]:
        """Return (leaf_index, allocation, proof) for a recipient, or None."""
        for index, allocation in enumerate(self.allocations):
            if allocation.recipient == recipient:
                return index, allocation, self.proofs[index]
        return None

    def to_document(self) -> dict[str, Any]:
        """Publication document: root plus one entry per recipient."""
        return {
            "pool_id": self.pool_id,
            "request_id": self.request_id,
            "scheme": self.scheme,
            "commitment": self.commitment,
            "total_amount": self.total_amount,
            "claims": [
                {
                    "leaf_index": index,
                    "leaf": allocation.to_dict(),
                    "rarity": self.rarities[index],
                    "proof": list(self.proofs[index].path),
                }
                for index, allocation in enumerate(self.allocations)
            ],
        }

    def write(self, path: Path) -> None:
        path.write_text(
            json.dumps(self.to_document(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )


class AllocationGenerator:
    """Builds and commits allocation batches for fulfilled requests.

    Usage:
        generator = AllocationGenerator(calculator, scheme, curve, events)
        batch = generator.generate(pool, request)
        batch.proof_for("alice")
    """

    def __init__(
        self,
        calculator: DistributionCalculator,
        scheme: CommitmentScheme,
        rarity_curve: RarityCurve,
        events: EventLog,
    ) -> None:
        self._scorer = RarityScorer(calculator, rarity_curve)
        self._scheme = scheme
        self._events = events

    @property
    def calculator(self) -> DistributionCalculator:
        return self._scorer.calculator

    @property
    def scorer(self) -> RarityScorer:
        return self._scorer

    def set_calculator(self, calculator: DistributionCalculator) -> None:
        """Swap the active calculator. The old one is left untouched."""
        self._scorer.set_calculator(calculator)

    def generate(
        self,
        pool: Pool,
        request: RandomnessRequest,
        actor_id: str = "system",
        now: Optional[datetime] = None,
    ) -> AllocationBatch:
        """Derive allocations from the request's words and commit them."""
        if now is None:
            now = datetime.now(timezone.utc)
        if len(request.random_words) != len(request.recipients):
            raise InvariantViolation(
                f"Request {request.request_id} has {len(request.random_words)} words "
                f"for {len(request.recipients)} recipients"
            )

        calculator = self._scorer.calculator
        uncommitted = pool.amount_initial - pool.amount_committed
        allocations: list[Allocation] = []
        rarities: list[int] = []

        for recipient, word in zip(request.recipients, request.random_words):
            share = calculator.get_share(word)
            discount = bound_discount(
                calculator.get_discount(word), calculator.max_discount, pool.max_discount
            )
            amount = min(share, uncommitted)
            if amount <= 0:
                logger.warning(
                    "Pool %s fully committed; dropping recipient %s from request %s",
                    pool.pool_id, recipient, request.request_id,
                )
                continue
            uncommitted -= amount
            allocations.append(
                Allocation(
                    recipient=recipient,
                    pool_id=pool.pool_id,
                    amount=amount,
                    discount=discount,
                )
            )
            rarities.append(self._scorer.score(amount, discount, pool.max_discount))

        total = sum(a.amount for a in allocations)
        if total > pool.amount_remaining:
            raise InvariantViolation(
                f"Batch total {total} exceeds pool {pool.pool_id} remaining "
                f"{pool.amount_remaining}"
            )
        if pool.amount_committed + total > pool.amount_initial:
            raise InvariantViolation(
                f"Committed total {pool.amount_committed + total} would exceed pool "
                f"{pool.pool_id} initial {pool.amount_initial}"
            )

        tree = self._scheme.build(allocations)
        root = tree.root
        if root in pool.commitments:
            raise InvariantViolation(f"Commitment {root} already published for pool {pool.pool_id}")
        proofs = tuple(tree.inclusion_proof(i) for i in range(tree.leaf_count))

        if allocations:
            pool.commitments[root] = len(allocations)
            pool.amount_committed += total
            self._events.record(
                EventKind.ALLOCATIONS_COMMITTED,
                actor_id,
                {
                    "pool_id": pool.pool_id,
                    "commitment": root,
                    "request_id": request.request_id,
                    "leaf_count": len(allocations),
                    "total_amount": total,
                },
                now=now,
            )
            logger.info(
                "Committed %d allocations (%d units) for pool %s: %s",
                len(allocations), total, pool.pool_id, root,
            )

        return AllocationBatch(
            pool_id=pool.pool_id,
            request_id=request.request_id,
            scheme=self._scheme.name,
            commitment=root,
            allocations=tuple(allocations),
            rarities=tuple(rarities),
            proofs=proofs,
        )

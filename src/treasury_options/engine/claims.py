"""Claim/mint gate: turns a published allocation into a claim token.

A recipient presents the leaf they were allocated, its index in the
batch and the inclusion proof. The gate:
1. Checks the pool is open and not expired.
2. Checks the caller is the leaf's recipient.
3. Finds a commitment of the pool that the proof verifies against.
4. Refuses a (commitment, leaf_index) pair that was already consumed.
5. Marks the pair consumed and mints the token.

Claiming does not debit the pool. A claim is a right; the pool is only
debited when the right is exercised at redemption.

Consumed leaves are tracked as one integer bitmap per commitment root.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from treasury_options.collaborators.claim_tokens import ClaimTokenStore
from treasury_options.crypto.commitment import CommitmentScheme
from treasury_options.distribution.rarity import RarityScorer
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import (
    InvalidProof,
    LeafAlreadyConsumed,
    NotRecipient,
    PoolClosedError,
    PoolExpired,
)
from treasury_options.models.claim import Allocation, ClaimAttributes
from treasury_options.persistence.event_log import EventKind, EventLog


class ClaimGate:
    """Verifies membership proofs and mints claim tokens.

    Usage:
        gate = ClaimGate(registry, token_store, scheme, generator.scorer, events)
        index, leaf, proof = batch.proof_for("alice")
        token_id = gate.claim("alice", leaf, index, proof.path)
    """

    def __init__(
        self,
        registry: PoolRegistry,
        token_store: ClaimTokenStore,
        scheme: CommitmentScheme,
        scorer: RarityScorer,
        events: EventLog,
    ) -> None:
        self._registry = registry
        self._token_store = token_store
        self._scheme = scheme
        self._scorer = scorer
        self._events = events
        self._consumed: dict[str, int] = {}

    def is_consumed(self, commitment: str, leaf_index: int) -> bool:
        return bool(self._consumed.get(commitment, 0) >> leaf_index & 1)

    def claim(
        self,
        caller: str,
        leaf: Allocation,
        leaf_index: int,
        proof: Sequence[str],
        now: Optional[datetime] = None,
    ) -> int:
        """Verify a leaf and mint its claim token. Returns the token id."""
        if now is None:
            now = datetime.now(timezone.utc)
        pool = self._registry.require_pool(leaf.pool_id)

        if not pool.is_open:
            raise PoolClosedError(f"Pool {pool.pool_id} is {pool.state.value}")
        if pool.is_expired(now):
            raise PoolExpired(f"Pool {pool.pool_id} expired at {pool.expiry.isoformat()}")
        if not self._same_recipient(caller, leaf.recipient):
            raise NotRecipient(f"{caller} is not the recipient of this allocation")

        commitment = self._matching_commitment(pool.commitments, leaf, leaf_index, proof)
        if commitment is None:
            raise InvalidProof(
                f"Proof for leaf {leaf_index} does not match any commitment of pool "
                f"{pool.pool_id}"
            )
        if self.is_consumed(commitment, leaf_index):
            raise LeafAlreadyConsumed(
                f"Leaf {leaf_index} of commitment {commitment} already claimed"
            )

        attributes = ClaimAttributes(
            allocation=leaf.amount,
            reward_amount=leaf.amount,
            discount=leaf.discount,
            rarity=self._scorer.score(leaf.amount, leaf.discount, pool.max_discount),
            pool_id=pool.pool_id,
        )

        previous = self._consumed.get(commitment, 0)
        self._consumed[commitment] = previous | (1 << leaf_index)
        try:
            token_id = self._token_store.mint(caller, attributes.pack())
        except Exception:
            self._consumed[commitment] = previous
            raise

        self._events.record(
            EventKind.CLAIM_MINTED,
            caller,
            {
                "token_id": token_id,
                "pool_id": pool.pool_id,
                "commitment": commitment,
                "leaf_index": leaf_index,
                "amount": leaf.amount,
                "discount": leaf.discount,
                "rarity": attributes.rarity,
            },
            now=now,
        )
        return token_id

    def _matching_commitment(
        self,
        commitments: dict[str, int],
        leaf: Allocation,
        leaf_index: int,
        proof: Sequence[str],
    ) -> Optional[str]:
        for root, leaf_count in reversed(commitments.items()):
            if not 0 <= leaf_index < leaf_count:
                continue
            if self._scheme.verify(root, leaf, leaf_index, proof):
                return root
        return None

    def _same_recipient(self, caller: str, recipient: str) -> bool:
        try:
            return (
                self._scheme.normalize_recipient(caller)
                == self._scheme.normalize_recipient(recipient)
            )
        except ValueError:
            return False

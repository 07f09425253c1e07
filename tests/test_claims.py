"""Tests for the claim/mint gate."""

from dataclasses import replace

import pytest

from conftest import ADMIN, EXPIRY, NOW, fulfilled_request
from treasury_options.collaborators.claim_tokens import InMemoryClaimTokenStore
from treasury_options.crypto.commitment import Sha256CommitmentScheme
from treasury_options.distribution.ladder import UniformDistributionCalculator
from treasury_options.engine.claims import ClaimGate
from treasury_options.engine.generator import AllocationBatch, AllocationGenerator
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import (
    InvalidProof,
    LeafAlreadyConsumed,
    NotRecipient,
    PoolClosedError,
    PoolExpired,
    PoolNotFound,
)
from treasury_options.models.claim import ClaimAttributes
from treasury_options.models.pool import Pool
from treasury_options.persistence.event_log import EventKind, EventLog


RECIPIENTS = ["alice", "bob", "carol"]


@pytest.fixture
def batch(generator: AllocationGenerator, pool: Pool) -> AllocationBatch:
    return generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)


class _FailingMintStore(InMemoryClaimTokenStore):
    def mint(self, owner: str, packed_attributes: int) -> int:
        raise RuntimeError("token contract unavailable")


class TestClaim:
    def test_claim_mints_token(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
        tokens: InMemoryClaimTokenStore, events: EventLog, pool: Pool,
    ) -> None:
        index, leaf, proof = batch.proof_for("alice")
        token_id = claim_gate.claim("alice", leaf, index, proof.path, now=NOW)

        assert tokens.owner_of(token_id) == "alice"
        attrs = ClaimAttributes.unpack(tokens.attributes_of(token_id))
        assert attrs == ClaimAttributes(
            allocation=50, reward_amount=50, discount=5, rarity=100, pool_id=0,
        )
        assert events.count_of(EventKind.CLAIM_MINTED) == 1
        assert pool.amount_remaining == 1000  # claiming debits nothing

    def test_all_leaves_claimable(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
    ) -> None:
        token_ids = []
        for index, leaf in enumerate(batch.allocations):
            token_ids.append(
                claim_gate.claim(leaf.recipient, leaf, index, batch.proofs[index].path, now=NOW)
            )
        assert token_ids == [1, 2, 3]

    def test_claim_succeeds_exactly_once(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
        tokens: InMemoryClaimTokenStore,
    ) -> None:
        index, leaf, proof = batch.proof_for("alice")
        claim_gate.claim("alice", leaf, index, proof.path, now=NOW)
        assert claim_gate.is_consumed(batch.commitment, index)
        with pytest.raises(LeafAlreadyConsumed):
            claim_gate.claim("alice", leaf, index, proof.path, now=NOW)
        assert tokens.tokens_of("alice") == [1]

    def test_caller_must_be_recipient(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
    ) -> None:
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(NotRecipient):
            claim_gate.claim("bob", leaf, index, proof.path, now=NOW)
        assert not claim_gate.is_consumed(batch.commitment, index)

    def test_tampered_leaf_rejected(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
    ) -> None:
        index, leaf, proof = batch.proof_for("bob")
        with pytest.raises(InvalidProof):
            claim_gate.claim("bob", replace(leaf, amount=900), index, proof.path, now=NOW)

    def test_wrong_index_rejected(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
    ) -> None:
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(InvalidProof):
            claim_gate.claim("alice", leaf, index + 1, proof.path, now=NOW)

    def test_padding_index_beyond_batch_rejected(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
        scheme: Sha256CommitmentScheme,
    ) -> None:
        """Index 3 of a 3-leaf tree folds to the root but is not a real leaf."""
        index, leaf, proof = batch.proof_for("carol")
        assert scheme.verify(batch.commitment, leaf, 3, proof.path)
        claim_gate.claim("carol", leaf, index, proof.path, now=NOW)
        with pytest.raises(InvalidProof):
            claim_gate.claim("carol", leaf, 3, proof.path, now=NOW)

    def test_proof_never_verifies_against_other_pool(
        self, claim_gate: ClaimGate, batch: AllocationBatch,
        generator: AllocationGenerator, registry: PoolRegistry,
        scheme: Sha256CommitmentScheme,
    ) -> None:
        other = registry.create_pool(ADMIN, "WETH", 1000, 20, EXPIRY, now=NOW)
        other_batch = generator.generate(
            other, fulfilled_request(other, RECIPIENTS, [0, 1, 2], request_id=2), now=NOW,
        )
        index, leaf, proof = batch.proof_for("alice")

        assert not scheme.verify(other_batch.commitment, leaf, index, proof.path)
        with pytest.raises(InvalidProof):
            claim_gate.claim(
                "alice", replace(leaf, pool_id=other.pool_id), index, proof.path, now=NOW,
            )

    def test_expired_pool(self, claim_gate: ClaimGate, batch: AllocationBatch) -> None:
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(PoolExpired):
            claim_gate.claim("alice", leaf, index, proof.path, now=EXPIRY)

    def test_withdrawn_pool(
        self, claim_gate: ClaimGate, batch: AllocationBatch, registry: PoolRegistry,
    ) -> None:
        registry.withdraw(ADMIN, batch.pool_id, now=EXPIRY)
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(PoolClosedError):
            claim_gate.claim("alice", leaf, index, proof.path, now=NOW)

    def test_unknown_pool(self, claim_gate: ClaimGate, batch: AllocationBatch) -> None:
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(PoolNotFound):
            claim_gate.claim("alice", replace(leaf, pool_id=9), index, proof.path, now=NOW)

    def test_claims_from_earlier_batch_still_valid(
        self, claim_gate: ClaimGate, generator: AllocationGenerator, pool: Pool,
    ) -> None:
        first = generator.generate(pool, fulfilled_request(pool, ["alice"], [0]), now=NOW)
        generator.generate(pool, fulfilled_request(pool, ["bob"], [1], request_id=2), now=NOW)
        index, leaf, proof = first.proof_for("alice")
        assert claim_gate.claim("alice", leaf, index, proof.path, now=NOW) == 1

    def test_failed_mint_leaves_leaf_unconsumed(
        self, registry: PoolRegistry, batch: AllocationBatch,
        scheme: Sha256CommitmentScheme, generator: AllocationGenerator, events: EventLog,
    ) -> None:
        gate = ClaimGate(registry, _FailingMintStore(), scheme, generator.scorer, events)
        index, leaf, proof = batch.proof_for("alice")
        with pytest.raises(RuntimeError):
            gate.claim("alice", leaf, index, proof.path, now=NOW)
        assert not gate.is_consumed(batch.commitment, index)
        assert events.count_of(EventKind.CLAIM_MINTED) == 0

    def test_minted_rarity_tracks_active_calculator(
        self, claim_gate: ClaimGate, generator: AllocationGenerator,
        batch: AllocationBatch, tokens: InMemoryClaimTokenStore,
    ) -> None:
        # Share 1 and discount 0 are as common as any scripted outcome.
        index, leaf, proof = batch.proof_for("bob")
        assert batch.rarities[index] == 100

        generator.set_calculator(UniformDistributionCalculator(1000))
        token_id = claim_gate.claim("bob", leaf, index, proof.path, now=NOW)
        attrs = ClaimAttributes.unpack(tokens.attributes_of(token_id))
        assert attrs.rarity == generator.scorer.score(leaf.amount, leaf.discount, 20)

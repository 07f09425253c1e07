"""Tests for allocation generation and batch commitment."""

import json
from pathlib import Path

import pytest

from conftest import ADMIN, EXPIRY, NOW, fulfilled_request
from treasury_options.crypto.commitment import Sha256CommitmentScheme
from treasury_options.distribution.ladder import (
    WeightedLadderCalculator,
    bound_discount,
    right_tailed_weights,
)
from treasury_options.distribution.rarity import RarityCurve, rarity_score
from treasury_options.engine.generator import AllocationGenerator
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import InvariantViolation
from treasury_options.models.pool import Pool
from treasury_options.persistence.event_log import EventKind, EventLog


RECIPIENTS = ["alice", "bob", "carol"]


class TestBoundDiscount:
    def test_equal_ceilings_are_identity(self) -> None:
        for raw in range(21):
            assert bound_discount(raw, 20, 20) == raw

    def test_scales_down(self) -> None:
        assert bound_discount(19, 20, 10) == 9
        assert bound_discount(20, 20, 10) == 10

    def test_clamps_raw(self) -> None:
        assert bound_discount(50, 20, 20) == 20
        assert bound_discount(-3, 20, 20) == 0

    def test_zero_ceiling(self) -> None:
        assert bound_discount(7, 20, 0) == 0
        assert bound_discount(7, 0, 20) == 0


class TestGenerate:
    def test_amounts_capped_by_uncommitted(
        self, generator: AllocationGenerator, pool: Pool,
    ) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        assert [a.amount for a in batch.allocations] == [50, 1, 949]
        assert [a.discount for a in batch.allocations] == [5, 0, 19]
        assert batch.total_amount == 1000
        assert pool.amount_committed == 1000
        assert pool.amount_remaining == 1000  # nothing debited until redemption

    def test_commitment_stored_with_leaf_count(
        self, generator: AllocationGenerator, pool: Pool, events: EventLog,
    ) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        assert pool.commitments == {batch.commitment: 3}
        assert pool.commitment == batch.commitment
        event = events.events(EventKind.ALLOCATIONS_COMMITTED)[0]
        assert event.payload["pool_id"] == pool.pool_id
        assert event.payload["commitment"] == batch.commitment

    def test_rarity_per_allocation(self, generator: AllocationGenerator, pool: Pool) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        for allocation, rarity in zip(batch.allocations, batch.rarities):
            assert rarity == rarity_score(
                allocation.amount, allocation.discount, 20, generator.calculator,
            )

    def test_proofs_verify(
        self, generator: AllocationGenerator, pool: Pool, scheme: Sha256CommitmentScheme,
    ) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        for index, allocation in enumerate(batch.allocations):
            assert scheme.verify(batch.commitment, allocation, index, batch.proofs[index].path)

    def test_proof_for_recipient(self, generator: AllocationGenerator, pool: Pool) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        index, allocation, proof = batch.proof_for("bob")
        assert index == 1
        assert allocation.amount == 1
        assert proof.root == batch.commitment
        assert batch.proof_for("mallory") is None

    def test_zero_amount_recipients_dropped(
        self, generator: AllocationGenerator, registry: PoolRegistry,
    ) -> None:
        small = registry.create_pool(ADMIN, "WETH", 40, 20, EXPIRY, now=NOW)
        batch = generator.generate(small, fulfilled_request(small, RECIPIENTS, [0, 1, 2]), now=NOW)
        assert [a.recipient for a in batch.allocations] == ["alice"]
        assert batch.allocations[0].amount == 40
        assert small.commitments[batch.commitment] == 1

    def test_discount_bounded_by_pool(
        self, generator: AllocationGenerator, registry: PoolRegistry,
    ) -> None:
        shallow = registry.create_pool(ADMIN, "WETH", 1000, 10, EXPIRY, now=NOW)
        batch = generator.generate(
            shallow, fulfilled_request(shallow, RECIPIENTS, [0, 1, 2]), now=NOW,
        )
        assert [a.discount for a in batch.allocations] == [2, 0, 9]

    def test_real_ladder_respects_pool_ceiling(
        self, scheme: Sha256CommitmentScheme, events: EventLog, registry: PoolRegistry,
    ) -> None:
        ladder = WeightedLadderCalculator(right_tailed_weights(100, 10, 4, 25))
        generator = AllocationGenerator(ladder, scheme, RarityCurve(), events)
        pool = registry.create_pool(ADMIN, "WETH", 5000, 15, EXPIRY, now=NOW)
        recipients = [f"r{i}" for i in range(40)]
        words = [i * 7919 + 13 for i in range(40)]
        batch = generator.generate(pool, fulfilled_request(pool, recipients, words), now=NOW)
        assert all(1 <= a.amount for a in batch.allocations)
        assert all(0 <= a.discount <= 15 for a in batch.allocations)
        assert batch.total_amount <= pool.amount_remaining

    def test_second_batch_uses_what_is_left(
        self, generator: AllocationGenerator, pool: Pool,
    ) -> None:
        generator.generate(pool, fulfilled_request(pool, ["alice"], [0]), now=NOW)
        second = generator.generate(
            pool, fulfilled_request(pool, ["bob", "carol"], [1, 2], request_id=2), now=NOW,
        )
        assert [a.amount for a in second.allocations] == [1, 949]
        assert len(pool.commitments) == 2
        assert pool.amount_committed == 1000

    def test_batch_exceeding_remaining_is_invariant_violation(
        self, generator: AllocationGenerator, pool: Pool,
    ) -> None:
        pool.amount_remaining = 10
        with pytest.raises(InvariantViolation):
            generator.generate(pool, fulfilled_request(pool, ["alice"], [0]), now=NOW)
        assert pool.commitments == {}

    def test_mismatched_words_is_invariant_violation(
        self, generator: AllocationGenerator, pool: Pool,
    ) -> None:
        with pytest.raises(InvariantViolation):
            generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0]), now=NOW)


class TestPublication:
    def test_document(self, generator: AllocationGenerator, pool: Pool) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        document = batch.to_document()
        assert document["commitment"] == batch.commitment
        assert document["scheme"] == "sha256"
        assert document["total_amount"] == 1000
        assert [c["leaf_index"] for c in document["claims"]] == [0, 1, 2]
        assert document["claims"][0]["leaf"] == {
            "recipient": "alice", "pool_id": 0, "amount": 50, "discount": 5,
        }

    def test_write(self, generator: AllocationGenerator, pool: Pool, tmp_path: Path) -> None:
        batch = generator.generate(pool, fulfilled_request(pool, RECIPIENTS, [0, 1, 2]), now=NOW)
        path = tmp_path / "batch.json"
        batch.write(path)
        assert json.loads(path.read_text(encoding="utf-8")) == batch.to_document()

    def test_set_calculator(self, generator: AllocationGenerator, pool: Pool) -> None:
        replacement = WeightedLadderCalculator([1])
        generator.set_calculator(replacement)
        batch = generator.generate(pool, fulfilled_request(pool, ["alice"], [12345]), now=NOW)
        assert generator.calculator is replacement
        assert batch.allocations[0].amount == 1

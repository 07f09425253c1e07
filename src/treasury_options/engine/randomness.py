"""Randomness request orchestrator.

Generation is asynchronous. ``generate_allocations`` sends a request to
the randomness provider and locks the pool. Later the provider's oracle
delivers words through ``on_fulfilled``, which marks the request
fulfilled, runs the allocation generator and unlocks the pool.

Request lifecycle:
    PENDING → FULFILLED   (oracle callback, exactly once)
    PENDING → CANCELLED   (administrative override of a stuck request)

The gap between request and fulfilment is the only suspension point in
the engine. It has no timeout. If the oracle never answers, the pool
stays locked until an administrator calls ``clear_pending_request``.

Fees are paid from a pre-funded balance the orchestrator tracks.
Anyone may top it up with ``deposit_fee``. The balance is bookkeeping
only: custody of the fee token sits with the provider's billing account
outside the engine, and whoever funds that account reports the top-up
here. Each deposit is logged with its sender so the two can be
reconciled.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Union

from treasury_options.collaborators.authority import Capability
from treasury_options.collaborators.randomness import WORD_BITS, RandomnessProvider
from treasury_options.collaborators.treasury import parse_amount
from treasury_options.crypto.commitment import CommitmentScheme
from treasury_options.engine.generator import AllocationBatch, AllocationGenerator
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import (
    InsufficientFeeBalance,
    InvalidAmount,
    InsufficientPoolBalance,
    InvalidFulfillment,
    InvalidRecipients,
    InvariantViolation,
    PoolClosedError,
    PoolExpired,
    PoolNotInitialised,
    RequestNotFound,
    RequestNotPending,
    RequestPending,
    UnauthorizedOracle,
)
from treasury_options.models.pool import RandomnessRequest, RequestState
from treasury_options.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class RandomnessOrchestrator:
    """Matches randomness requests to pools and fulfilments to generation.

    Usage:
        orchestrator = RandomnessOrchestrator(
            registry, provider, generator, scheme, events,
            fee=Decimal("0.25"), fee_low_threshold=Decimal("1"),
        )
        orchestrator.deposit_fee("anyone", Decimal("10"))
        request = orchestrator.generate_allocations("operator", pool_id, recipients)
        # ... later, from the oracle:
        batch = orchestrator.on_fulfilled(oracle, request.request_id, words)
    """

    def __init__(
        self,
        registry: PoolRegistry,
        provider: RandomnessProvider,
        generator: AllocationGenerator,
        scheme: CommitmentScheme,
        events: EventLog,
        fee: Decimal,
        fee_low_threshold: Decimal,
    ) -> None:
        self._registry = registry
        self._provider = provider
        self._generator = generator
        self._scheme = scheme
        self._events = events
        self._fee = fee
        self._fee_low_threshold = fee_low_threshold
        self._fee_balance = Decimal("0")
        self._requests: dict[int, RandomnessRequest] = {}
        self._batches: dict[int, AllocationBatch] = {}

    @property
    def fee(self) -> Decimal:
        return self._fee

    @property
    def fee_balance(self) -> Decimal:
        return self._fee_balance

    def get_request(self, request_id: int) -> Optional[RandomnessRequest]:
        return self._requests.get(request_id)

    def get_batch(self, request_id: int) -> Optional[AllocationBatch]:
        """Published batch for a fulfilled request, if any."""
        return self._batches.get(request_id)

    def batches_for_pool(self, pool_id: int) -> list[AllocationBatch]:
        return [b for b in self._batches.values() if b.pool_id == pool_id]

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def deposit_fee(
        self,
        sender: str,
        amount: Union[Decimal, int, str],
        now: Optional[datetime] = None,
    ) -> Decimal:
        """Record a fee top-up. Permissionless.

        No tokens move here. The caller has already funded the provider's
        billing account and this credits the matching amount to the
        balance that ``generate_allocations`` draws on.
        """
        amount = parse_amount(amount, "Fee deposit")
        if amount <= Decimal("0"):
            raise InvalidAmount(f"Fee deposit must be positive, got {amount}")
        self._fee_balance += amount
        self._events.record(
            EventKind.FEE_BALANCE_INCREASED,
            sender,
            {"sender": sender, "amount": amount, "balance": self._fee_balance},
            now=now,
        )
        return self._fee_balance

    # ------------------------------------------------------------------
    # Request / fulfil
    # ------------------------------------------------------------------

    def generate_allocations(
        self,
        caller: str,
        pool_id: int,
        recipients: Sequence[str],
        now: Optional[datetime] = None,
    ) -> RandomnessRequest:
        """Request random words for one allocation per recipient.

        All checks run before the provider is called, so a rejected
        request leaves no trace.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        self._registry.require_capability(caller, Capability.GENERATE)
        pool = self._registry.require_pool(pool_id)

        if not pool.initialised:
            raise PoolNotInitialised(f"Pool {pool_id} is not initialised")
        if not pool.is_open:
            raise PoolClosedError(f"Pool {pool_id} is {pool.state.value}")
        if pool.is_expired(now):
            raise PoolExpired(f"Pool {pool_id} expired at {pool.expiry.isoformat()}")
        if pool.pending_request_id is not None:
            raise RequestPending(
                f"Pool {pool_id} already has pending request {pool.pending_request_id}"
            )
        if pool.amount_initial - pool.amount_committed <= 0:
            raise InsufficientPoolBalance(f"Pool {pool_id} is fully committed")

        normalized = self._normalize_recipients(recipients)

        if self._fee_balance < self._fee:
            raise InsufficientFeeBalance(
                f"Fee balance {self._fee_balance} below request fee {self._fee}"
            )

        request_id = self._provider.request(self._fee, len(normalized))
        if request_id in self._requests:
            raise InvariantViolation(f"Provider reused request ID {request_id}")

        self._fee_balance -= self._fee
        request = RandomnessRequest(
            request_id=request_id,
            pool_id=pool_id,
            fee_paid=self._fee,
            recipients=normalized,
            requested_utc=now,
        )
        self._requests[request_id] = request
        pool.pending_request_id = request_id

        self._events.record(
            EventKind.RANDOMNESS_REQUESTED,
            caller,
            {
                "pool_id": pool_id,
                "request_id": request_id,
                "word_count": len(normalized),
                "fee": self._fee,
            },
            now=now,
        )
        logger.info(
            "Requested %d words for pool %s (request %s)",
            len(normalized), pool_id, request_id,
        )

        if self._fee_balance < self._fee_low_threshold:
            logger.warning("Randomness fee balance low: %s", self._fee_balance)
            self._events.record(
                EventKind.FEE_BALANCE_LOW,
                caller,
                {"remaining": self._fee_balance},
                now=now,
            )
        return request

    def on_fulfilled(
        self,
        caller: str,
        request_id: int,
        random_words: Sequence[int],
        now: Optional[datetime] = None,
    ) -> AllocationBatch:
        """Oracle callback: record words, generate and commit the batch.

        Once the request is accepted it is fulfilled and the pool unlocked
        whether or not generation succeeds.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if caller != self._provider.oracle_address:
            raise UnauthorizedOracle(f"{caller} is not the randomness oracle")

        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFound(f"Unknown randomness request: {request_id}")
        if request.state != RequestState.PENDING:
            raise RequestNotPending(
                f"Request {request_id} is {request.state.value}, not pending"
            )
        words = tuple(random_words)
        if len(words) != request.word_count:
            raise InvalidFulfillment(
                f"Request {request_id} expects {request.word_count} words, got {len(words)}"
            )
        for word in words:
            if not isinstance(word, int) or not 0 <= word < (1 << WORD_BITS):
                raise InvalidFulfillment(f"Random word out of range: {word!r}")

        pool = self._registry.require_pool(request.pool_id)
        if pool.pending_request_id != request_id:
            raise InvariantViolation(
                f"Pool {pool.pool_id} is locked by {pool.pending_request_id}, "
                f"not request {request_id}"
            )

        request.state = RequestState.FULFILLED
        request.random_words = words
        request.fulfilled_utc = now
        self._events.record(
            EventKind.RANDOMNESS_FULFILLED,
            caller,
            {"pool_id": pool.pool_id, "request_id": request_id},
            now=now,
        )

        try:
            batch = self._generator.generate(pool, request, actor_id=caller, now=now)
        finally:
            pool.pending_request_id = None

        self._batches[request_id] = batch
        return batch

    def clear_pending_request(
        self,
        caller: str,
        pool_id: int,
        now: Optional[datetime] = None,
    ) -> RandomnessRequest:
        """Cancel a stuck request and unlock its pool. Fee is not refunded."""
        if now is None:
            now = datetime.now(timezone.utc)
        self._registry.require_capability(caller, Capability.POOL_ADMIN)
        pool = self._registry.require_pool(pool_id)
        if pool.pending_request_id is None:
            raise RequestNotPending(f"Pool {pool_id} has no pending request")

        request = self._requests[pool.pending_request_id]
        request.state = RequestState.CANCELLED
        pool.pending_request_id = None
        self._events.record(
            EventKind.REQUEST_CLEARED,
            caller,
            {"pool_id": pool_id, "request_id": request.request_id},
            now=now,
        )
        logger.warning("Cleared stuck request %s on pool %s", request.request_id, pool_id)
        return request

    def _normalize_recipients(self, recipients: Sequence[str]) -> tuple[str, ...]:
        if not recipients:
            raise InvalidRecipients("At least one recipient is required")
        normalized: list[str] = []
        for recipient in recipients:
            try:
                normalized.append(self._scheme.normalize_recipient(recipient))
            except ValueError as e:
                raise InvalidRecipients(str(e)) from e
        if len(set(normalized)) != len(normalized):
            raise InvalidRecipients("Recipients must be distinct")
        return tuple(normalized)

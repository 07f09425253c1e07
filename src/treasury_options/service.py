"""Options service: unified facade over the allocation and redemption engines.

This is the primary interface for programmatic access. It wires the
subsystems together and serializes every entry point:
- Pool registry (create, look up, withdraw)
- Randomness orchestration (request, fulfil, fee balance, stuck requests)
- Allocation generation and batch publication
- Claim minting against published commitments
- Redemption ("action") and burning of spent claims
- Administrative configuration (governance sink, distribution calculator)

Caller and authorization errors come back as a failed ServiceResult
carrying the error's stable code. Invariant violations are fatal and
propagate to the host.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence, Union

from treasury_options.collaborators.authority import AuthorizationGate, Capability
from treasury_options.collaborators.claim_tokens import ClaimTokenStore
from treasury_options.collaborators.randomness import RandomnessProvider
from treasury_options.collaborators.treasury import Treasury
from treasury_options.crypto.commitment import CommitmentScheme
from treasury_options.distribution.ladder import DistributionCalculator
from treasury_options.engine.claims import ClaimGate
from treasury_options.engine.generator import AllocationBatch, AllocationGenerator
from treasury_options.engine.randomness import RandomnessOrchestrator
from treasury_options.engine.redemption import RedemptionEngine
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import OptionsError
from treasury_options.models.claim import Allocation, ClaimAttributes
from treasury_options.models.pool import Pool
from treasury_options.persistence.event_log import EventKind, EventLog
from treasury_options.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None


def _failed(error: OptionsError) -> ServiceResult:
    return ServiceResult(success=False, errors=[str(error)], error_code=error.code)


def pool_to_dict(pool: Pool) -> dict[str, Any]:
    return {
        "pool_id": pool.pool_id,
        "asset": pool.asset,
        "amount_initial": pool.amount_initial,
        "amount_remaining": pool.amount_remaining,
        "amount_committed": pool.amount_committed,
        "max_discount": pool.max_discount,
        "expiry": pool.expiry.isoformat(),
        "state": pool.state.value,
        "pending_request_id": pool.pending_request_id,
        "commitments": dict(pool.commitments),
    }


class OptionsService:
    """Unified options engine facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = OptionsService(resolver, treasury, gate, provider, tokens)

        result = service.create_pool("admin", "WETH", 1000, 20, expiry)
        service.deposit_fee("admin", Decimal("5"))
        service.generate_allocations("operator", pool_id, ["alice", "bob"])
        provider.fulfil_next()                 # oracle answers
        batch = service.get_batch(request_id)

        index, leaf, proof = batch.proof_for("alice")
        service.claim("alice", leaf, index, proof.path)
        service.action("alice", token_id, 50, governance_in, 100)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        treasury: Treasury,
        gate: AuthorizationGate,
        provider: RandomnessProvider,
        token_store: ClaimTokenStore,
        event_log: Optional[EventLog] = None,
        calculator: Optional[DistributionCalculator] = None,
        scheme: Optional[CommitmentScheme] = None,
    ) -> None:
        self._resolver = resolver
        self._treasury = treasury
        self._token_store = token_store
        self._event_log = event_log if event_log is not None else EventLog()
        self._scheme = scheme if scheme is not None else resolver.commitment_scheme()
        self._lock = threading.RLock()

        self._registry = PoolRegistry(
            treasury, gate, self._event_log, resolver.max_discount_ceiling(),
        )
        self._generator = AllocationGenerator(
            calculator if calculator is not None else resolver.build_calculator(),
            self._scheme,
            resolver.rarity_curve(),
            self._event_log,
        )
        self._orchestrator = RandomnessOrchestrator(
            self._registry,
            provider,
            self._generator,
            self._scheme,
            self._event_log,
            fee=resolver.randomness_fee(),
            fee_low_threshold=resolver.fee_low_threshold(),
        )
        self._claims = ClaimGate(
            self._registry,
            token_store,
            self._scheme,
            self._generator.scorer,
            self._event_log,
        )
        self._redemption = RedemptionEngine(
            self._registry,
            token_store,
            treasury,
            self._event_log,
            governance_token=resolver.governance_token(),
            sink=resolver.default_sink(),
            places=resolver.required_decimal_places(),
        )
        provider.bind(self.on_fulfilled)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def scheme(self) -> CommitmentScheme:
        return self._scheme

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def create_pool(
        self,
        caller: str,
        asset: str,
        amount: int,
        max_discount: int,
        expiry: datetime,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Register a pool over assets the treasury already holds."""
        with self._lock:
            try:
                pool = self._registry.create_pool(
                    caller, asset, amount, max_discount, expiry, now=now,
                )
            except OptionsError as e:
                return _failed(e)
            logger.info("Created pool %s: %s %s", pool.pool_id, amount, asset)
            return ServiceResult(success=True, data=pool_to_dict(pool))

    def get_pool(self, pool_id: int) -> Optional[Pool]:
        with self._lock:
            return self._registry.get_pool(pool_id)

    def withdraw(
        self,
        caller: str,
        pool_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Close an expired pool and release its remaining reservation."""
        with self._lock:
            try:
                returned = self._registry.require_pool(pool_id).amount_remaining
                pool = self._registry.withdraw(caller, pool_id, now=now)
            except OptionsError as e:
                return _failed(e)
            logger.info("Withdrew pool %s, released %s %s", pool_id, returned, pool.asset)
            data = pool_to_dict(pool)
            data["returned"] = returned
            return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Randomness and generation
    # ------------------------------------------------------------------

    def deposit_fee(
        self,
        sender: str,
        amount: Union[Decimal, int, str],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                balance = self._orchestrator.deposit_fee(sender, amount, now=now)
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(success=True, data={"fee_balance": str(balance)})

    def generate_allocations(
        self,
        caller: str,
        pool_id: int,
        recipients: Sequence[str],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Request randomness for one allocation per recipient."""
        with self._lock:
            try:
                request = self._orchestrator.generate_allocations(
                    caller, pool_id, recipients, now=now,
                )
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(
                success=True,
                data={
                    "request_id": request.request_id,
                    "pool_id": pool_id,
                    "word_count": request.word_count,
                    "fee_balance": str(self._orchestrator.fee_balance),
                },
            )

    def on_fulfilled(
        self,
        caller: str,
        request_id: int,
        random_words: Sequence[int],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Oracle callback. Commits the batch generated from the words."""
        with self._lock:
            try:
                batch = self._orchestrator.on_fulfilled(
                    caller, request_id, random_words, now=now,
                )
            except OptionsError as e:
                logger.warning("Rejected fulfilment of request %s: %s", request_id, e)
                return _failed(e)
            return ServiceResult(
                success=True,
                data={
                    "request_id": request_id,
                    "pool_id": batch.pool_id,
                    "commitment": batch.commitment,
                    "leaf_count": batch.leaf_count,
                    "total_amount": batch.total_amount,
                },
            )

    def clear_pending_request(
        self,
        caller: str,
        pool_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Administrative override for a request the oracle never answered."""
        with self._lock:
            try:
                request = self._orchestrator.clear_pending_request(caller, pool_id, now=now)
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(
                success=True,
                data={"pool_id": pool_id, "request_id": request.request_id},
            )

    def get_batch(self, request_id: int) -> Optional[AllocationBatch]:
        with self._lock:
            return self._orchestrator.get_batch(request_id)

    def batches_for_pool(self, pool_id: int) -> list[AllocationBatch]:
        with self._lock:
            return self._orchestrator.batches_for_pool(pool_id)

    # ------------------------------------------------------------------
    # Claims and redemption
    # ------------------------------------------------------------------

    def claim(
        self,
        caller: str,
        leaf: Allocation,
        leaf_index: int,
        proof: Sequence[str],
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Mint a claim token for a committed allocation."""
        with self._lock:
            try:
                token_id = self._claims.claim(caller, leaf, leaf_index, proof, now=now)
            except OptionsError as e:
                return _failed(e)
            attributes = ClaimAttributes.unpack(self._token_store.attributes_of(token_id))
            return ServiceResult(
                success=True,
                data={
                    "token_id": token_id,
                    "pool_id": attributes.pool_id,
                    "amount": attributes.allocation,
                    "discount": attributes.discount,
                    "rarity": attributes.rarity,
                },
            )

    def quote(self, token_id: int, asset_out: int) -> ServiceResult:
        """Price a redemption without executing it."""
        with self._lock:
            try:
                quote = self._redemption.quote(token_id, asset_out)
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(
                success=True,
                data={
                    "token_id": token_id,
                    "asset": quote.asset,
                    "asset_out": asset_out,
                    "discount": quote.discount,
                    "gross": str(quote.gross),
                    "required": str(quote.required),
                },
            )

    def action(
        self,
        caller: str,
        token_id: int,
        asset_out: int,
        governance_in: Union[Decimal, int, str],
        approved_movement_bps: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Redeem part or all of a claim for the pool's asset."""
        with self._lock:
            try:
                receipt = self._redemption.action(
                    caller, token_id, asset_out, governance_in,
                    approved_movement_bps, now=now,
                )
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(
                success=True,
                data={
                    "token_id": receipt.token_id,
                    "pool_id": receipt.pool_id,
                    "asset_out": receipt.asset_out,
                    "governance_in": str(receipt.governance_in),
                    "required": str(receipt.required),
                    "sink": receipt.sink,
                    "reward_remaining": receipt.reward_remaining,
                    "pool_remaining": receipt.pool_remaining,
                    "pool_closed": receipt.pool_closed,
                },
            )

    def burn(
        self,
        caller: str,
        token_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                self._redemption.burn(caller, token_id, now=now)
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(success=True, data={"token_id": token_id})

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def set_recipient(
        self,
        caller: str,
        recipient: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Change where governance tokens go on redemption."""
        with self._lock:
            try:
                self._redemption.set_sink(caller, recipient, now=now)
            except OptionsError as e:
                return _failed(e)
            return ServiceResult(success=True, data={"recipient": recipient})

    def set_calculator(
        self,
        caller: str,
        calculator: DistributionCalculator,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Swap the active distribution calculator for future batches."""
        with self._lock:
            try:
                self._registry.require_capability(caller, Capability.CONFIG_ADMIN)
            except OptionsError as e:
                return _failed(e)
            self._generator.set_calculator(calculator)
            description = calculator.describe()
            self._event_log.record(
                EventKind.CALCULATOR_UPDATED, caller, description, now=now,
            )
            logger.info("Distribution calculator set to %s", description["name"])
            return ServiceResult(success=True, data=description)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            pools = self._registry.pools()
            return {
                "pools": {
                    "total": len(pools),
                    "open": sum(1 for p in pools if p.is_open and not p.is_expired(now)),
                    "locked": sum(1 for p in pools if p.pending_request_id is not None),
                },
                "randomness": {
                    "fee": str(self._orchestrator.fee),
                    "fee_balance": str(self._orchestrator.fee_balance),
                },
                "commitment_scheme": self._scheme.name,
                "calculator": self._generator.calculator.describe(),
                "governance_sink": self._redemption.sink,
                "events": self._event_log.count,
            }

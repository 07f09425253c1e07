"""Pool registry: owns every Pool record and its lifecycle.

Pools live in an append-only arena; a pool's id is its index. Closed
pools are never removed, only moved to a terminal state, so the full
history stays auditable.

Pool funds never leave treasury custody until redemption. Creating a
pool reserves part of the treasury's balance of an asset; withdrawing
an expired pool releases whatever reservation is left.

Invariants enforced here:
- max_discount never exceeds the protocol ceiling
- amount_remaining <= amount_initial at all times
- PoolClosed is raised only on the transition out of OPEN (exactly once)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from treasury_options.collaborators.authority import AuthorizationGate, Capability
from treasury_options.collaborators.treasury import Treasury
from treasury_options.errors import (
    AuthorizationError,
    DiscountCeilingExceeded,
    InsufficientTreasuryBalance,
    InvalidPoolParameters,
    InvariantViolation,
    PoolClosedError,
    PoolNotExpired,
    PoolNotFound,
    RequestPending,
)
from treasury_options.models.pool import Pool, PoolState
from treasury_options.persistence.event_log import EventKind, EventLog


class PoolRegistry:
    """Creates, looks up, debits and closes pools.

    Usage:
        registry = PoolRegistry(treasury, gate, events, max_discount_ceiling=100)
        pool = registry.create_pool("admin", "WETH", 1000, 20, expiry)
        registry.get_pool(pool.pool_id)
        registry.withdraw("admin", pool.pool_id)   # after expiry
    """

    def __init__(
        self,
        treasury: Treasury,
        gate: AuthorizationGate,
        events: EventLog,
        max_discount_ceiling: int,
    ) -> None:
        self._treasury = treasury
        self._gate = gate
        self._events = events
        self._max_discount_ceiling = max_discount_ceiling
        self._pools: list[Pool] = []

    @property
    def max_discount_ceiling(self) -> int:
        return self._max_discount_ceiling

    def create_pool(
        self,
        caller: str,
        asset: str,
        amount: int,
        max_discount: int,
        expiry: datetime,
        now: Optional[datetime] = None,
    ) -> Pool:
        """Register a new pool over assets already held by the treasury."""
        if now is None:
            now = datetime.now(timezone.utc)
        self.require_capability(caller, Capability.POOL_ADMIN)

        if amount <= 0:
            raise InvalidPoolParameters(f"Pool amount must be positive, got {amount}")
        if max_discount < 0:
            raise InvalidPoolParameters(f"max_discount must be >= 0, got {max_discount}")
        if max_discount > self._max_discount_ceiling:
            raise DiscountCeilingExceeded(
                f"max_discount {max_discount} exceeds protocol ceiling "
                f"{self._max_discount_ceiling}"
            )
        if expiry <= now:
            raise InvalidPoolParameters("Pool expiry must be in the future")

        available = self._treasury.balance_of(asset) - self.reserved(asset)
        if available < amount:
            raise InsufficientTreasuryBalance(
                f"Treasury has {available} unreserved {asset}, pool needs {amount}"
            )

        pool = Pool(
            pool_id=len(self._pools),
            asset=asset,
            amount_initial=amount,
            amount_remaining=amount,
            max_discount=max_discount,
            expiry=expiry,
            initialised=True,
            created_utc=now,
        )
        self._pools.append(pool)
        self._events.record(
            EventKind.POOL_CREATED,
            caller,
            {
                "pool_id": pool.pool_id,
                "asset": asset,
                "amount": amount,
                "max_discount": max_discount,
                "expiry": expiry,
            },
            now=now,
        )
        return pool

    def get_pool(self, pool_id: int) -> Optional[Pool]:
        """Look up a pool. Returns None for an unknown id, never raises."""
        if 0 <= pool_id < len(self._pools):
            return self._pools[pool_id]
        return None

    def require_pool(self, pool_id: int) -> Pool:
        pool = self.get_pool(pool_id)
        if pool is None:
            raise PoolNotFound(f"Unknown pool ID: {pool_id}")
        return pool

    def pools(self) -> list[Pool]:
        return list(self._pools)

    def reserved(self, asset: str) -> int:
        """Treasury balance of ``asset`` promised to open pools."""
        return sum(
            p.amount_remaining for p in self._pools
            if p.asset == asset and p.is_open
        )

    def withdraw(
        self,
        caller: str,
        pool_id: int,
        now: Optional[datetime] = None,
    ) -> Pool:
        """Close an expired pool and return its remainder to the treasury.

        Transitions: OPEN → WITHDRAWN (raises PoolClosed)
                     EXHAUSTED → WITHDRAWN (already closed, no event)
        """
        if now is None:
            now = datetime.now(timezone.utc)
        self.require_capability(caller, Capability.POOL_ADMIN)
        pool = self.require_pool(pool_id)

        if not pool.is_expired(now):
            raise PoolNotExpired(
                f"Pool {pool_id} expires at {pool.expiry.isoformat()}, cannot withdraw yet"
            )
        if pool.state == PoolState.WITHDRAWN:
            raise PoolClosedError(f"Pool {pool_id} already withdrawn")
        if pool.pending_request_id is not None:
            raise RequestPending(
                f"Pool {pool_id} has pending request {pool.pending_request_id}"
            )

        was_open = pool.is_open
        returned = pool.amount_remaining
        pool.amount_remaining = 0
        pool.transition_to(PoolState.WITHDRAWN)

        if was_open:
            self._record_closed(pool, caller, now, reason="withdrawn", returned=returned)
        return pool

    def debit(self, pool: Pool, amount: int) -> bool:
        """Subtract a redemption from a pool.

        The decrement and the zero check are one step. Returns True if
        this debit exhausted the pool (the caller raises PoolClosed once
        its external transfers succeed).
        """
        if amount <= 0 or amount > pool.amount_remaining:
            raise InvariantViolation(
                f"Pool {pool.pool_id} debit of {amount} with "
                f"{pool.amount_remaining} remaining"
            )
        pool.amount_remaining -= amount
        if pool.amount_remaining == 0 and pool.is_open:
            pool.transition_to(PoolState.EXHAUSTED)
            return True
        return False

    def record_exhausted(self, pool: Pool, caller: str, now: datetime) -> None:
        self._record_closed(pool, caller, now, reason="exhausted", returned=0)

    def require_capability(self, caller: str, capability: Capability) -> None:
        if not self._gate.is_authorized(caller, capability):
            raise AuthorizationError(
                f"{caller} lacks capability {capability.value}"
            )

    def _record_closed(
        self,
        pool: Pool,
        caller: str,
        now: datetime,
        reason: str,
        returned: int,
    ) -> None:
        self._events.record(
            EventKind.POOL_CLOSED,
            caller,
            {"pool_id": pool.pool_id, "reason": reason, "returned": returned},
            now=now,
        )

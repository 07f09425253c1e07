"""Pool and randomness-request models.

A Pool is one bounded batch of a single treasury asset made available
for option allocation. Pools are kept in an append-only arena and are
never deleted: exhausted and withdrawn pools stay for audit.

Invariants enforced by these models:
- amount_remaining <= amount_initial
- amount_committed <= amount_initial
- Pool lifecycle is a strict state machine (no skipped states)
- A request moves out of PENDING exactly once
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional


class PoolState(str, enum.Enum):
    """Lifecycle state of a pool.

    State machine:
        OPEN → EXHAUSTED             (last unit redeemed)
        OPEN → WITHDRAWN             (expired, remainder returned)
        EXHAUSTED → WITHDRAWN        (audit close after expiry)
    """
    OPEN = "open"
    EXHAUSTED = "exhausted"
    WITHDRAWN = "withdrawn"


POOL_TRANSITIONS: Dict[PoolState, frozenset] = {
    PoolState.OPEN: frozenset({PoolState.EXHAUSTED, PoolState.WITHDRAWN}),
    PoolState.EXHAUSTED: frozenset({PoolState.WITHDRAWN}),
    PoolState.WITHDRAWN: frozenset(),
}


@dataclass
class Pool:
    """A batch of one asset type made available for options."""
    pool_id: int
    asset: str
    amount_initial: int
    amount_remaining: int
    max_discount: int
    expiry: datetime
    initialised: bool = False
    pending_request_id: Optional[int] = None
    amount_committed: int = 0
    commitments: Dict[str, int] = field(default_factory=dict)  # root -> leaf count
    state: PoolState = PoolState.OPEN
    created_utc: Optional[datetime] = None

    @property
    def commitment(self) -> Optional[str]:
        """The most recently published allocation root, if any."""
        return next(reversed(self.commitments), None)

    @property
    def is_open(self) -> bool:
        return self.state == PoolState.OPEN

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiry

    def transition_to(self, new_state: PoolState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = POOL_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid pool transition: {self.state.value} → {new_state.value}. "
                f"Allowed: {', '.join(s.value for s in allowed)}"
            )
        self.state = new_state


class RequestState(str, enum.Enum):
    """Lifecycle of an external randomness request.

    PENDING → FULFILLED   (oracle callback)
    PENDING → CANCELLED   (administrative override for a stuck request)
    """
    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


@dataclass
class RandomnessRequest:
    """One outstanding call to the verifiable-randomness provider.

    The recipient list is supplied out-of-band when generation is
    requested and is paired 1:1 with the returned words.
    """
    request_id: int
    pool_id: int
    fee_paid: Decimal
    recipients: tuple[str, ...]
    state: RequestState = RequestState.PENDING
    random_words: tuple[int, ...] = ()
    requested_utc: Optional[datetime] = None
    fulfilled_utc: Optional[datetime] = None

    @property
    def fulfilled(self) -> bool:
        return self.state == RequestState.FULFILLED

    @property
    def word_count(self) -> int:
        return len(self.recipients)

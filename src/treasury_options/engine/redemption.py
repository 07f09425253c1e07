"""Redemption engine ("action"): exercise a claim token against its pool.

The caller asks for ``asset_out`` units of the pool's asset and offers
``governance_in`` governance tokens in exchange. The governance amount
the protocol expects is priced off the treasury's price feed:

    g        = asset_out * asset_price / governance_price
    required = g - g * discount / 100

``governance_in`` must fall inside the caller's own tolerance window,
``required * (1 ± approved_movement_bps / 10000)``, bounds inclusive.

Ordering is checks, then effects, then external transfers. The token's
reward and the pool's remaining balance are debited before either
transfer runs; if a transfer fails the debits are restored and the
treasury's atomic scope undoes any partial transfer, so a failed call
leaves no trace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_UP, Decimal, localcontext
from typing import Optional, Union

from treasury_options.collaborators.authority import Capability
from treasury_options.collaborators.claim_tokens import ClaimTokenStore
from treasury_options.collaborators.treasury import Treasury, parse_amount
from treasury_options.engine.registry import PoolRegistry
from treasury_options.errors import (
    ClaimNotExhausted,
    InsufficientClaimBalance,
    InsufficientPoolBalance,
    InvalidAmount,
    InvalidRecipients,
    MovementOutOfBounds,
    NotTokenOwner,
)
from treasury_options.models.claim import ClaimAttributes
from treasury_options.models.pool import Pool
from treasury_options.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000

# Enough digits for 96-bit amounts times 18-decimal prices without rounding.
_PRECISION = 78


@dataclass(frozen=True)
class RedemptionQuote:
    """Governance amount expected for a prospective redemption."""
    token_id: int
    pool_id: int
    asset: str
    asset_out: int
    discount: int
    asset_price: Decimal
    governance_price: Decimal
    gross: Decimal
    required: Decimal

    def band(self, approved_movement_bps: int) -> tuple[Decimal, Decimal]:
        return movement_band(self.required, approved_movement_bps)


@dataclass(frozen=True)
class RedemptionReceipt:
    """Outcome of a successful redemption."""
    token_id: int
    pool_id: int
    asset_out: int
    governance_in: Decimal
    required: Decimal
    sink: str
    reward_remaining: int
    pool_remaining: int
    pool_closed: bool


def compute_required(
    asset_out: int,
    asset_price: Decimal,
    governance_price: Decimal,
    discount: int,
    places: int = 18,
) -> tuple[Decimal, Decimal]:
    """Return (g, required) for a redemption.

    ``required`` is quantized to ``places`` decimals rounding up, so the
    protocol never under-charges by a rounding step.
    """
    if governance_price <= 0:
        raise ValueError(f"Governance price must be positive, got {governance_price}")
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        gross = Decimal(asset_out) * asset_price / governance_price
        required = gross - gross * Decimal(discount) / Decimal(100)
        return gross, required.quantize(quantum, rounding=ROUND_UP)


def movement_band(required: Decimal, approved_movement_bps: int) -> tuple[Decimal, Decimal]:
    """Inclusive [low, high] window around ``required``."""
    if not 0 <= approved_movement_bps <= BPS_DENOMINATOR:
        raise MovementOutOfBounds(
            f"approved_movement_bps must be in [0, {BPS_DENOMINATOR}], "
            f"got {approved_movement_bps}"
        )
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        movement = Decimal(approved_movement_bps) / Decimal(BPS_DENOMINATOR)
        return required * (1 - movement), required * (1 + movement)


class RedemptionEngine:
    """Prices and executes redemptions, and burns spent claim tokens.

    Usage:
        engine = RedemptionEngine(registry, tokens, treasury, events,
                                  governance_token="FLOOR", sink=BURN_ADDRESS)
        quote = engine.quote(token_id, 50)
        receipt = engine.action("alice", token_id, 50, quote.required, 100)
    """

    def __init__(
        self,
        registry: PoolRegistry,
        token_store: ClaimTokenStore,
        treasury: Treasury,
        events: EventLog,
        governance_token: str,
        sink: str,
        places: int = 18,
    ) -> None:
        self._registry = registry
        self._token_store = token_store
        self._treasury = treasury
        self._events = events
        self._governance_token = governance_token
        self._sink = sink
        self._places = places

    @property
    def sink(self) -> str:
        return self._sink

    def set_sink(self, caller: str, sink: str, now: Optional[datetime] = None) -> None:
        """Point governance intake at a new recipient."""
        self._registry.require_capability(caller, Capability.CONFIG_ADMIN)
        if not sink:
            raise InvalidRecipients("Governance sink must be a non-empty address")
        self._sink = sink
        self._events.record(
            EventKind.RECIPIENT_UPDATED, caller, {"recipient": sink}, now=now,
        )
        logger.info("Governance sink set to %s", sink)

    def quote(self, token_id: int, asset_out: int) -> RedemptionQuote:
        """Price a redemption without executing it."""
        attributes = ClaimAttributes.unpack(self._token_store.attributes_of(token_id))
        pool = self._registry.require_pool(attributes.pool_id)
        return self._price(token_id, pool, attributes, asset_out)

    def action(
        self,
        caller: str,
        token_id: int,
        asset_out: int,
        governance_in: Union[Decimal, int, str],
        approved_movement_bps: int,
        now: Optional[datetime] = None,
    ) -> RedemptionReceipt:
        """Redeem ``asset_out`` of a claim for ``governance_in`` tokens."""
        if now is None:
            now = datetime.now(timezone.utc)
        governance_in = parse_amount(governance_in, "governance_in")

        # Checks
        owner = self._token_store.owner_of(token_id)
        if owner != caller:
            raise NotTokenOwner(f"{caller} does not own claim token {token_id}")
        if asset_out <= 0:
            raise InvalidAmount(f"asset_out must be positive, got {asset_out}")

        attributes = ClaimAttributes.unpack(self._token_store.attributes_of(token_id))
        pool = self._registry.require_pool(attributes.pool_id)
        if asset_out > pool.amount_remaining:
            raise InsufficientPoolBalance(
                f"Pool {pool.pool_id} has {pool.amount_remaining} remaining, "
                f"requested {asset_out}"
            )
        if asset_out > attributes.reward_amount:
            raise InsufficientClaimBalance(
                f"Claim {token_id} has {attributes.reward_amount} left, "
                f"requested {asset_out}"
            )

        quote = self._price(token_id, pool, attributes, asset_out)
        low, high = movement_band(quote.required, approved_movement_bps)
        if not low <= governance_in <= high:
            raise MovementOutOfBounds(
                f"governance_in {governance_in} outside [{low}, {high}] "
                f"(required {quote.required})"
            )

        # Effects
        updated = attributes.with_reward(attributes.reward_amount - asset_out)
        previous_state = pool.state
        self._token_store.set_attributes(token_id, updated.pack())
        closed = self._registry.debit(pool, asset_out)

        # External transfers
        sink = self._sink
        try:
            with self._treasury.atomic():
                self._treasury.transfer_governance_in(caller, sink, governance_in)
                self._treasury.transfer_asset(pool.asset, caller, asset_out)
        except Exception:
            self._token_store.set_attributes(token_id, attributes.pack())
            pool.amount_remaining += asset_out
            pool.state = previous_state
            raise

        self._events.record(
            EventKind.REDEMPTION_EXECUTED,
            caller,
            {
                "token_id": token_id,
                "pool_id": pool.pool_id,
                "asset_out": asset_out,
                "governance_in": governance_in,
                "required": quote.required,
                "sink": sink,
            },
            now=now,
        )
        if closed:
            self._registry.record_exhausted(pool, caller, now)
            logger.info("Pool %s exhausted by redemption of token %s", pool.pool_id, token_id)

        return RedemptionReceipt(
            token_id=token_id,
            pool_id=pool.pool_id,
            asset_out=asset_out,
            governance_in=governance_in,
            required=quote.required,
            sink=sink,
            reward_remaining=updated.reward_amount,
            pool_remaining=pool.amount_remaining,
            pool_closed=closed,
        )

    def burn(self, caller: str, token_id: int, now: Optional[datetime] = None) -> None:
        """Destroy a claim token whose reward has been fully redeemed."""
        if self._token_store.owner_of(token_id) != caller:
            raise NotTokenOwner(f"{caller} does not own claim token {token_id}")
        attributes = ClaimAttributes.unpack(self._token_store.attributes_of(token_id))
        if attributes.reward_amount != 0:
            raise ClaimNotExhausted(
                f"Claim {token_id} still has {attributes.reward_amount} to redeem"
            )
        self._token_store.burn(token_id)
        self._events.record(
            EventKind.CLAIM_BURNED,
            caller,
            {"token_id": token_id, "pool_id": attributes.pool_id},
            now=now,
        )

    def _price(
        self,
        token_id: int,
        pool: Pool,
        attributes: ClaimAttributes,
        asset_out: int,
    ) -> RedemptionQuote:
        asset_price = self._treasury.price_of(pool.asset)
        governance_price = self._treasury.price_of(self._governance_token)
        gross, required = compute_required(
            asset_out, asset_price, governance_price, attributes.discount, self._places,
        )
        return RedemptionQuote(
            token_id=token_id,
            pool_id=pool.pool_id,
            asset=pool.asset,
            asset_out=asset_out,
            discount=attributes.discount,
            asset_price=asset_price,
            governance_price=governance_price,
            gross=gross,
            required=required,
        )

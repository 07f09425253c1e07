"""Error taxonomy for the options engine.

Three families:
1. Caller errors (OptionsError subclasses). The operation aborts with
   no state change and the caller can correct and retry.
2. Authorization errors. The caller lacks a capability, or a callback
   arrived from an address other than the designated oracle.
3. Invariant violations. Should never occur when upstream checks are
   correct; treated as fatal and never converted into a soft result.

Every caller and authorization error carries a stable ``code`` so that
off-chain tooling can tell "already claimed" apart from "bad proof"
without parsing messages.
"""

from __future__ import annotations


class OptionsError(ValueError):
    """Base class for recoverable, caller-correctable errors."""
    code = "options_error"


class AuthorizationError(OptionsError):
    """Caller lacks the capability required for the operation."""
    code = "unauthorized"


class UnauthorizedOracle(AuthorizationError):
    code = "unauthorized_oracle"


class InvariantViolation(RuntimeError):
    """An internal invariant was broken. Fatal."""
    code = "invariant_violation"


# Pool registry

class PoolNotFound(OptionsError):
    code = "pool_not_found"


class PoolExpired(OptionsError):
    code = "pool_expired"


class PoolNotExpired(OptionsError):
    code = "pool_not_expired"


class PoolClosedError(OptionsError):
    code = "pool_closed"


class PoolNotInitialised(OptionsError):
    code = "pool_not_initialised"


class DiscountCeilingExceeded(OptionsError):
    code = "discount_ceiling_exceeded"


class InsufficientTreasuryBalance(OptionsError):
    code = "insufficient_treasury_balance"


class InvalidPoolParameters(OptionsError):
    code = "invalid_pool_parameters"


# Randomness orchestration

class RequestPending(OptionsError):
    code = "request_pending"


class RequestNotFound(OptionsError):
    code = "request_not_found"


class RequestNotPending(OptionsError):
    code = "request_not_pending"


class InvalidFulfillment(OptionsError):
    code = "invalid_fulfillment"


class InvalidRecipients(OptionsError):
    code = "invalid_recipients"


class InsufficientFeeBalance(OptionsError):
    code = "insufficient_fee_balance"


# Claim gate

class InvalidProof(OptionsError):
    code = "invalid_proof"


class LeafAlreadyConsumed(OptionsError):
    code = "already_consumed"


class NotRecipient(OptionsError):
    code = "not_recipient"


# Redemption

class TokenNotFound(OptionsError):
    code = "token_not_found"


class NotTokenOwner(OptionsError):
    code = "not_token_owner"


class InvalidAmount(OptionsError):
    """Non-positive fee deposit or redemption amount."""
    code = "invalid_amount"


class InsufficientClaimBalance(OptionsError):
    code = "insufficient_claim_balance"


class InsufficientPoolBalance(OptionsError):
    code = "insufficient_pool_balance"


class MovementOutOfBounds(OptionsError):
    code = "movement_out_of_bounds"


class InsufficientBalance(OptionsError):
    """Insufficient balance on either asset leg of a transfer."""
    code = "insufficient_balance"


class ClaimNotExhausted(OptionsError):
    code = "claim_not_exhausted"


class PriceUnavailable(OptionsError):
    code = "price_unavailable"

"""Allocation and claim-token attribute models.

An Allocation is ephemeral: it only exists inside a generated batch and
as a leaf of the batch's Merkle commitment. Once claimed it becomes a
claim token whose attributes live in the token store as one packed
256-bit word.

Word layout (most significant first):
    allocation      96 bits
    reward_amount   96 bits
    discount         8 bits
    rarity           8 bits
    pool_id         48 bits
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

_POOL_ID_BITS = 48
_RARITY_BITS = 8
_DISCOUNT_BITS = 8
_AMOUNT_BITS = 96

_RARITY_SHIFT = _POOL_ID_BITS
_DISCOUNT_SHIFT = _RARITY_SHIFT + _RARITY_BITS
_REWARD_SHIFT = _DISCOUNT_SHIFT + _DISCOUNT_BITS
_ALLOCATION_SHIFT = _REWARD_SHIFT + _AMOUNT_BITS

MAX_AMOUNT = (1 << _AMOUNT_BITS) - 1
MAX_POOL_ID = (1 << _POOL_ID_BITS) - 1


def _mask(bits: int) -> int:
    return (1 << bits) - 1


@dataclass(frozen=True)
class Allocation:
    """A (recipient, pool, amount, discount) grant, not yet a token."""
    recipient: str
    pool_id: int
    amount: int
    discount: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "pool_id": self.pool_id,
            "amount": self.amount,
            "discount": self.discount,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Allocation:
        return Allocation(
            recipient=str(data["recipient"]),
            pool_id=int(data["pool_id"]),
            amount=int(data["amount"]),
            discount=int(data["discount"]),
        )


@dataclass(frozen=True)
class ClaimAttributes:
    """Immutable attributes of a minted claim token.

    reward_amount starts equal to allocation and is only ever lowered
    by redemption, which replaces the whole value object.
    """
    allocation: int
    reward_amount: int
    discount: int
    rarity: int
    pool_id: int

    def __post_init__(self) -> None:
        if not 0 <= self.reward_amount <= self.allocation <= MAX_AMOUNT:
            raise ValueError(
                f"Claim amounts out of range: allocation={self.allocation}, "
                f"reward_amount={self.reward_amount}"
            )
        if not 0 <= self.discount <= _mask(_DISCOUNT_BITS):
            raise ValueError(f"Discount out of range: {self.discount}")
        if not 0 <= self.rarity <= 100:
            raise ValueError(f"Rarity must be in [0, 100], got {self.rarity}")
        if not 0 <= self.pool_id <= MAX_POOL_ID:
            raise ValueError(f"Pool ID out of range: {self.pool_id}")

    def with_reward(self, reward_amount: int) -> ClaimAttributes:
        return replace(self, reward_amount=reward_amount)

    def pack(self) -> int:
        """Serialize into a single 256-bit word."""
        return (
            (self.allocation << _ALLOCATION_SHIFT)
            | (self.reward_amount << _REWARD_SHIFT)
            | (self.discount << _DISCOUNT_SHIFT)
            | (self.rarity << _RARITY_SHIFT)
            | self.pool_id
        )

    @staticmethod
    def unpack(word: int) -> ClaimAttributes:
        """Deserialize a packed attribute word."""
        if not 0 <= word < (1 << 256):
            raise ValueError("Packed attributes must fit in 256 bits")
        return ClaimAttributes(
            allocation=(word >> _ALLOCATION_SHIFT) & _mask(_AMOUNT_BITS),
            reward_amount=(word >> _REWARD_SHIFT) & _mask(_AMOUNT_BITS),
            discount=(word >> _DISCOUNT_SHIFT) & _mask(_DISCOUNT_BITS),
            rarity=(word >> _RARITY_SHIFT) & _mask(_RARITY_BITS),
            pool_id=word & _mask(_POOL_ID_BITS),
        )

"""Distribution calculators: map a random seed to a share and a discount.

A weighting ladder is an immutable list of integer weights w[0..n).
The cumulative sums form a ladder of width sum(w). A seed is reduced
onto [0, sum) and the bucket it lands in is the result:

    cumulative = [w0, w0+w1, w0+w1+w2, ...]
    bucket     = first i with cumulative[i] > reduced

The walk is pure integer arithmetic (binary search). Ties break
toward the lower index. Zero-weight buckets can never be selected.

Share and discount use independent reductions of the same seed so
the two values are not correlated:
    share reduction    = seed mod sum
    discount reduction = sha256("discount" || seed) mod sum

Calculators are never mutated. Changing the algorithm or the weights
means constructing a new calculator and swapping it in.
"""

from __future__ import annotations

import abc
import hashlib
import math
from bisect import bisect_right
from itertools import accumulate
from typing import Iterable

_WORD_BYTES = 32
_WORD_MOD = 1 << (8 * _WORD_BYTES)
_DISCOUNT_DOMAIN = b"treasury-options/discount"


class DistributionCalculator(abc.ABC):
    """Polymorphic seed → (share, discount) mapping."""

    name = "abstract"

    @abc.abstractmethod
    def get_share(self, seed: int) -> int:
        """Return a share >= 1 for the seed."""

    @abc.abstractmethod
    def get_discount(self, seed: int) -> int:
        """Return a discount in [0, max_discount] for the seed."""

    @property
    @abc.abstractmethod
    def max_share(self) -> int:
        """Largest share this calculator can return."""

    @property
    @abc.abstractmethod
    def max_discount(self) -> int:
        """Largest discount this calculator can return."""

    @property
    @abc.abstractmethod
    def share_weights(self) -> tuple[int, ...]:
        """Relative frequency of each share 1..max_share."""

    @property
    @abc.abstractmethod
    def discount_weights(self) -> tuple[int, ...]:
        """Relative frequency of each raw discount 0..max_discount."""

    def describe(self) -> dict:
        return {
            "name": self.name,
            "max_share": self.max_share,
            "max_discount": self.max_discount,
        }


class WeightedLadderCalculator(DistributionCalculator):
    """Weighted ladder over a precomputed, immutable weight list.

    Usage:
        calc = WeightedLadderCalculator(right_tailed_weights(100, 10, 4, 30))
        share = calc.get_share(seed)        # 1-based bucket, never 0
        discount = calc.get_discount(seed)  # 0-based bucket
    """

    name = "weighted_ladder"

    def __init__(self, weights: Iterable[int]) -> None:
        self._weights: tuple[int, ...] = tuple(int(w) for w in weights)
        if not self._weights:
            raise ValueError("Weighting ladder requires at least one weight")
        if any(w < 0 for w in self._weights):
            raise ValueError("Ladder weights must be non-negative")
        self._cumulative: tuple[int, ...] = tuple(accumulate(self._weights))
        self._sum = self._cumulative[-1]
        if self._sum <= 0:
            raise ValueError("Ladder weights must not all be zero")

    @property
    def weights(self) -> tuple[int, ...]:
        return self._weights

    @property
    def share_weights(self) -> tuple[int, ...]:
        return self._weights

    @property
    def discount_weights(self) -> tuple[int, ...]:
        # Discounts walk the same ladder as shares
        return self._weights

    @property
    def total(self) -> int:
        return self._sum

    @property
    def max_share(self) -> int:
        return len(self._weights)

    @property
    def max_discount(self) -> int:
        return len(self._weights) - 1

    def get_share(self, seed: int) -> int:
        share = self._locate(seed % self._sum) + 1
        # Allocation amounts must never be zero
        return max(share, 1)

    def get_discount(self, seed: int) -> int:
        return self._locate(_derive(seed, _DISCOUNT_DOMAIN) % self._sum)

    def _locate(self, reduced: int) -> int:
        """Index of the first bucket whose cumulative weight exceeds reduced."""
        return bisect_right(self._cumulative, reduced)

    def describe(self) -> dict:
        data = super().describe()
        data["total_weight"] = self._sum
        return data


class UniformDistributionCalculator(WeightedLadderCalculator):
    """Flat ladder: every share in [1, size] is equally likely."""

    name = "uniform"

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"Uniform ladder size must be >= 1, got {size}")
        super().__init__([1] * size)


def right_tailed_weights(
    size: int,
    peak: int,
    left_spread: float,
    right_spread: float,
    scale: int = 10_000,
) -> tuple[int, ...]:
    """Build an integer right-tailed bell curve over shares 1..size.

    The curve peaks at ``peak`` and falls off faster to the left than to
    the right, so small-to-moderate shares are common and large shares
    rare. Every bucket gets a weight of at least 1.
    """
    if size < 1:
        raise ValueError(f"Ladder size must be >= 1, got {size}")
    if not 1 <= peak <= size:
        raise ValueError(f"Peak must be within [1, {size}], got {peak}")
    if left_spread <= 0 or right_spread <= 0:
        raise ValueError("Spreads must be positive")

    weights: list[int] = []
    for share in range(1, size + 1):
        distance = share - peak
        spread = left_spread if distance < 0 else right_spread
        density = math.exp(-(distance * distance) / (2.0 * spread * spread))
        weights.append(max(1, round(scale * density)))
    return tuple(weights)


def bound_discount(raw: int, calculator_max: int, pool_max: int) -> int:
    """Scale a calculator discount onto a pool's discount ceiling.

    Integer scaling keeps the distribution shape and floors toward the
    lower discount; equal ceilings are the identity.
    """
    if calculator_max <= 0 or pool_max <= 0:
        return 0
    raw = min(max(raw, 0), calculator_max)
    return raw * pool_max // calculator_max


def _derive(seed: int, domain: bytes) -> int:
    """Domain-separated 256-bit derivation of a seed."""
    word = (seed % _WORD_MOD).to_bytes(_WORD_BYTES, "big")
    return int.from_bytes(hashlib.sha256(domain + word).digest(), "big")

"""Rarity scoring for allocations.

Rarity measures how common an outcome is under the active weighting
ladder. 0 is the rarest outcome, 100 the most common. Each half of the
score is a frequency relative to the most frequent outcome of its kind:

    share_freq    = share_weights[share - 1] * 100 // max(share_weights)
    discount_freq = freq(discount) * 100 // max(freq)

freq(d) sums the weights of every calculator discount bucket that
bound_discount maps onto d for the pool's ceiling, so a pool that
squeezes several buckets into one discount scores that discount by the
combined weight. The curve blends the two halves:

    rarity = (share_weight * share_freq + discount_weight * discount_freq)
             // (share_weight + discount_weight)

A less likely share or discount never scores above a more likely one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from treasury_options.distribution.ladder import DistributionCalculator, bound_discount


@dataclass(frozen=True)
class RarityCurve:
    """Policy parameters for the rarity curve (percent weights)."""
    share_weight: int = 50
    discount_weight: int = 50

    def __post_init__(self) -> None:
        if self.share_weight < 0 or self.discount_weight < 0:
            raise ValueError("Rarity weights must be non-negative")
        total = self.share_weight + self.discount_weight
        if not 0 < total <= 100:
            raise ValueError(f"Rarity weights must sum to (0, 100], got {total}")


DEFAULT_CURVE = RarityCurve()


def discount_frequencies(
    discount_weights: Sequence[int],
    calculator_max: int,
    pool_max: int,
) -> list[int]:
    """Combined ladder weight of each pool discount 0..pool_max."""
    if calculator_max <= 0 or pool_max <= 0:
        return [sum(discount_weights)]
    freqs = [0] * (pool_max + 1)
    for raw, weight in enumerate(discount_weights[: calculator_max + 1]):
        freqs[bound_discount(raw, calculator_max, pool_max)] += weight
    return freqs


def rarity_score(
    share: int,
    discount: int,
    max_discount: int,
    calculator: DistributionCalculator,
    curve: RarityCurve = DEFAULT_CURVE,
) -> int:
    """Score an allocation against the calculator that produced it."""
    share_weights = calculator.share_weights
    bucket = min(max(share, 1), len(share_weights)) - 1
    share_freq = share_weights[bucket] * 100 // (max(share_weights) or 1)

    freqs = discount_frequencies(
        calculator.discount_weights, calculator.max_discount, max_discount,
    )
    index = min(max(discount, 0), len(freqs) - 1)
    discount_freq = freqs[index] * 100 // (max(freqs) or 1)

    total = curve.share_weight + curve.discount_weight
    return (curve.share_weight * share_freq + curve.discount_weight * discount_freq) // total


class RarityScorer:
    """Scores against whichever calculator is currently active.

    The allocation generator and the claim gate share one scorer, so a
    calculator swap changes both in the same step.
    """

    def __init__(
        self,
        calculator: DistributionCalculator,
        curve: RarityCurve = DEFAULT_CURVE,
    ) -> None:
        self._calculator = calculator
        self._curve = curve

    @property
    def calculator(self) -> DistributionCalculator:
        return self._calculator

    @property
    def curve(self) -> RarityCurve:
        return self._curve

    def set_calculator(self, calculator: DistributionCalculator) -> None:
        self._calculator = calculator

    def score(self, share: int, discount: int, max_discount: int) -> int:
        return rarity_score(share, discount, max_discount, self._calculator, self._curve)

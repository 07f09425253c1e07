"""Distribution calculators and rarity scoring."""

from treasury_options.distribution.ladder import (
    DistributionCalculator,
    UniformDistributionCalculator,
    WeightedLadderCalculator,
    right_tailed_weights,
)
from treasury_options.distribution.rarity import RarityCurve, rarity_score

__all__ = [
    "DistributionCalculator",
    "UniformDistributionCalculator",
    "WeightedLadderCalculator",
    "right_tailed_weights",
    "RarityCurve",
    "rarity_score",
]

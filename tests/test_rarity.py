"""Tests for rarity scoring: bounds and agreement with the ladder weights."""

import pytest

from conftest import CONFIG_DIR

from treasury_options.distribution.ladder import (
    UniformDistributionCalculator,
    WeightedLadderCalculator,
    bound_discount,
)
from treasury_options.distribution.rarity import (
    RarityCurve,
    RarityScorer,
    discount_frequencies,
    rarity_score,
)
from treasury_options.policy.resolver import PolicyResolver


@pytest.fixture
def ladder() -> WeightedLadderCalculator:
    return PolicyResolver.from_config_dir(CONFIG_DIR).build_calculator()


class TestRarityScore:
    def test_bounds(self, ladder: WeightedLadderCalculator) -> None:
        for share in (0, 1, 10, 50, 100, 10**9):
            for discount in (0, 5, 20, 99, 500):
                for pool_max in (0, 20, 99):
                    score = rarity_score(share, discount, pool_max, ladder)
                    assert 0 <= score <= 100

    def test_rare_share_does_not_outscore_common_share(
        self, ladder: WeightedLadderCalculator,
    ) -> None:
        weights = ladder.share_weights
        assert weights[0] < weights[19]
        assert rarity_score(1, 0, 20, ladder) <= rarity_score(20, 0, 20, ladder)

    def test_share_score_follows_weight(self, ladder: WeightedLadderCalculator) -> None:
        weights = ladder.share_weights
        by_weight = sorted(range(1, len(weights) + 1), key=lambda s: weights[s - 1])
        scores = [rarity_score(share, 0, 20, ladder) for share in by_weight]
        assert scores == sorted(scores)

    def test_discount_score_follows_weight(self, ladder: WeightedLadderCalculator) -> None:
        weights = ladder.discount_weights
        by_weight = sorted(range(len(weights)), key=lambda d: weights[d])
        scores = [rarity_score(10, d, ladder.max_discount, ladder) for d in by_weight]
        assert scores == sorted(scores)

    def test_squeezed_discount_score_follows_combined_weight(
        self, ladder: WeightedLadderCalculator,
    ) -> None:
        freqs = discount_frequencies(ladder.discount_weights, ladder.max_discount, 20)
        by_freq = sorted(range(21), key=lambda d: freqs[d])
        scores = [rarity_score(10, d, 20, ladder) for d in by_freq]
        assert scores == sorted(scores)

    def test_most_common_outcome_scores_100(self, ladder: WeightedLadderCalculator) -> None:
        weights = ladder.share_weights
        peak = weights.index(max(weights))
        assert rarity_score(peak + 1, peak, ladder.max_discount, ladder) == 100

    def test_zero_max_discount_gives_full_discount_term(
        self, ladder: WeightedLadderCalculator,
    ) -> None:
        discount_only = RarityCurve(share_weight=0, discount_weight=100)
        assert rarity_score(10, 7, 0, ladder, discount_only) == 100
        assert rarity_score(10, 7, 0, ladder) == rarity_score(10, 0, 0, ladder)

    def test_discount_above_ceiling_is_capped(self, ladder: WeightedLadderCalculator) -> None:
        assert rarity_score(10, 40, 20, ladder) == rarity_score(10, 20, 20, ladder)

    def test_share_only_curve(self, ladder: WeightedLadderCalculator) -> None:
        curve = RarityCurve(share_weight=100, discount_weight=0)
        expected = ladder.share_weights[0] * 100 // max(ladder.share_weights)
        assert rarity_score(1, 0, 20, ladder, curve) == expected
        assert rarity_score(1, 13, 20, ladder, curve) == expected

    def test_uniform_ladder_scores_everything_equally(self) -> None:
        uniform = UniformDistributionCalculator(100)
        assert rarity_score(1, 0, 99, uniform) == 100
        assert rarity_score(100, 99, 99, uniform) == 100


class TestDiscountFrequencies:
    def test_identity_ceiling_keeps_weights(self, ladder: WeightedLadderCalculator) -> None:
        freqs = discount_frequencies(ladder.discount_weights, ladder.max_discount, 99)
        assert freqs == list(ladder.discount_weights)

    def test_squeezed_ceiling_keeps_total(self, ladder: WeightedLadderCalculator) -> None:
        freqs = discount_frequencies(ladder.discount_weights, ladder.max_discount, 20)
        assert len(freqs) == 21
        assert sum(freqs) == sum(ladder.discount_weights)

    def test_buckets_land_where_bound_discount_sends_them(self) -> None:
        freqs = discount_frequencies([1, 2, 3, 4, 5], 4, 2)
        expected = [0, 0, 0]
        for raw, weight in enumerate([1, 2, 3, 4, 5]):
            expected[bound_discount(raw, 4, 2)] += weight
        assert freqs == expected

    def test_zero_ceiling_is_one_bucket(self) -> None:
        assert discount_frequencies([1, 2, 3], 2, 0) == [6]


class TestRarityScorer:
    def test_follows_calculator_swap(self, ladder: WeightedLadderCalculator) -> None:
        scorer = RarityScorer(ladder)
        assert scorer.score(1, 0, 99) < 100
        scorer.set_calculator(UniformDistributionCalculator(100))
        assert scorer.score(1, 0, 99) == 100

    def test_matches_function(self, ladder: WeightedLadderCalculator) -> None:
        curve = RarityCurve(share_weight=30, discount_weight=70)
        scorer = RarityScorer(ladder, curve)
        assert scorer.curve is curve
        assert scorer.score(42, 7, 20) == rarity_score(42, 7, 20, ladder, curve)


class TestRarityCurve:
    def test_weights_over_100_rejected(self) -> None:
        with pytest.raises(ValueError):
            RarityCurve(share_weight=60, discount_weight=50)

    def test_negative_weight_rejected(self) -> None:
        with pytest.raises(ValueError):
            RarityCurve(share_weight=-1)

    def test_zero_total_rejected(self) -> None:
        with pytest.raises(ValueError):
            RarityCurve(share_weight=0, discount_weight=0)

"""Policy resolver: loads and validates the options policy configuration.

All protocol parameters live in ``config/options_policy.json``:
- protocol: discount ceiling, governance token, default sink
- randomness: oracle address, per-request fee, low-balance threshold
- commitment: which commitment scheme builds batch roots
- distribution: shape of the weighting ladder
- rarity: rarity curve parameters

The engine never reads configuration files directly. Components receive
a PolicyResolver (or values derived from it) at construction.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from treasury_options.crypto.commitment import CommitmentScheme, get_scheme
from treasury_options.distribution.ladder import (
    DistributionCalculator,
    UniformDistributionCalculator,
    WeightedLadderCalculator,
    right_tailed_weights,
)
from treasury_options.distribution.rarity import RarityCurve

POLICY_FILENAME = "options_policy.json"

_CALCULATORS = ("weighted_ladder", "uniform")


class PolicyResolver:
    """Typed access to the options policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        resolver.max_discount_ceiling()
        calculator = resolver.build_calculator()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        errors = self.validate()
        if errors:
            raise ValueError("Invalid options policy: " + "; ".join(errors))

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / POLICY_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @classmethod
    def from_dict(cls, policy: dict[str, Any]) -> PolicyResolver:
        return cls(policy)

    def as_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._policy))

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def max_discount_ceiling(self) -> int:
        return int(self._section("protocol")["max_discount_ceiling"])

    def governance_token(self) -> str:
        return str(self._section("protocol")["governance_token"])

    def default_sink(self) -> str:
        return str(self._section("protocol")["default_sink"])

    def required_decimal_places(self) -> int:
        return int(self._section("protocol").get("required_decimal_places", 18))

    # ------------------------------------------------------------------
    # Randomness
    # ------------------------------------------------------------------

    def oracle_address(self) -> str:
        return str(self._section("randomness")["oracle_address"])

    def randomness_fee(self) -> Decimal:
        return Decimal(str(self._section("randomness")["fee"]))

    def fee_low_threshold(self) -> Decimal:
        return Decimal(str(self._section("randomness")["fee_low_threshold"]))

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def commitment_scheme(self) -> CommitmentScheme:
        return get_scheme(str(self._section("commitment")["scheme"]))

    def rarity_curve(self) -> RarityCurve:
        section = self._policy.get("rarity", {})
        return RarityCurve(
            share_weight=int(section.get("share_weight", 50)),
            discount_weight=int(section.get("discount_weight", 50)),
        )

    def build_calculator(self) -> DistributionCalculator:
        section = self._section("distribution")
        kind = section.get("calculator", "weighted_ladder")
        size = int(section["size"])
        if kind == "uniform":
            return UniformDistributionCalculator(size)
        weights = right_tailed_weights(
            size=size,
            peak=int(section["peak"]),
            left_spread=float(section["left_spread"]),
            right_spread=float(section["right_spread"]),
            scale=int(section.get("scale", 10_000)),
        )
        return WeightedLadderCalculator(weights)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> list[str]:
        """Check policy invariants. Returns errors (empty = OK)."""
        errors: list[str] = []
        for name in ("protocol", "randomness", "commitment", "distribution"):
            if not isinstance(self._policy.get(name), dict):
                errors.append(f"Missing policy section: {name}")
        if errors:
            return errors

        protocol = self._policy["protocol"]
        ceiling = protocol.get("max_discount_ceiling")
        if not isinstance(ceiling, int) or not 0 <= ceiling <= 100:
            errors.append("protocol.max_discount_ceiling must be an integer in [0, 100]")
        for key in ("governance_token", "default_sink"):
            if not protocol.get(key):
                errors.append(f"protocol.{key} must be set")

        randomness = self._policy["randomness"]
        if not randomness.get("oracle_address"):
            errors.append("randomness.oracle_address must be set")
        for key in ("fee", "fee_low_threshold"):
            try:
                if Decimal(str(randomness.get(key))) < 0:
                    errors.append(f"randomness.{key} must be >= 0")
            except InvalidOperation:
                errors.append(f"randomness.{key} must be a decimal value")

        try:
            get_scheme(str(self._policy["commitment"].get("scheme")))
        except ValueError as e:
            errors.append(str(e))

        distribution = self._policy["distribution"]
        kind = distribution.get("calculator", "weighted_ladder")
        if kind not in _CALCULATORS:
            errors.append(f"distribution.calculator must be one of {', '.join(_CALCULATORS)}")
        size = distribution.get("size")
        if not isinstance(size, int) or size < 1:
            errors.append("distribution.size must be a positive integer")
        elif kind == "weighted_ladder":
            peak = distribution.get("peak")
            if not isinstance(peak, int) or not 1 <= peak <= size:
                errors.append("distribution.peak must be within [1, size]")
            for key in ("left_spread", "right_spread"):
                spread = distribution.get(key)
                if not isinstance(spread, (int, float)) or spread <= 0:
                    errors.append(f"distribution.{key} must be positive")

        try:
            self.rarity_curve()
        except (TypeError, ValueError) as e:
            errors.append(f"rarity: {e}")

        return errors

    def _section(self, name: str) -> dict[str, Any]:
        return self._policy[name]

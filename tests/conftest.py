"""Shared fixtures: engines wired to in-memory collaborators."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Sequence

import pytest

from treasury_options.collaborators.authority import RoleGate
from treasury_options.collaborators.claim_tokens import InMemoryClaimTokenStore
from treasury_options.collaborators.randomness import QueuedRandomnessProvider
from treasury_options.collaborators.treasury import InMemoryTreasury
from treasury_options.crypto.commitment import Sha256CommitmentScheme
from treasury_options.distribution.ladder import DistributionCalculator
from treasury_options.distribution.rarity import RarityCurve
from treasury_options.engine.claims import ClaimGate
from treasury_options.engine.generator import AllocationGenerator
from treasury_options.engine.randomness import RandomnessOrchestrator
from treasury_options.engine.redemption import RedemptionEngine
from treasury_options.engine.registry import PoolRegistry
from treasury_options.models.pool import Pool, RandomnessRequest, RequestState
from treasury_options.persistence.event_log import EventLog
from treasury_options.policy.resolver import PolicyResolver
from treasury_options.service import OptionsService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
EXPIRY = NOW + timedelta(days=30)

ADMIN = "admin"
ORACLE = "vrf-coordinator"
SINK = "0x000000000000000000000000000000000000dEaD"

# Seeds 0, 1, 2 give shares {50, 1, 999} and discounts {5, 0, 19}.
SCRIPTED_OUTCOMES = {0: (50, 5), 1: (1, 0), 2: (999, 19)}


class ScriptedCalculator(DistributionCalculator):
    """Calculator whose outcomes are fixed per seed."""

    name = "scripted"

    def __init__(self, outcomes: dict[int, tuple[int, int]], max_discount: int = 20) -> None:
        self._outcomes = dict(outcomes)
        self._max_discount = max_discount

    def get_share(self, seed: int) -> int:
        return self._outcomes[seed][0]

    def get_discount(self, seed: int) -> int:
        return self._outcomes[seed][1]

    @property
    def max_share(self) -> int:
        return max(share for share, _ in self._outcomes.values())

    @property
    def max_discount(self) -> int:
        return self._max_discount

    @property
    def share_weights(self) -> tuple[int, ...]:
        counts = [0] * self.max_share
        for share, _ in self._outcomes.values():
            counts[share - 1] += 1
        return tuple(counts)

    @property
    def discount_weights(self) -> tuple[int, ...]:
        counts = [0] * (self._max_discount + 1)
        for _, discount in self._outcomes.values():
            counts[min(discount, self._max_discount)] += 1
        return tuple(counts)


def fulfilled_request(
    pool: Pool,
    recipients: Sequence[str],
    words: Sequence[int],
    request_id: int = 1,
) -> RandomnessRequest:
    return RandomnessRequest(
        request_id=request_id,
        pool_id=pool.pool_id,
        fee_paid=Decimal("0.25"),
        recipients=tuple(recipients),
        state=RequestState.FULFILLED,
        random_words=tuple(words),
    )


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def treasury() -> InMemoryTreasury:
    treasury = InMemoryTreasury(governance_token="FLOOR")
    treasury.deposit("WETH", 10_000)
    treasury.set_price("WETH", Decimal("2"))
    treasury.set_price("FLOOR", Decimal("1"))
    return treasury


@pytest.fixture
def gate() -> RoleGate:
    gate = RoleGate()
    gate.grant(ADMIN)
    return gate


@pytest.fixture
def scheme() -> Sha256CommitmentScheme:
    return Sha256CommitmentScheme()


@pytest.fixture
def calculator() -> ScriptedCalculator:
    return ScriptedCalculator(SCRIPTED_OUTCOMES)


@pytest.fixture
def provider() -> QueuedRandomnessProvider:
    return QueuedRandomnessProvider(ORACLE)


@pytest.fixture
def tokens() -> InMemoryClaimTokenStore:
    return InMemoryClaimTokenStore()


@pytest.fixture
def registry(treasury: InMemoryTreasury, gate: RoleGate, events: EventLog) -> PoolRegistry:
    return PoolRegistry(treasury, gate, events, max_discount_ceiling=100)


@pytest.fixture
def pool(registry: PoolRegistry) -> Pool:
    return registry.create_pool(ADMIN, "WETH", 1000, 20, EXPIRY, now=NOW)


@pytest.fixture
def generator(
    calculator: ScriptedCalculator,
    scheme: Sha256CommitmentScheme,
    events: EventLog,
) -> AllocationGenerator:
    return AllocationGenerator(calculator, scheme, RarityCurve(), events)


@pytest.fixture
def orchestrator(
    registry: PoolRegistry,
    provider: QueuedRandomnessProvider,
    generator: AllocationGenerator,
    scheme: Sha256CommitmentScheme,
    events: EventLog,
) -> RandomnessOrchestrator:
    return RandomnessOrchestrator(
        registry, provider, generator, scheme, events,
        fee=Decimal("0.25"), fee_low_threshold=Decimal("1"),
    )


@pytest.fixture
def claim_gate(
    registry: PoolRegistry,
    tokens: InMemoryClaimTokenStore,
    scheme: Sha256CommitmentScheme,
    generator: AllocationGenerator,
    events: EventLog,
) -> ClaimGate:
    return ClaimGate(registry, tokens, scheme, generator.scorer, events)


@pytest.fixture
def redemption(
    registry: PoolRegistry,
    tokens: InMemoryClaimTokenStore,
    treasury: InMemoryTreasury,
    events: EventLog,
) -> RedemptionEngine:
    return RedemptionEngine(
        registry, tokens, treasury, events, governance_token="FLOOR", sink=SINK,
    )


@pytest.fixture
def service(
    resolver: PolicyResolver,
    treasury: InMemoryTreasury,
    gate: RoleGate,
    provider: QueuedRandomnessProvider,
    tokens: InMemoryClaimTokenStore,
    calculator: ScriptedCalculator,
) -> OptionsService:
    return OptionsService(
        resolver, treasury, gate, provider, tokens, calculator=calculator,
    )

"""External collaborators the engine orchestrates but does not own.

Treasury custody, authorization, randomness and the claim token are
specified here only at their boundary, each with an in-memory reference
implementation.
"""

from treasury_options.collaborators.authority import (
    AuthorizationGate,
    Capability,
    RoleGate,
)
from treasury_options.collaborators.claim_tokens import (
    ClaimTokenStore,
    InMemoryClaimTokenStore,
)
from treasury_options.collaborators.randomness import (
    QueuedRandomnessProvider,
    RandomnessProvider,
)
from treasury_options.collaborators.treasury import (
    BURN_ADDRESS,
    InMemoryTreasury,
    Treasury,
)

__all__ = [
    "AuthorizationGate",
    "Capability",
    "RoleGate",
    "ClaimTokenStore",
    "InMemoryClaimTokenStore",
    "QueuedRandomnessProvider",
    "RandomnessProvider",
    "BURN_ADDRESS",
    "InMemoryTreasury",
    "Treasury",
]

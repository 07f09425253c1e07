"""Core data models for the options engine."""

from treasury_options.models.claim import Allocation, ClaimAttributes
from treasury_options.models.pool import (
    Pool,
    PoolState,
    RandomnessRequest,
    RequestState,
)

__all__ = [
    "Allocation",
    "ClaimAttributes",
    "Pool",
    "PoolState",
    "RandomnessRequest",
    "RequestState",
]

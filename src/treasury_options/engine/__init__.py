"""Option allocation and redemption engines."""

from treasury_options.engine.claims import ClaimGate
from treasury_options.engine.generator import AllocationBatch, AllocationGenerator
from treasury_options.engine.randomness import RandomnessOrchestrator
from treasury_options.engine.redemption import (
    RedemptionEngine,
    RedemptionQuote,
    RedemptionReceipt,
)
from treasury_options.engine.registry import PoolRegistry

__all__ = [
    "ClaimGate",
    "AllocationBatch",
    "AllocationGenerator",
    "RandomnessOrchestrator",
    "RedemptionEngine",
    "RedemptionQuote",
    "RedemptionReceipt",
    "PoolRegistry",
]

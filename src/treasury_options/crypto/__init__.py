"""Cryptographic primitives: Merkle trees, commitment schemes, anchoring."""

from treasury_options.crypto.commitment import (
    CommitmentScheme,
    KeccakCommitmentScheme,
    Sha256CommitmentScheme,
    get_scheme,
)
from treasury_options.crypto.merkle import MerkleProof, MerkleTree

__all__ = [
    "CommitmentScheme",
    "KeccakCommitmentScheme",
    "Sha256CommitmentScheme",
    "get_scheme",
    "MerkleProof",
    "MerkleTree",
]

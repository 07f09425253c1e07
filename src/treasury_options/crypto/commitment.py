"""Commitment schemes: how an allocation batch is hashed and proven.

A scheme decides three things: how a leaf is hashed, how two nodes are
combined, and how recipients are normalised. The engine only ever talks
to the CommitmentScheme interface, so the proof system can be swapped
without touching pool, claim or redemption logic.

Two schemes ship:
- sha256: canonical-JSON leaves, "sha256:"-prefixed hex digests.
- keccak: EVM-compatible leaves (abi-packed address, uint256 x3) and
  keccak256 nodes. Pairs are hashed in index order, not sorted, and odd
  levels repeat their last node, so an on-chain verifier has to walk the
  proof by leaf index rather than sorting each pair.
"""

from __future__ import annotations

import abc
import hashlib
import json
from typing import Iterable, Sequence

from treasury_options.crypto.merkle import MerkleTree, compute_root_from_proof
from treasury_options.models.claim import Allocation


class CommitmentScheme(abc.ABC):
    """Capability interface for building and verifying batch commitments."""

    name = "abstract"

    @abc.abstractmethod
    def leaf_hash(self, allocation: Allocation) -> str:
        """Hash a single allocation leaf."""

    @abc.abstractmethod
    def hash_pair(self, left: str, right: str) -> str:
        """Combine two child nodes into their parent."""

    @property
    @abc.abstractmethod
    def empty_root(self) -> str:
        """Root of a tree with no leaves."""

    @abc.abstractmethod
    def normalize_recipient(self, recipient: str) -> str:
        """Canonical recipient form. Raises ValueError if unusable."""

    def build(self, allocations: Iterable[Allocation]) -> MerkleTree:
        """Build and compute a tree over allocations in batch order."""
        tree = MerkleTree(self.hash_pair, self.empty_root)
        for allocation in allocations:
            tree.add_leaf(self.leaf_hash(allocation))
        tree.compute_root()
        return tree

    def verify(
        self,
        root: str,
        leaf: Allocation,
        index: int,
        proof: Sequence[str],
    ) -> bool:
        """Check that ``leaf`` sits at ``index`` under ``root``."""
        try:
            leaf_hash = self.leaf_hash(leaf)
            computed = compute_root_from_proof(leaf_hash, index, proof, self.hash_pair)
        except ValueError:
            return False
        return computed == root


class Sha256CommitmentScheme(CommitmentScheme):
    """SHA-256 over canonical JSON (sorted keys, UTF-8)."""

    name = "sha256"

    def leaf_hash(self, allocation: Allocation) -> str:
        canonical = json.dumps(
            allocation.to_dict(), sort_keys=True, ensure_ascii=False
        ).encode("utf-8")
        return f"sha256:{hashlib.sha256(canonical).hexdigest()}"

    def hash_pair(self, left: str, right: str) -> str:
        left_clean = left.removeprefix("sha256:")
        right_clean = right.removeprefix("sha256:")
        combined = f"{left_clean}{right_clean}".encode("utf-8")
        return f"sha256:{hashlib.sha256(combined).hexdigest()}"

    @property
    def empty_root(self) -> str:
        return f"sha256:{hashlib.sha256(b'').hexdigest()}"

    def normalize_recipient(self, recipient: str) -> str:
        cleaned = recipient.strip()
        if not cleaned:
            raise ValueError("Recipient must be a non-empty identifier")
        return cleaned


class KeccakCommitmentScheme(CommitmentScheme):
    """keccak256 over abi-packed (address, uint256, uint256, uint256).

    Recipients must be Ethereum addresses; they are checksummed before
    hashing so the same address always yields the same leaf.
    ``hash_pair`` keeps left and right in tree order, so a proof only
    verifies against the leaf index it was issued for.
    """

    name = "keccak"

    def leaf_hash(self, allocation: Allocation) -> str:
        from web3 import Web3

        digest = Web3.solidity_keccak(
            ["address", "uint256", "uint256", "uint256"],
            [
                Web3.to_checksum_address(allocation.recipient),
                allocation.pool_id,
                allocation.amount,
                allocation.discount,
            ],
        )
        return Web3.to_hex(digest)

    def hash_pair(self, left: str, right: str) -> str:
        from web3 import Web3

        digest = Web3.solidity_keccak(
            ["bytes32", "bytes32"],
            [_to_bytes32(left), _to_bytes32(right)],
        )
        return Web3.to_hex(digest)

    @property
    def empty_root(self) -> str:
        return "0x" + "00" * 32

    def normalize_recipient(self, recipient: str) -> str:
        from web3 import Web3

        if not Web3.is_address(recipient):
            raise ValueError(f"Recipient is not an Ethereum address: {recipient}")
        return Web3.to_checksum_address(recipient)


_SCHEMES: dict[str, type[CommitmentScheme]] = {
    Sha256CommitmentScheme.name: Sha256CommitmentScheme,
    KeccakCommitmentScheme.name: KeccakCommitmentScheme,
}


def get_scheme(name: str) -> CommitmentScheme:
    """Instantiate a commitment scheme by its configured name."""
    scheme_cls = _SCHEMES.get(name)
    if scheme_cls is None:
        raise ValueError(
            f"Unknown commitment scheme: {name}. Known: {', '.join(sorted(_SCHEMES))}"
        )
    return scheme_cls()


def _to_bytes32(node: str) -> bytes:
    raw = bytes.fromhex(node.removeprefix("0x"))
    if len(raw) != 32:
        raise ValueError(f"Expected a 32-byte node, got {len(raw)} bytes")
    return raw

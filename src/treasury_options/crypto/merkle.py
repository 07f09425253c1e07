"""Merkle tree implementation for allocation batch commitments.

Leaves keep their insertion order: the leaf at position i of a batch
is addressed by index i in its inclusion proof. The hash function is
supplied by the commitment scheme, so the same tree serves both the
SHA-256 and the keccak (EVM-compatible) schemes.

Odd levels are padded by duplicating the last node. Because of that
padding a proof alone does not bound the index; callers must also
check the index against the committed leaf count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

PairHasher = Callable[[str, str], str]


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf_hash: str
    index: int
    path: tuple[str, ...]  # sibling hashes, leaf level first
    root: str


class MerkleTree:
    """An index-ordered Merkle tree.

    Usage:
        tree = MerkleTree(scheme.hash_pair, scheme.empty_root)
        tree.add_leaf(leaf_a)
        tree.add_leaf(leaf_b)
        root = tree.compute_root()
        proof = tree.inclusion_proof(0)
    """

    def __init__(self, hash_pair: PairHasher, empty_root: str) -> None:
        self._hash_pair = hash_pair
        self._empty_root = empty_root
        self._leaves: list[str] = []
        self._tree: list[list[str]] = []
        self._root: Optional[str] = None
        self._computed = False

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(leaf_hash)

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    @property
    def root(self) -> str:
        if self._root is None:
            raise RuntimeError("Must call compute_root first")
        return self._root

    @property
    def leaves(self) -> tuple[str, ...]:
        return tuple(self._leaves)

    def compute_root(self) -> str:
        """Compute the Merkle root. An empty tree has the scheme's null root."""
        if not self._leaves:
            self._computed = True
            self._root = self._empty_root
            return self._root

        self._tree = [list(self._leaves)]
        current_level = self._tree[0]
        while len(current_level) > 1:
            next_level: list[str] = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(self._hash_pair(left, right))
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        self._root = current_level[0]
        return self._root

    def inclusion_proof(self, index: int) -> MerkleProof:
        """Generate an inclusion proof for the leaf at ``index``.

        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"Leaf index {index} out of range (0..{len(self._leaves) - 1})")

        path: list[str] = []
        current_idx = index
        for level in self._tree[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                sibling = level[sibling_idx] if sibling_idx < len(level) else level[current_idx]
            else:
                sibling = level[current_idx - 1]
            path.append(sibling)
            current_idx //= 2

        return MerkleProof(
            leaf_hash=self._leaves[index],
            index=index,
            path=tuple(path),
            root=self._tree[-1][0],
        )


def compute_root_from_proof(
    leaf_hash: str,
    index: int,
    path: Sequence[str],
    hash_pair: PairHasher,
) -> str:
    """Fold a proof path back up to a root.

    The index bits choose the side at each level: an even index means
    the running node is the left child.
    """
    if index < 0 or index >= (1 << len(path)):
        raise ValueError(f"Index {index} not addressable by a proof of depth {len(path)}")
    node = leaf_hash
    current_idx = index
    for sibling in path:
        if current_idx % 2 == 0:
            node = hash_pair(node, sibling)
        else:
            node = hash_pair(sibling, node)
        current_idx //= 2
    return node

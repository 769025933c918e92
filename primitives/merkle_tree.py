"""Append-only note accumulator: fixed-depth binary Merkle tree using Poseidon2."""

from functools import lru_cache
from typing import Iterable, List, Optional, Sequence

import numpy as np

from primitives.field import is_canonical
from primitives.poseidon2 import hash_2

# --- Constants ---

ZERO_LEAF = 0
MAX_DEPTH = 32
_INITIAL_SLOTS = 16

# --- Type Aliases ---

MerkleRoot = int
SiblingPath = List[int]


class CapacityExceeded(OverflowError):
    """The tree already holds 2^depth leaves."""


@lru_cache(maxsize=None)
def zero_hashes(depth: int) -> tuple:
    """zeros[l] is the root of an empty subtree of height l, for l in [0, depth]."""
    zeros = [ZERO_LEAF]
    for _ in range(depth):
        zeros.append(hash_2(zeros[-1], zeros[-1]))
    return tuple(zeros)


# --- Merkle Tree ---

class NoteMerkleTree:
    """Fixed-depth binary Merkle tree of note commitments.

    Nodes live in an arena: one growable numpy object array per level, slot
    ``pos`` of level ``l`` holding the hash of leaves
    ``[pos * 2^l, (pos + 1) * 2^l)``. Appending a leaf rewrites exactly one
    slot per level, so insertion is O(depth). Slots beyond the filled prefix of
    a level are never read; empty subtrees resolve to ``zero_hashes``.
    """

    def __init__(self, depth: int = 16):
        if not 1 <= depth <= MAX_DEPTH:
            raise ValueError(f"depth must be in [1, {MAX_DEPTH}], got {depth}")

        self.depth = depth
        self.capacity = 1 << depth
        self.zeros = zero_hashes(depth)

        self._levels: List[np.ndarray] = [
            np.zeros(_INITIAL_SLOTS, dtype=object) for _ in range(depth + 1)
        ]
        self._size = 0
        self._root = self.zeros[depth]
        self._index: dict = {}

    # --- Core Operations ---

    def insert(self, commitment: int) -> int:
        """Append a commitment and return its leaf index."""
        if not is_canonical(commitment):
            raise ValueError(f"commitment is not a canonical field element: {commitment}")
        if self._size >= self.capacity:
            raise CapacityExceeded(
                f"tree of depth {self.depth} is full ({self.capacity} leaves)"
            )

        index = self._size
        self._set(0, index, commitment)
        self._size += 1
        self._refresh_path(index)
        self._index.setdefault(commitment, index)
        return index

    def insert_many(self, commitments: Iterable[int]) -> List[int]:
        return [self.insert(c) for c in commitments]

    def root(self) -> MerkleRoot:
        """Current root; the empty-tree root when no leaf was inserted."""
        return self._root

    def __len__(self) -> int:
        return self._size

    def leaf(self, index: int) -> int:
        if not 0 <= index < self._size:
            raise IndexError(f"leaf index {index} out of range [0, {self._size})")
        return int(self._levels[0][index])

    def leaves(self) -> List[int]:
        return [int(x) for x in self._levels[0][:self._size]]

    def index_of(self, commitment: int) -> Optional[int]:
        """Leaf index of the first occurrence of commitment, or None."""
        return self._index.get(commitment)

    def path_to(self, index: int) -> SiblingPath:
        """Sibling hashes from the leaf level up to (not including) the root."""
        if not 0 <= index < self._size:
            raise IndexError(f"leaf index {index} out of range [0, {self._size})")
        path = []
        pos = index
        for level in range(self.depth):
            path.append(self._node(level, pos ^ 1))
            pos >>= 1
        return path

    def root_after(self, commitments: Sequence[int]) -> MerkleRoot:
        """Root the tree would have after appending commitments; the tree is left unchanged."""
        mark = self._size
        try:
            for c in commitments:
                self.insert(c)
            return self._root
        finally:
            self.rollback(mark)

    def rollback(self, size: int) -> None:
        """Discard leaves appended after the tree held ``size`` leaves.

        Only meant for undoing a step that was never committed; committed
        leaves are never removed.
        """
        if not 0 <= size <= self._size:
            raise ValueError(f"cannot roll back to size {size} (current size {self._size})")
        for index in range(size, self._size):
            c = int(self._levels[0][index])
            if self._index.get(c) == index:
                del self._index[c]
        self._size = size
        if size == 0:
            self._root = self.zeros[self.depth]
        else:
            self._refresh_path(size - 1)

    # --- Verification ---

    @staticmethod
    def compute_root(leaf: int, index: int, path: Sequence[int]) -> MerkleRoot:
        """Fold a sibling path from leaf to root."""
        node = leaf
        pos = index
        for sibling in path:
            if pos & 1:
                node = hash_2(sibling, node)
            else:
                node = hash_2(node, sibling)
            pos >>= 1
        return node

    @staticmethod
    def verify_path(root: MerkleRoot, leaf: int, index: int, path: Sequence[int]) -> bool:
        """Verify an inclusion path for a leaf."""
        if index < 0 or index >> len(path):
            return False
        return NoteMerkleTree.compute_root(leaf, index, path) == root

    # --- Construction ---

    @classmethod
    def from_leaves(cls, leaves: Sequence[int], depth: int = 16) -> "NoteMerkleTree":
        """Build a tree level by level from a full leaf sequence."""
        tree = cls(depth)
        n = len(leaves)
        if n > tree.capacity:
            raise CapacityExceeded(f"{n} leaves do not fit a tree of depth {depth}")

        level_nodes = [int(x) for x in leaves]
        for c in level_nodes:
            if not is_canonical(c):
                raise ValueError(f"commitment is not a canonical field element: {c}")
        for i, c in enumerate(level_nodes):
            tree._index.setdefault(c, i)

        for level in range(depth + 1):
            for pos, node in enumerate(level_nodes):
                tree._set(level, pos, node)
            if level == depth:
                break
            if len(level_nodes) % 2:
                level_nodes.append(tree.zeros[level])
            level_nodes = [
                hash_2(level_nodes[i], level_nodes[i + 1])
                for i in range(0, len(level_nodes), 2)
            ]

        tree._size = n
        tree._root = tree._node(depth, 0)
        return tree

    # --- Internal Helpers ---

    def _filled(self, level: int) -> int:
        """Number of slots at a level that cover at least one leaf."""
        return (self._size + (1 << level) - 1) >> level

    def _node(self, level: int, pos: int) -> int:
        if pos < self._filled(level):
            return int(self._levels[level][pos])
        return self.zeros[level]

    def _set(self, level: int, pos: int, value: int) -> None:
        slots = self._levels[level]
        if pos >= len(slots):
            grown = np.zeros(max(2 * len(slots), pos + 1), dtype=object)
            grown[:len(slots)] = slots
            self._levels[level] = slots = grown
        slots[pos] = value

    def _refresh_path(self, index: int) -> None:
        """Recompute every ancestor of the rightmost leaf ``index``."""
        node = int(self._levels[0][index])
        pos = index
        for level in range(self.depth):
            if pos & 1:
                node = hash_2(int(self._levels[level][pos - 1]), node)
            else:
                node = hash_2(node, self.zeros[level])
            pos >>= 1
            self._set(level + 1, pos, node)
        self._root = node

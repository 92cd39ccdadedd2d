"""
Fixed-depth, append-only Merkle tree over field elements.

Leaves are consent commitments in insertion order. Positions that hold no
leaf yet are filled with a zero chain:

    zero[0] = 0
    zero[l + 1] = node(zero[l], zero[l])

so the root is a pure function of the ordered insertion history.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .config import TREE_DEPTH
from .exceptions import AccumulatorFullError
from .security import ConsentHasher, get_default_hasher
from .types import MerklePath


def zero_hashes(depth: int, hasher: Optional[ConsentHasher] = None) -> List[int]:
    """
    Roots of empty subtrees for every height 0..depth.

    Returns:
        List of ``depth + 1`` field elements
    """
    hasher = hasher or get_default_hasher()
    zeros = [0]
    for _ in range(depth):
        zeros.append(hasher.node(zeros[-1], zeros[-1]))
    return zeros


def compute_root(
    leaf: int, path: MerklePath, hasher: Optional[ConsentHasher] = None
) -> int:
    """
    Fold a leaf up its authentication path.

    Note:
        Uses fixed left||right ordering (no sorting). A direction bit of 1
        places the running node on the right.
    """
    hasher = hasher or get_default_hasher()
    current = leaf
    for sibling, bit in zip(path.siblings, path.path_bits):
        if bit:
            current = hasher.node(sibling, current)
        else:
            current = hasher.node(current, sibling)
    return current


def verify_path(
    leaf: int,
    path: MerklePath,
    root: int,
    hasher: Optional[ConsentHasher] = None,
) -> bool:
    """
    Verify a Merkle authentication path.

    Returns:
        True if path is valid, False otherwise

    Example:
        if verify_path(my_leaf, my_path, expected_root):
            print("Leaf is in tree")
    """
    if any(bit not in (0, 1) for bit in path.path_bits):
        return False
    return compute_root(leaf, path, hasher) == root


class IncrementalMerkleTree:
    """
    Append-only tree of fixed depth.

    Only non-empty nodes are stored; a missing node reads as the zero hash
    of its height.
    """

    def __init__(
        self, depth: int = TREE_DEPTH, hasher: Optional[ConsentHasher] = None
    ) -> None:
        if depth < 1:
            raise ValueError("depth must be >= 1")
        self._depth = depth
        self._hasher = hasher or get_default_hasher()
        self._zeros = zero_hashes(depth, self._hasher)
        self._levels: List[Dict[int, int]] = [{} for _ in range(depth + 1)]
        self._first_index: Dict[int, int] = {}
        self._size = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def capacity(self) -> int:
        return 1 << self._depth

    def __len__(self) -> int:
        return self._size

    def is_full(self) -> bool:
        return self._size >= self.capacity

    @property
    def root(self) -> int:
        return self._levels[self._depth].get(0, self._zeros[self._depth])

    def _node(self, level: int, index: int) -> int:
        return self._levels[level].get(index, self._zeros[level])

    def append(self, leaf: int) -> int:
        """
        Insert ``leaf`` at the next free position.

        Returns:
            The new root

        Raises:
            AccumulatorFullError: If every position is taken
        """
        if self.is_full():
            raise AccumulatorFullError(
                f"tree of depth {self._depth} holds at most {self.capacity} leaves"
            )

        index = self._size
        self._levels[0][index] = leaf
        self._first_index.setdefault(leaf, index)

        current = leaf
        for level in range(self._depth):
            if index & 1:
                current = self._hasher.node(self._node(level, index - 1), current)
            else:
                current = self._hasher.node(current, self._node(level, index + 1))
            index >>= 1
            self._levels[level + 1][index] = current

        self._size += 1
        return self.root

    def index_of(self, leaf: int) -> int:
        """Position of the first occurrence of ``leaf``; KeyError if absent."""
        return self._first_index[leaf]

    def path(self, index: int) -> MerklePath:
        """Authentication path of the leaf at ``index``."""
        if not 0 <= index < self._size:
            raise IndexError(f"no leaf at index {index}")
        siblings = []
        bits = []
        for level in range(self._depth):
            bits.append(index & 1)
            siblings.append(self._node(level, index ^ 1))
            index >>= 1
        return MerklePath(siblings=tuple(siblings), path_bits=tuple(bits))

    def leaves(self) -> List[int]:
        return [self._levels[0][i] for i in range(self._size)]

    def clear(self) -> None:
        self._levels = [{} for _ in range(self._depth + 1)]
        self._first_index = {}
        self._size = 0

"""
⚠️ DRAFT — requires crypto review before production use

Consent accumulator: Merkle tree of admitted commitments plus the set of
spent nullifiers.

This is the only mutable shared state of the server. One instance is owned
by one verification service; the admission check-and-mutate sequence runs
inside ``admission()``, the instance's single mutual-exclusion boundary.
Read-only queries do not take the lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Set

from .config import EMPTY_ROOT, TREE_DEPTH
from .exceptions import AccumulatorFullError
from .merkle import IncrementalMerkleTree
from .security import ConsentHasher, get_default_hasher
from .store import AccumulatorStore, InMemoryStore
from .types import MerklePath

logger = logging.getLogger(__name__)


class ConsentAccumulator:
    """
    Authenticated set of consent commitments and spent nullifiers.

    Example:
        >>> acc = ConsentAccumulator()
        >>> acc.current_root()
        0
        >>> root = acc.insert(commitment)
        >>> acc.membership_root_valid(root)
        True
    """

    def __init__(
        self,
        store: Optional[AccumulatorStore] = None,
        *,
        depth: int = TREE_DEPTH,
        hasher: Optional[ConsentHasher] = None,
    ) -> None:
        self._store = store if store is not None else InMemoryStore()
        self._hasher = hasher or get_default_hasher()
        self._tree = IncrementalMerkleTree(depth=depth, hasher=self._hasher)
        self._nullifiers: Set[int] = set()
        self._lock = threading.Lock()
        self._replay()

    def _replay(self) -> None:
        leaves, nullifiers = self._store.load()
        for leaf in leaves:
            self._tree.append(leaf)
        self._nullifiers = set(nullifiers)
        if leaves or nullifiers:
            logger.info(
                "Restored accumulator: %d leaves, %d nullifiers",
                len(leaves),
                len(nullifiers),
            )

    @property
    def depth(self) -> int:
        return self._tree.depth

    @property
    def hasher(self) -> ConsentHasher:
        return self._hasher

    def __len__(self) -> int:
        return len(self._tree)

    @contextmanager
    def admission(self) -> Iterator["ConsentAccumulator"]:
        """Hold the single-writer lock for a check-and-mutate sequence."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_root(self) -> int:
        """Present root; the empty sentinel while no leaf exists."""
        if len(self._tree) == 0:
            return EMPTY_ROOT
        return self._tree.root

    def membership_root_valid(self, claimed_root: int) -> bool:
        """
        True iff ``claimed_root`` is the empty sentinel or the current root.

        Any older root is refused: accepting a once-valid root would let a
        client insert a second commitment while hiding that the tree moved.
        """
        return claimed_root == EMPTY_ROOT or claimed_root == self.current_root()

    def has_nullifier(self, nullifier: int) -> bool:
        return nullifier in self._nullifiers

    def membership_path(self, commitment: int) -> MerklePath:
        """
        Path of the first leaf equal to ``commitment``.

        Raises:
            KeyError: If the commitment was never admitted
        """
        return self._tree.path(self._tree.index_of(commitment))

    def is_full(self) -> bool:
        return self._tree.is_full()

    # ------------------------------------------------------------------
    # Mutations (call inside admission())
    # ------------------------------------------------------------------

    def record_nullifier(self, nullifier: int) -> None:
        self._store.add_nullifier(nullifier)
        self._nullifiers.add(nullifier)

    def insert(self, commitment: int) -> int:
        """
        Append ``commitment`` as the next leaf.

        Returns:
            The new root

        Raises:
            AccumulatorFullError: If the tree has no free leaf
        """
        if self._tree.is_full():
            raise AccumulatorFullError(
                f"accumulator of depth {self.depth} has no free leaf"
            )
        self._store.append_leaf(commitment)
        return self._tree.append(commitment)

    def admit(self, nullifier: int, commitment: int) -> int:
        """
        Spend ``nullifier`` and append ``commitment`` as one step.

        Memory changes only after the store accepted both values, so a
        failed write leaves the nullifier unspent and the tree untouched.

        Returns:
            The new root

        Raises:
            AccumulatorFullError: If the tree has no free leaf
        """
        if self._tree.is_full():
            raise AccumulatorFullError(
                f"accumulator of depth {self.depth} has no free leaf"
            )
        self._store.admit(nullifier, commitment)
        self._nullifiers.add(nullifier)
        return self._tree.append(commitment)

    def reset(self) -> None:
        """Administrative reset to the empty state."""
        with self._lock:
            self._store.clear()
            self._tree.clear()
            self._nullifiers = set()
        logger.warning("Accumulator reset: nullifiers and tree cleared")

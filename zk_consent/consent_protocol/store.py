"""
Persistence backends for the consent accumulator.

The accumulator keeps its working state in memory and writes every
mutation through a store with a narrow interface. Swapping the store
changes durability, never protocol behaviour.
"""

from __future__ import annotations

import os
import struct
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterator, List, Set, Tuple, Union

import cbor2

from .exceptions import ConfigurationError

_LEAF = "leaf"
_NULLIFIER = "nullifier"
_ADMISSION = "admission"
_HEADER = struct.Struct(">I")


def _well_formed(value: Any) -> bool:
    if isinstance(value, list):
        return len(value) == 2 and all(isinstance(v, int) for v in value)
    return isinstance(value, int)


class AccumulatorStore(ABC):
    """Write-through persistence for leaves and nullifiers."""

    @abstractmethod
    def load(self) -> Tuple[List[int], Set[int]]:
        """Return (leaves in insertion order, nullifier set)."""

    @abstractmethod
    def append_leaf(self, commitment: int) -> None:
        ...

    @abstractmethod
    def add_nullifier(self, nullifier: int) -> None:
        ...

    @abstractmethod
    def admit(self, nullifier: int, commitment: int) -> None:
        """Persist a spent nullifier and its new leaf together, or neither."""

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryStore(AccumulatorStore):
    """Nothing survives the process; state lives for the server's lifetime."""

    def __init__(self) -> None:
        self._leaves: List[int] = []
        self._nullifiers: Set[int] = set()

    def load(self) -> Tuple[List[int], Set[int]]:
        return list(self._leaves), set(self._nullifiers)

    def append_leaf(self, commitment: int) -> None:
        self._leaves.append(commitment)

    def add_nullifier(self, nullifier: int) -> None:
        self._nullifiers.add(nullifier)

    def admit(self, nullifier: int, commitment: int) -> None:
        self._nullifiers.add(nullifier)
        self._leaves.append(commitment)

    def clear(self) -> None:
        self._leaves.clear()
        self._nullifiers.clear()


class CborFileStore(AccumulatorStore):
    """
    Append-only log of CBOR records, replayed on load.

    Each entry is a 4-byte big-endian length followed by a CBOR map
    ``{"k": "leaf" | "nullifier", "v": <int>}`` or, for an admission,
    ``{"k": "admission", "v": [<nullifier>, <commitment>]}``. An admission
    is one write, so a failed append never leaves a spent nullifier
    without its leaf. Replaying the log in order rebuilds the same leaves,
    hence the same root.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        if self._path.exists() and not self._path.is_file():
            raise ConfigurationError(f"state path is not a file: {self._path}")

    @property
    def path(self) -> Path:
        return self._path

    def _records(self) -> Iterator[dict]:
        data = self._path.read_bytes()
        offset = 0
        while offset < len(data):
            if offset + _HEADER.size > len(data):
                raise ConfigurationError(
                    f"truncated accumulator log {self._path} at offset {offset}"
                )
            (length,) = _HEADER.unpack_from(data, offset)
            offset += _HEADER.size
            if offset + length > len(data):
                raise ConfigurationError(
                    f"truncated accumulator log {self._path} at offset {offset}"
                )
            try:
                record = cbor2.loads(data[offset : offset + length])
            except (cbor2.CBORDecodeError, ValueError) as exc:
                raise ConfigurationError(
                    f"corrupt accumulator log {self._path} at offset {offset}"
                ) from exc
            if not isinstance(record, dict) or not _well_formed(record.get("v")):
                raise ConfigurationError(f"unexpected record in accumulator log {self._path}")
            offset += length
            yield record

    def load(self) -> Tuple[List[int], Set[int]]:
        leaves: List[int] = []
        nullifiers: Set[int] = set()
        if not self._path.exists():
            return leaves, nullifiers

        for record in self._records():
            kind, value = record.get("k"), record["v"]
            if kind == _LEAF and isinstance(value, int):
                leaves.append(value)
            elif kind == _NULLIFIER and isinstance(value, int):
                nullifiers.add(value)
            elif kind == _ADMISSION and isinstance(value, list):
                nullifier, commitment = value
                nullifiers.add(nullifier)
                leaves.append(commitment)
            else:
                raise ConfigurationError(
                    f"unknown record kind {kind!r} in {self._path}"
                )
        return leaves, nullifiers

    def _append(self, kind: str, value: Union[int, List[int]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        blob = cbor2.dumps({"k": kind, "v": value})
        with self._path.open("ab") as fp:
            start = fp.tell()
            try:
                fp.write(_HEADER.pack(len(blob)) + blob)
                fp.flush()
                os.fsync(fp.fileno())
            except OSError:
                fp.truncate(start)
                raise

    def append_leaf(self, commitment: int) -> None:
        self._append(_LEAF, commitment)

    def add_nullifier(self, nullifier: int) -> None:
        self._append(_NULLIFIER, nullifier)

    def admit(self, nullifier: int, commitment: int) -> None:
        self._append(_ADMISSION, [nullifier, commitment])

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()

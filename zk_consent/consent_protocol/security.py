"""
⚠️ DRAFT — requires crypto review before production use

Security utilities: randomness, field encoding and the hash primitive ``H``.

The protocol treats ``H`` as a collaborator: anything with the
``ConsentHasher`` shape can be injected. The default realisation hashes
length-prefixed, domain-separated field encodings with SHA3-256 and reduces
the digest into the BN254 scalar field. A circuit-matching hasher (e.g.
Poseidon) must be injected when proofs come from a compiled circuit.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import secrets
from typing import Iterable, Optional

from .config import (
    DOMAIN_SEPARATORS,
    FIELD_ELEMENT_BYTES,
    FIELD_MODULUS,
    HASH_FUNCTION,
)


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> secret = rng.get_random_bytes(32)
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def get_random_bytes(self, n: int) -> bytes:
        """Get n cryptographically secure random bytes."""
        self._check_fork()
        return secrets.token_bytes(n)

    def get_random_field_element(self) -> int:
        """Get a uniformly random element of the scalar field."""
        self._check_fork()
        return self._rng.randrange(0, FIELD_MODULUS)


# ============================================================================
# FIELD ENCODING
# ============================================================================


def is_field_element(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def field_to_bytes(value: int) -> bytes:
    """
    Encode a field element as 32 big-endian bytes.

    Raises:
        ValueError: If value is not a field element
    """
    if not is_field_element(value):
        raise ValueError(f"not a field element: {value!r}")
    return value.to_bytes(FIELD_ELEMENT_BYTES, "big")


def bytes_to_field(data: bytes) -> int:
    """
    Map raw bytes into the field (little-endian integer, reduced mod r).

    This is how a 32-byte identity secret becomes a circuit input.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    return int.from_bytes(bytes(data), "little") % FIELD_MODULUS


def _new_hash():
    return hashlib.sha3_256() if HASH_FUNCTION == "SHA3-256" else hashlib.sha256()


def hash_to_field(domain_sep: bytes, elements: Iterable[int]) -> int:
    """
    Hash field elements to a field element with domain separation.

    Uses length-prefixed encoding (len || data) for the separator and a
    count prefix for the elements, so inputs of different arity never
    collide.

    Raises:
        ValueError: If the separator is empty or an element is out of range
    """
    if not isinstance(domain_sep, bytes) or not domain_sep:
        raise ValueError("Domain separator cannot be empty")

    values = list(elements)
    h = _new_hash()
    h.update(len(domain_sep).to_bytes(4, "big"))
    h.update(domain_sep)
    h.update(len(values).to_bytes(4, "big"))
    for value in values:
        h.update(field_to_bytes(value))
    return int.from_bytes(h.digest(), "big") % FIELD_MODULUS


# ============================================================================
# CONSENT HASHER (the H collaborator)
# ============================================================================


class ConsentHasher:
    """
    Default realisation of ``H`` for commitments, nullifiers and tree nodes.

    Deterministic: two instances always agree, so independently running
    verifiers reproduce the same roots.
    """

    name = "sha3-256-bn254"

    def commitment(self, consent_bits: int, timestamp: int, identity_secret: int) -> int:
        """H(consentBits, timestamp, identitySecret)"""
        return hash_to_field(
            DOMAIN_SEPARATORS["commitment"],
            (consent_bits, timestamp, identity_secret),
        )

    def nullifier(self, identity_secret: int, domain_salt: int) -> int:
        """H(identitySecret, domainSalt)"""
        return hash_to_field(
            DOMAIN_SEPARATORS["nullifier"], (identity_secret, domain_salt)
        )

    def node(self, left: int, right: int) -> int:
        """Merkle parent of two children (fixed left||right order)."""
        return hash_to_field(DOMAIN_SEPARATORS["merkle_node"], (left, right))


_default_hasher: Optional[ConsentHasher] = None


def get_default_hasher() -> ConsentHasher:
    global _default_hasher
    if _default_hasher is None:
        _default_hasher = ConsentHasher()
    return _default_hasher


def domain_salt_for(domain: str) -> int:
    """
    Derive the per-domain salt from a domain name.

    The name is lower-cased and stripped so that ``Example.com`` and
    ``example.com`` share one nullifier space.
    """
    if not isinstance(domain, str) or not domain.strip():
        raise ValueError("domain must be a non-empty string")
    normalized = domain.strip().lower().encode("utf-8")
    h = _new_hash()
    h.update(DOMAIN_SEPARATORS["domain_salt"])
    h.update(normalized)
    return int.from_bytes(h.digest(), "big") % FIELD_MODULUS


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Constant-time comparison (hmac.compare_digest)."""
    return hmac.compare_digest(a, b)

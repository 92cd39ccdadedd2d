"""
⚠️ DRAFT — requires crypto review before production use

Common types for consent state transitions.

This module provides:
1. ConsentRecord - a point-in-time consent grant
2. MerklePath - membership path for a prior record
3. PublicSignals - the five public inputs of a transition, in circuit order
4. TransitionWitness - the private inputs known only to the prover
5. Proof - tagged variant ``ZkProof | AttestedClaim``

Wire format (JSON/CBOR compatible dicts):

    {"mode": "zk", "proof": {...backend-native...},
     "publicSignals": ["<currentTime>", "<domainSalt>", "<newCommitment>",
                       "<nullifier>", "<root>"]}

    {"mode": "attested", "publicSignals": [...],
     "offchain": {"nullifier": "...", "commitment": "...",
                  "signature": "<hex>", "verifyKey": "<hex>",
                  "timestamp": 1700000000}}

The ``mode`` tag is optional on input; when absent the variant is decided
once here, at the boundary, and never again downstream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .config import (
    ATTESTATION_SIGNATURE_BYTES,
    ATTESTATION_VERIFY_KEY_BYTES,
    MAX_CONSENT_BITS,
    PUBLIC_SIGNAL_COUNT,
    PUBLIC_SIGNAL_NAMES,
    TIMESTAMP_BITS,
    TREE_DEPTH,
)
from .exceptions import MalformedRequest
from .security import is_field_element

# ============================================================================
# CONSENT RECORD
# ============================================================================


@dataclass(frozen=True)
class ConsentRecord:
    """
    Logical consent grant: an 8-bit category bitfield and a unix timestamp.

    Never transmitted; only its commitment leaves the client.
    """

    consent_bits: int
    timestamp: int

    def __post_init__(self) -> None:
        if not isinstance(self.consent_bits, int) or not (
            0 <= self.consent_bits <= MAX_CONSENT_BITS
        ):
            raise ValueError("consent_bits must be an 8-bit unsigned integer")
        if not isinstance(self.timestamp, int) or not (
            0 <= self.timestamp < (1 << TIMESTAMP_BITS)
        ):
            raise ValueError("timestamp must be a non-negative 64-bit integer")

    @classmethod
    def initial(cls) -> "ConsentRecord":
        """The implicit prior record of a first-ever transition."""
        return cls(consent_bits=0, timestamp=0)

    def covers(self, other: "ConsentRecord") -> bool:
        """True if every category granted by ``other`` is granted here."""
        return (self.consent_bits & other.consent_bits) == other.consent_bits


# ============================================================================
# MERKLE PATH
# ============================================================================


@dataclass(frozen=True)
class MerklePath:
    """
    Membership path: one sibling and one direction bit per level.

    ``path_bits[level] == 1`` means the running node is the right child at
    that level (its sibling sits on the left).
    """

    siblings: Tuple[int, ...]
    path_bits: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.siblings) != len(self.path_bits):
            raise ValueError("siblings and path_bits must have equal length")

    @property
    def depth(self) -> int:
        return len(self.siblings)

    @classmethod
    def empty(cls, depth: int = TREE_DEPTH) -> "MerklePath":
        return cls(siblings=(0,) * depth, path_bits=(0,) * depth)

    def to_wire(self) -> Dict[str, List[Any]]:
        return {
            "pathElements": [str(s) for s in self.siblings],
            "pathIndices": list(self.path_bits),
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "MerklePath":
        if not isinstance(data, Mapping):
            raise MalformedRequest("path must be a mapping")
        elements = data.get("pathElements")
        indices = data.get("pathIndices")
        if not isinstance(elements, list) or not isinstance(indices, list):
            raise MalformedRequest("pathElements and pathIndices must be lists")
        if len(elements) != len(indices):
            raise MalformedRequest("pathElements and pathIndices length mismatch")
        siblings = tuple(
            parse_field_element(value, f"pathElements[{i}]") for i, value in enumerate(elements)
        )
        bits = []
        for i, value in enumerate(indices):
            if value not in (0, 1) or isinstance(value, bool):
                raise MalformedRequest(f"pathIndices[{i}] must be 0 or 1")
            bits.append(value)
        return cls(siblings=siblings, path_bits=tuple(bits))


# ============================================================================
# PUBLIC SIGNALS
# ============================================================================


def parse_field_element(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise MalformedRequest(f"{label} must be a decimal field element")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.isdigit() and value.isascii():
        parsed = int(value)
    else:
        raise MalformedRequest(f"{label} must be a decimal field element")
    if not is_field_element(parsed):
        raise MalformedRequest(f"{label} is outside the field")
    return parsed


@dataclass(frozen=True)
class PublicSignals:
    """Public inputs of a transition, in circuit order."""

    current_time: int
    domain_salt: int
    new_commitment: int
    nullifier: int
    root: int

    def to_list(self) -> List[int]:
        return [
            self.current_time,
            self.domain_salt,
            self.new_commitment,
            self.nullifier,
            self.root,
        ]

    def to_wire(self) -> List[str]:
        return [str(v) for v in self.to_list()]

    @classmethod
    def from_wire(cls, values: Any) -> "PublicSignals":
        """
        Parse the five decimal-string signals.

        Raises:
            MalformedRequest: If the list is absent, has the wrong length, or
                an entry is not a decimal field element
        """
        if not isinstance(values, (list, tuple)):
            raise MalformedRequest("publicSignals must be a list")
        if len(values) != PUBLIC_SIGNAL_COUNT:
            raise MalformedRequest(
                f"publicSignals must have {PUBLIC_SIGNAL_COUNT} entries, "
                f"got {len(values)}"
            )
        parsed = [
            parse_field_element(value, name)
            for value, name in zip(values, PUBLIC_SIGNAL_NAMES)
        ]
        return cls(*parsed)


# ============================================================================
# WITNESS
# ============================================================================


@dataclass(frozen=True)
class TransitionWitness:
    """
    Private inputs of a transition.

    Values are not range-checked here: the predicate is the single place
    that decides satisfiability, so an out-of-range witness simply fails it.
    """

    identity_secret: int = field(repr=False)
    old_consent_bits: int
    new_consent_bits: int
    old_timestamp: int
    new_timestamp: int
    path: MerklePath = field(default_factory=MerklePath.empty)

    @property
    def old_record(self) -> ConsentRecord:
        return ConsentRecord(self.old_consent_bits, self.old_timestamp)

    @property
    def new_record(self) -> ConsentRecord:
        return ConsentRecord(self.new_consent_bits, self.new_timestamp)


# ============================================================================
# PROOF VARIANTS
# ============================================================================


class ProofKind(Enum):
    """
    Assurance level of a submitted proof.

    - ZK: succinct proof that the full transition predicate holds
    - ATTESTED: signature over the claim only; no proof of prior-state
      knowledge, monotonicity or expiry. Never equivalent to ZK.
    """

    ZK = "zk"
    ATTESTED = "attested"


@dataclass(frozen=True)
class ZkProof:
    """Backend-native proof object plus the public signals it attests to."""

    payload: Dict[str, Any]
    public_signals: PublicSignals

    @property
    def kind(self) -> ProofKind:
        return ProofKind.ZK

    def to_wire(self) -> Dict[str, Any]:
        return {
            "mode": self.kind.value,
            "proof": dict(self.payload),
            "publicSignals": self.public_signals.to_wire(),
        }


@dataclass(frozen=True)
class AttestedClaim:
    """Offline attestation: an Ed25519 signature over the claimed transition."""

    public_signals: PublicSignals
    nullifier: int
    commitment: int
    signature: bytes
    verify_key: bytes
    timestamp: int

    @property
    def kind(self) -> ProofKind:
        return ProofKind.ATTESTED

    def to_wire(self) -> Dict[str, Any]:
        return {
            "mode": self.kind.value,
            "publicSignals": self.public_signals.to_wire(),
            "offchain": {
                "nullifier": str(self.nullifier),
                "commitment": str(self.commitment),
                "signature": self.signature.hex(),
                "verifyKey": self.verify_key.hex(),
                "timestamp": self.timestamp,
            },
        }


Proof = Union[ZkProof, AttestedClaim]


def _parse_hex(value: Any, label: str, length: int) -> bytes:
    if not isinstance(value, str):
        raise MalformedRequest(f"{label} must be a hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise MalformedRequest(f"{label} must be a hex string") from exc
    if len(raw) != length:
        raise MalformedRequest(f"{label} must be {length} bytes")
    return raw


def _attested_from_wire(signals: PublicSignals, offchain: Any) -> AttestedClaim:
    if not isinstance(offchain, Mapping):
        raise MalformedRequest("offchain must be a mapping")
    timestamp = offchain.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
        raise MalformedRequest("offchain.timestamp must be a non-negative integer")
    return AttestedClaim(
        public_signals=signals,
        nullifier=parse_field_element(offchain.get("nullifier"), "offchain.nullifier"),
        commitment=parse_field_element(offchain.get("commitment"), "offchain.commitment"),
        signature=_parse_hex(
            offchain.get("signature"), "offchain.signature", ATTESTATION_SIGNATURE_BYTES
        ),
        verify_key=_parse_hex(
            offchain.get("verifyKey"), "offchain.verifyKey", ATTESTATION_VERIFY_KEY_BYTES
        ),
        timestamp=timestamp,
    )


def proof_from_wire(payload: Any) -> Proof:
    """
    Decode a verification request body into the tagged proof variant.

    Raises:
        MalformedRequest: If the body does not describe exactly one variant
    """
    if not isinstance(payload, Mapping):
        raise MalformedRequest("request body must be a mapping")

    signals = PublicSignals.from_wire(payload.get("publicSignals"))
    proof_obj = payload.get("proof")
    offchain = payload.get("offchain")

    mode: Optional[str] = payload.get("mode")
    if mode is None:
        if offchain is not None:
            mode = ProofKind.ATTESTED.value
        elif proof_obj is not None:
            mode = ProofKind.ZK.value
        else:
            raise MalformedRequest("request carries neither proof nor offchain claim")

    if mode == ProofKind.ZK.value:
        if not isinstance(proof_obj, Mapping) or not proof_obj:
            raise MalformedRequest("proof must be a non-empty mapping")
        return ZkProof(payload=dict(proof_obj), public_signals=signals)

    if mode == ProofKind.ATTESTED.value:
        if offchain is None:
            raise MalformedRequest("attested mode requires an offchain claim")
        return _attested_from_wire(signals, offchain)

    raise MalformedRequest(f"unknown proof mode: {mode!r}")


def signals_summary(signals: PublicSignals) -> Dict[str, str]:
    """Short, log-safe prefixes of the public signals."""
    return {
        "nullifier": str(signals.nullifier)[:12],
        "commitment": str(signals.new_commitment)[:12],
        "root": str(signals.root)[:12],
    }


"""
⚠️ DRAFT — requires crypto review before production use

Consent transition predicate.

A transition from an old consent record to a new one is valid when all of
the following hold for the public signals and the private witness:

1. Membership: H(oldBits, oldTimestamp, secret) is a leaf under ``root``
   along the witness path. Skipped when ``root`` is the empty sentinel
   (first-ever transition).
2. Nullifier: nullifier == H(secret, domainSalt).
3. Commitment: newCommitment == H(newBits, newTimestamp, secret).
4. Monotonicity: newBits >= oldBits as unsigned 8-bit integers.
5. Freshness: newTimestamp <= currentTime and
   currentTime - newTimestamp <= MAX_CONSENT_AGE_SECONDS.

Range checks (8-bit consent fields, 64-bit timestamps, binary path bits,
path depth) are part of the predicate, matching what the circuit enforces
through its bit decompositions.

This is a pure function: it is what the circuit compiles, what the
in-process backend evaluates before issuing a proof, and what the client
runs before handing a witness to any backend.

Monotonicity compares integers, not bit sets: 3 -> 8 passes although it
drops categories 0 and 1. ``is_bitwise_superset`` is provided for callers
that want to detect this; it is not part of satisfiability.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .config import (
    EMPTY_ROOT,
    MAX_CONSENT_AGE_SECONDS,
    CONSENT_BITS_WIDTH,
    TIMESTAMP_BITS,
    TREE_DEPTH,
)
from .merkle import verify_path
from .security import ConsentHasher, get_default_hasher, is_field_element
from .types import PublicSignals, TransitionWitness


class TransitionCheck(Enum):
    RANGE = "range"
    MEMBERSHIP = "membership"
    NULLIFIER = "nullifier"
    COMMITMENT = "commitment"
    MONOTONICITY = "monotonicity"
    FRESHNESS = "freshness"


@dataclass(frozen=True)
class PredicateResult:
    failed: Tuple[TransitionCheck, ...]

    @property
    def satisfied(self) -> bool:
        return not self.failed

    def __bool__(self) -> bool:
        return self.satisfied


def _is_uint(value, bits: int) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < (1 << bits)
    )


def _ranges_hold(witness: TransitionWitness, depth: int) -> bool:
    if not is_field_element(witness.identity_secret):
        return False
    if not _is_uint(witness.old_consent_bits, CONSENT_BITS_WIDTH):
        return False
    if not _is_uint(witness.new_consent_bits, CONSENT_BITS_WIDTH):
        return False
    if not _is_uint(witness.old_timestamp, TIMESTAMP_BITS):
        return False
    if not _is_uint(witness.new_timestamp, TIMESTAMP_BITS):
        return False
    if witness.path.depth != depth:
        return False
    return all(bit in (0, 1) for bit in witness.path.path_bits)


def _signals_in_range(public: PublicSignals) -> bool:
    if not all(is_field_element(value) for value in public.to_list()):
        return False
    return _is_uint(public.current_time, TIMESTAMP_BITS)


def is_fresh(current_time: int, new_timestamp: int) -> bool:
    """newTimestamp <= currentTime and the record is at most two years old."""
    if new_timestamp > current_time:
        return False
    return current_time - new_timestamp <= MAX_CONSENT_AGE_SECONDS


def is_monotonic(old_consent_bits: int, new_consent_bits: int) -> bool:
    return new_consent_bits >= old_consent_bits


def is_bitwise_superset(old_consent_bits: int, new_consent_bits: int) -> bool:
    """True if the new bitfield keeps every category of the old one."""
    return (new_consent_bits & old_consent_bits) == old_consent_bits


def evaluate_transition(
    public: PublicSignals,
    witness: TransitionWitness,
    hasher: Optional[ConsentHasher] = None,
    depth: int = TREE_DEPTH,
) -> PredicateResult:
    """
    Evaluate every check and report the ones that failed.

    Out-of-range witnesses or public signals fail RANGE only; the remaining
    checks are not evaluated on values the circuit could not represent.
    """
    hasher = hasher or get_default_hasher()

    if not _ranges_hold(witness, depth) or not _signals_in_range(public):
        return PredicateResult(failed=(TransitionCheck.RANGE,))

    failed = []
    secret = witness.identity_secret

    if public.root != EMPTY_ROOT:
        old_leaf = hasher.commitment(
            witness.old_consent_bits, witness.old_timestamp, secret
        )
        if not verify_path(old_leaf, witness.path, public.root, hasher):
            failed.append(TransitionCheck.MEMBERSHIP)

    if public.nullifier != hasher.nullifier(secret, public.domain_salt):
        failed.append(TransitionCheck.NULLIFIER)

    expected_commitment = hasher.commitment(
        witness.new_consent_bits, witness.new_timestamp, secret
    )
    if public.new_commitment != expected_commitment:
        failed.append(TransitionCheck.COMMITMENT)

    if not is_monotonic(witness.old_consent_bits, witness.new_consent_bits):
        failed.append(TransitionCheck.MONOTONICITY)

    if not is_fresh(public.current_time, witness.new_timestamp):
        failed.append(TransitionCheck.FRESHNESS)

    return PredicateResult(failed=tuple(failed))


def is_satisfied(
    public: PublicSignals,
    witness: TransitionWitness,
    hasher: Optional[ConsentHasher] = None,
) -> bool:
    return evaluate_transition(public, witness, hasher).satisfied


def derive_public_signals(
    witness: TransitionWitness,
    *,
    current_time: int,
    domain_salt: int,
    claimed_root: int = EMPTY_ROOT,
    hasher: Optional[ConsentHasher] = None,
) -> PublicSignals:
    """
    Compute the public signals a prover will claim for ``witness``.

    The result is only satisfiable if the witness is; callers still run
    ``evaluate_transition`` before proving.
    """
    hasher = hasher or get_default_hasher()
    secret = witness.identity_secret
    return PublicSignals(
        current_time=current_time,
        domain_salt=domain_salt,
        new_commitment=hasher.commitment(
            witness.new_consent_bits, witness.new_timestamp, secret
        ),
        nullifier=hasher.nullifier(secret, domain_salt),
        root=claimed_root,
    )

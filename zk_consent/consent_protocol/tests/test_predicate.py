from dataclasses import replace

import pytest

from zk_consent.consent_protocol.config import (
    EMPTY_ROOT,
    FIELD_MODULUS,
    MAX_CONSENT_AGE_SECONDS,
    TREE_DEPTH,
)
from zk_consent.consent_protocol.merkle import IncrementalMerkleTree
from zk_consent.consent_protocol.predicate import (
    TransitionCheck,
    derive_public_signals,
    evaluate_transition,
    is_bitwise_superset,
    is_fresh,
    is_monotonic,
    is_satisfied,
)
from zk_consent.consent_protocol.security import domain_salt_for, get_default_hasher
from zk_consent.consent_protocol.types import MerklePath, TransitionWitness

SECRET = 0x1234_5678_9ABC_DEF0
NOW = 1_700_000_000
SALT = domain_salt_for("example.com")


def _first(new_bits: int = 255, new_ts: int = NOW, current_time: int = NOW):
    witness = TransitionWitness(
        identity_secret=SECRET,
        old_consent_bits=0,
        new_consent_bits=new_bits,
        old_timestamp=0,
        new_timestamp=new_ts,
    )
    signals = derive_public_signals(witness, current_time=current_time, domain_salt=SALT)
    return witness, signals


def _with_prior(old_bits: int, new_bits: int):
    hasher = get_default_hasher()
    tree = IncrementalMerkleTree(depth=TREE_DEPTH)
    tree.append(hasher.commitment(9, 5, 777))
    old_leaf = hasher.commitment(old_bits, NOW - 100, SECRET)
    tree.append(old_leaf)
    witness = TransitionWitness(
        identity_secret=SECRET,
        old_consent_bits=old_bits,
        new_consent_bits=new_bits,
        old_timestamp=NOW - 100,
        new_timestamp=NOW,
        path=tree.path(1),
    )
    signals = derive_public_signals(
        witness, current_time=NOW, domain_salt=SALT, claimed_root=tree.root
    )
    return witness, signals


def test_first_time_full_consent_is_satisfied() -> None:
    witness, signals = _first()
    assert signals.root == EMPTY_ROOT
    result = evaluate_transition(signals, witness)
    assert result.satisfied
    assert result.failed == ()
    assert bool(result) is True


def test_transition_with_membership_is_satisfied() -> None:
    witness, signals = _with_prior(old_bits=3, new_bits=7)
    assert is_satisfied(signals, witness)


def test_wrong_membership_path_fails() -> None:
    witness, signals = _with_prior(old_bits=3, new_bits=7)
    bad_path = MerklePath(
        siblings=(1,) + witness.path.siblings[1:], path_bits=witness.path.path_bits
    )
    result = evaluate_transition(signals, replace(witness, path=bad_path))
    assert result.failed == (TransitionCheck.MEMBERSHIP,)


def test_old_record_not_in_tree_fails_membership() -> None:
    witness, signals = _with_prior(old_bits=3, new_bits=7)
    # Claiming a different old record than the one admitted
    lying = replace(witness, old_consent_bits=1)
    assert TransitionCheck.MEMBERSHIP in evaluate_transition(signals, lying).failed


def test_every_downgrade_is_unsatisfiable() -> None:
    hasher = get_default_hasher()
    for old_bits in range(256):
        for new_bits in range(old_bits):
            witness = TransitionWitness(
                identity_secret=SECRET,
                old_consent_bits=old_bits,
                new_consent_bits=new_bits,
                old_timestamp=0,
                new_timestamp=NOW,
            )
            signals = derive_public_signals(
                witness, current_time=NOW, domain_salt=SALT, hasher=hasher
            )
            result = evaluate_transition(signals, witness, hasher)
            assert TransitionCheck.MONOTONICITY in result.failed


@pytest.mark.parametrize("age", [MAX_CONSENT_AGE_SECONDS + 1, MAX_CONSENT_AGE_SECONDS + 86_400])
def test_expired_record_is_unsatisfiable(age: int) -> None:
    witness, signals = _first(new_ts=NOW - age)
    assert evaluate_transition(signals, witness).failed == (TransitionCheck.FRESHNESS,)


def test_age_boundary_is_inclusive() -> None:
    witness, signals = _first(new_ts=NOW - MAX_CONSENT_AGE_SECONDS)
    assert is_satisfied(signals, witness)


def test_future_timestamp_is_unsatisfiable() -> None:
    witness, signals = _first(new_ts=NOW + 1)
    assert evaluate_transition(signals, witness).failed == (TransitionCheck.FRESHNESS,)


def test_wrong_nullifier_fails() -> None:
    witness, signals = _first()
    tampered = replace(signals, nullifier=signals.nullifier ^ 1)
    assert evaluate_transition(tampered, witness).failed == (TransitionCheck.NULLIFIER,)


def test_nullifier_for_other_domain_fails() -> None:
    witness, signals = _first()
    other = replace(signals, domain_salt=domain_salt_for("other.example"))
    assert evaluate_transition(other, witness).failed == (TransitionCheck.NULLIFIER,)


def test_wrong_commitment_fails() -> None:
    witness, signals = _first()
    tampered = replace(signals, new_commitment=signals.new_commitment ^ 1)
    assert evaluate_transition(tampered, witness).failed == (TransitionCheck.COMMITMENT,)


@pytest.mark.parametrize(
    "changes",
    [
        {"new_consent_bits": 256},
        {"old_consent_bits": -1},
        {"new_timestamp": 1 << 64},
        {"identity_secret": -5},
        {"path": MerklePath.empty(TREE_DEPTH - 1)},
    ],
)
def test_out_of_range_witness_fails_range_only(changes) -> None:
    witness, signals = _first()
    result = evaluate_transition(signals, replace(witness, **changes))
    assert result.failed == (TransitionCheck.RANGE,)


@pytest.mark.parametrize(
    "changes",
    [
        {"domain_salt": FIELD_MODULUS},
        {"nullifier": FIELD_MODULUS + 7},
        {"new_commitment": -1},
        {"root": FIELD_MODULUS},
        {"current_time": 1 << 64},
        {"domain_salt": True},
    ],
)
def test_out_of_range_public_signals_fail_range_only(changes) -> None:
    witness, signals = _first()
    result = evaluate_transition(replace(signals, **changes), witness)
    assert result.failed == (TransitionCheck.RANGE,)


def test_numeric_monotonicity_is_not_bitwise() -> None:
    assert is_monotonic(3, 8)
    assert not is_bitwise_superset(3, 8)
    assert is_bitwise_superset(3, 7)
    witness, signals = _with_prior(old_bits=3, new_bits=8)
    assert is_satisfied(signals, witness)


def test_is_fresh_helpers() -> None:
    assert is_fresh(NOW, NOW)
    assert not is_fresh(NOW, NOW + 1)
    assert not is_fresh(NOW, NOW - MAX_CONSENT_AGE_SECONDS - 1)

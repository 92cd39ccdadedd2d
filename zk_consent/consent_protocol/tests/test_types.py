import pytest

from zk_consent.consent_protocol.config import FIELD_MODULUS
from zk_consent.consent_protocol.exceptions import MalformedRequest
from zk_consent.consent_protocol.types import (
    AttestedClaim,
    ConsentRecord,
    MerklePath,
    ProofKind,
    PublicSignals,
    ZkProof,
    proof_from_wire,
    signals_summary,
)

SIGNALS = ["1700000000", "11", "22", "33", "0"]


def _offchain() -> dict:
    return {
        "nullifier": "33",
        "commitment": "22",
        "signature": "aa" * 64,
        "verifyKey": "bb" * 32,
        "timestamp": 1_700_000_000,
    }


def test_consent_record_validation() -> None:
    assert ConsentRecord.initial() == ConsentRecord(0, 0)
    with pytest.raises(ValueError):
        ConsentRecord(256, 0)
    with pytest.raises(ValueError):
        ConsentRecord(1, -1)


def test_consent_record_covers() -> None:
    assert ConsentRecord(7, 1).covers(ConsentRecord(3, 0))
    assert not ConsentRecord(8, 1).covers(ConsentRecord(3, 0))


def test_public_signals_from_wire() -> None:
    signals = PublicSignals.from_wire(SIGNALS)
    assert signals.current_time == 1_700_000_000
    assert signals.domain_salt == 11
    assert signals.new_commitment == 22
    assert signals.nullifier == 33
    assert signals.root == 0
    assert signals.to_wire() == SIGNALS


@pytest.mark.parametrize(
    "values",
    [
        None,
        "1,2,3,4,5",
        SIGNALS[:4],
        SIGNALS + ["1"],
        ["x", "1", "2", "3", "4"],
        ["-1", "1", "2", "3", "4"],
        [str(FIELD_MODULUS), "1", "2", "3", "4"],
        [True, 1, 2, 3, 4],
        ["1.5", "1", "2", "3", "4"],
    ],
)
def test_public_signals_rejects_malformed(values) -> None:
    with pytest.raises(MalformedRequest):
        PublicSignals.from_wire(values)


def test_proof_from_wire_infers_zk() -> None:
    proof = proof_from_wire({"proof": {"pi_a": ["1"]}, "publicSignals": SIGNALS})
    assert isinstance(proof, ZkProof)
    assert proof.kind is ProofKind.ZK


def test_proof_from_wire_infers_attested() -> None:
    proof = proof_from_wire({"publicSignals": SIGNALS, "offchain": _offchain()})
    assert isinstance(proof, AttestedClaim)
    assert proof.kind is ProofKind.ATTESTED
    assert proof.signature == b"\xaa" * 64
    assert proof.to_wire()["offchain"] == _offchain()


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"publicSignals": SIGNALS},
        {"mode": "zk", "publicSignals": SIGNALS, "offchain": _offchain()},
        {"mode": "attested", "publicSignals": SIGNALS, "proof": {"a": 1}},
        {"mode": "snark", "publicSignals": SIGNALS, "proof": {"a": 1}},
        {"proof": {}, "publicSignals": SIGNALS},
        {"publicSignals": SIGNALS, "offchain": {**_offchain(), "signature": "zz"}},
        {"publicSignals": SIGNALS, "offchain": {**_offchain(), "verifyKey": "bb"}},
        {"publicSignals": SIGNALS, "offchain": {**_offchain(), "timestamp": "soon"}},
    ],
)
def test_proof_from_wire_rejects_malformed(payload) -> None:
    with pytest.raises(MalformedRequest):
        proof_from_wire(payload)


def test_merkle_path_from_wire_validation() -> None:
    path = MerklePath.from_wire({"pathElements": ["1", "2"], "pathIndices": [0, 1]})
    assert path.siblings == (1, 2)
    assert path.path_bits == (0, 1)
    with pytest.raises(MalformedRequest):
        MerklePath.from_wire({"pathElements": ["1"], "pathIndices": [2]})
    with pytest.raises(MalformedRequest):
        MerklePath.from_wire({"pathElements": ["1"], "pathIndices": [0, 1]})
    with pytest.raises(MalformedRequest):
        MerklePath.from_wire({"pathElements": ["1"], "pathIndices": [True]})


def test_signals_summary_truncates() -> None:
    signals = PublicSignals(1, 2, 10**40, 10**50, 0)
    summary = signals_summary(signals)
    assert summary["nullifier"] == str(10**50)[:12]
    assert len(summary["commitment"]) == 12

import pytest

from zk_consent.consent_protocol.adapter import ProofAdapter
from zk_consent.consent_protocol.adapters.predicate_adapter import PredicateCheckingBackend
from zk_consent.consent_protocol.exceptions import (
    ProofGenerationError,
    ProverUnavailable,
    VerifierTimeout,
)
from zk_consent.consent_protocol.interfaces import ProofBackend
from zk_consent.consent_protocol.predicate import derive_public_signals
from zk_consent.consent_protocol.security import domain_salt_for
from zk_consent.consent_protocol.types import (
    AttestedClaim,
    ProofKind,
    TransitionWitness,
    ZkProof,
)

SECRET = 55555
NOW = 1_700_000_000


class UnavailableBackend(ProofBackend):
    backend_name = "unavailable"
    backend_version = "0"

    def prove(self, witness, public_signals):
        raise ProverUnavailable("artifacts missing")

    def verify(self, proof):
        return False


class ExplodingBackend(UnavailableBackend):
    def verify(self, proof):
        raise RuntimeError("boom")


class SlowBackend(UnavailableBackend):
    def verify(self, proof):
        raise VerifierTimeout("too slow")


def _transition(old_bits: int = 0, new_bits: int = 255):
    witness = TransitionWitness(
        identity_secret=SECRET,
        old_consent_bits=old_bits,
        new_consent_bits=new_bits,
        old_timestamp=0,
        new_timestamp=NOW,
    )
    signals = derive_public_signals(
        witness, current_time=NOW, domain_salt=domain_salt_for("example.com")
    )
    return witness, signals


def test_prove_then_verify_roundtrip() -> None:
    adapter = ProofAdapter(PredicateCheckingBackend())
    witness, signals = _transition()
    proof = adapter.prove(witness, signals)
    assert isinstance(proof, ZkProof)
    assert proof.kind is ProofKind.ZK
    assert adapter.verify(proof, now=NOW) is True


def test_downgrade_fails_closed() -> None:
    adapter = ProofAdapter(PredicateCheckingBackend())
    witness, signals = _transition(old_bits=255, new_bits=1)
    with pytest.raises(ProofGenerationError):
        adapter.prove(witness, signals)


def test_backend_alone_fails_closed() -> None:
    backend = PredicateCheckingBackend()
    witness, signals = _transition(old_bits=255, new_bits=1)
    with pytest.raises(ProofGenerationError, match="monotonicity"):
        backend.prove(witness, signals)


def test_unavailable_prover_falls_back_to_attested_claim() -> None:
    adapter = ProofAdapter(UnavailableBackend())
    witness, signals = _transition()
    proof = adapter.prove(witness, signals)
    assert isinstance(proof, AttestedClaim)
    assert proof.kind is ProofKind.ATTESTED
    assert proof.timestamp == NOW
    assert adapter.verify(proof, now=NOW) is True


def test_fallback_still_checks_predicate() -> None:
    adapter = ProofAdapter(UnavailableBackend())
    witness, signals = _transition(old_bits=255, new_bits=1)
    with pytest.raises(ProofGenerationError):
        adapter.prove(witness, signals)


def test_fallback_can_be_disabled() -> None:
    adapter = ProofAdapter(UnavailableBackend(), allow_attested_fallback=False)
    witness, signals = _transition()
    with pytest.raises(ProverUnavailable):
        adapter.prove(witness, signals)


def test_verify_never_raises_for_bad_backend() -> None:
    witness, signals = _transition()
    proof = ProofAdapter(PredicateCheckingBackend()).prove(witness, signals)
    assert ProofAdapter(ExplodingBackend()).verify(proof, now=NOW) is False


def test_verifier_timeout_propagates() -> None:
    witness, signals = _transition()
    proof = ProofAdapter(PredicateCheckingBackend()).prove(witness, signals)
    with pytest.raises(VerifierTimeout):
        ProofAdapter(SlowBackend()).verify(proof, now=NOW)


def test_proof_under_other_setup_key_rejected() -> None:
    witness, signals = _transition()
    proof = ProofAdapter(PredicateCheckingBackend()).prove(witness, signals)
    verifier = ProofAdapter(PredicateCheckingBackend(setup_key=b"k" * 32))
    assert verifier.verify(proof, now=NOW) is False


def test_predicate_backend_rejects_tampered_payloads() -> None:
    backend = PredicateCheckingBackend()
    witness, signals = _transition()
    proof = backend.prove(witness, signals)
    assert backend.verify(proof) is True
    for payload in (
        {**proof.payload, "binding": "00" * 32},
        {**proof.payload, "binding": "not-hex"},
        {**proof.payload, "v": 2},
        {**proof.payload, "protocol": "groth16"},
        {},
    ):
        assert backend.verify(ZkProof(payload=payload, public_signals=signals)) is False
    assert backend.get_backend_info()["security"] == "test_only"


def test_predicate_backend_rejects_short_setup_key() -> None:
    with pytest.raises(ValueError):
        PredicateCheckingBackend(setup_key=b"short")

import threading
import time
import warnings
from pathlib import Path

import pytest
import trio

import zk_consent
from zk_consent.consent_protocol.accumulator import ConsentAccumulator
from zk_consent.consent_protocol.adapter import ProofAdapter
from zk_consent.consent_protocol.adapters.predicate_adapter import PredicateCheckingBackend
from zk_consent.consent_protocol.attestation import create_attested_claim
from zk_consent.consent_protocol.config import EMPTY_ROOT
from zk_consent.consent_protocol.predicate import derive_public_signals
from zk_consent.consent_protocol.security import domain_salt_for
from zk_consent.consent_protocol.service import (
    INTERNAL_ERROR_MESSAGE,
    NULLIFIER_REUSED_MESSAGE,
    REJECTED_MESSAGE,
    AdmissionState,
    VerificationService,
)
from zk_consent.consent_protocol.store import InMemoryStore
from zk_consent.consent_protocol.types import TransitionWitness

NOW = 1_700_000_000
FULL_TRAIL = (
    AdmissionState.RECEIVED,
    AdmissionState.PROOF_CHECKED,
    AdmissionState.REPLAY_CHECKED,
    AdmissionState.ROOT_CHECKED,
    AdmissionState.ADMITTED,
)


class SlowVerifyBackend(PredicateCheckingBackend):
    def verify(self, proof):
        time.sleep(0.5)
        return super().verify(proof)


def _service(**kwargs) -> VerificationService:
    accumulator = kwargs.pop("accumulator", None)
    if accumulator is None:
        accumulator = ConsentAccumulator()
    backend = kwargs.pop("backend", None) or PredicateCheckingBackend()
    kwargs.setdefault("clock", lambda: NOW)
    return VerificationService(accumulator, ProofAdapter(backend), **kwargs)


def _request(secret: int, *, bits: int = 255, domain: str = "example.com",
             root: int = EMPTY_ROOT, ts: int = NOW) -> dict:
    witness = TransitionWitness(
        identity_secret=secret,
        old_consent_bits=0,
        new_consent_bits=bits,
        old_timestamp=0,
        new_timestamp=ts,
    )
    signals = derive_public_signals(
        witness, current_time=ts, domain_salt=domain_salt_for(domain), claimed_root=root
    )
    # Bound directly so stale-root cases can be built without a real path
    backend = PredicateCheckingBackend()
    return {
        "proof": {
            "protocol": "predicate-check",
            "v": 1,
            "binding": backend._binding(signals).hex(),
        },
        "publicSignals": signals.to_wire(),
    }


def test_first_time_consent_is_admitted() -> None:
    service = _service()
    result = service.submit(_request(1))
    assert result.success
    assert result.state is AdmissionState.ADMITTED
    assert result.trail == FULL_TRAIL
    assert result.root == service.accumulator.current_root() != EMPTY_ROOT
    status, body = result.to_response()
    assert status == 200
    assert body == {"success": True, "root": str(result.root), "mode": "zk"}


def test_replay_is_rejected_and_state_unchanged() -> None:
    service = _service()
    request = _request(1)
    assert service.submit(request).success
    root = service.accumulator.current_root()

    replay = service.submit(request)
    assert replay.state is AdmissionState.REJECTED
    assert replay.error == "NullifierReused"
    assert replay.trail == (
        AdmissionState.RECEIVED,
        AdmissionState.PROOF_CHECKED,
        AdmissionState.REJECTED,
    )
    assert service.accumulator.current_root() == root
    assert len(service.accumulator) == 1
    status, body = replay.to_response()
    assert status == 400
    assert body["error"] == NULLIFIER_REUSED_MESSAGE


def test_same_nullifier_new_commitment_is_rejected() -> None:
    service = _service()
    assert service.submit(_request(1, bits=255)).success
    result = service.submit(_request(1, bits=254, ts=NOW - 5))
    assert result.error == "NullifierReused"
    assert len(service.accumulator) == 1


def test_stale_root_is_rejected() -> None:
    service = _service()
    assert service.submit(_request(1)).success
    old_root = service.accumulator.current_root()
    assert service.submit(_request(2)).success

    result = service.submit(_request(3, root=old_root))
    assert result.error == "StaleRoot"
    assert result.trail[-2] is AdmissionState.REPLAY_CHECKED
    assert not service.accumulator.has_nullifier(
        service.accumulator.hasher.nullifier(3, domain_salt_for("example.com"))
    )
    status, body = result.to_response()
    assert (status, body["error"]) == (400, REJECTED_MESSAGE)


def test_current_root_is_accepted() -> None:
    service = _service()
    assert service.submit(_request(1)).success
    result = service.submit(_request(2, root=service.accumulator.current_root()))
    assert result.success


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"proof": {"a": 1}},
        {"proof": {"a": 1}, "publicSignals": ["1", "2"]},
        "not a map",
    ],
)
def test_malformed_requests(payload) -> None:
    result = _service().submit(payload)
    assert result.error == "MalformedRequest"
    assert result.trail == (AdmissionState.RECEIVED, AdmissionState.REJECTED)
    assert result.to_response()[0] == 400


def test_invalid_proof_is_rejected() -> None:
    request = _request(1)
    request["proof"]["binding"] = "00" * 32
    service = _service()
    result = service.submit(request)
    assert result.error == "InvalidProof"
    assert len(service.accumulator) == 0


def test_current_time_far_from_server_clock_is_rejected() -> None:
    service = _service(clock=lambda: NOW + 86_401)
    assert service.submit(_request(1)).error == "InvalidProof"
    service = _service(clock=lambda: NOW + 86_400)
    assert service.submit(_request(1)).success


def test_attested_claim_admitted_with_distinct_mode() -> None:
    witness = TransitionWitness(7, 0, 255, 0, NOW)
    signals = derive_public_signals(
        witness, current_time=NOW, domain_salt=domain_salt_for("example.com")
    )
    claim = create_attested_claim(7, signals, NOW)

    result = _service().submit(claim.to_wire())
    assert result.success
    assert result.mode.value == "attested"
    assert result.to_response()[1]["mode"] == "attested"


def test_attested_claim_refused_when_disabled() -> None:
    witness = TransitionWitness(7, 0, 255, 0, NOW)
    signals = derive_public_signals(
        witness, current_time=NOW, domain_salt=domain_salt_for("example.com")
    )
    claim = create_attested_claim(7, signals, NOW)
    result = _service(allow_attested=False).submit(claim.to_wire())
    assert result.error == "InvalidProof"


def test_full_accumulator_is_internal_error() -> None:
    service = _service(accumulator=ConsentAccumulator(InMemoryStore(), depth=1))
    assert service.submit(_request(1)).success
    assert service.submit(_request(2, root=service.accumulator.current_root())).success
    result = service.submit(_request(3))
    assert result.error == "InternalError"
    status, body = result.to_response()
    assert status == 500
    assert body["error"] == INTERNAL_ERROR_MESSAGE
    assert not service.accumulator.has_nullifier(
        service.accumulator.hasher.nullifier(3, domain_salt_for("example.com"))
    )


class FlakyStore(InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.failing = True

    def admit(self, nullifier: int, commitment: int) -> None:
        if self.failing:
            raise OSError("disk full")
        super().admit(nullifier, commitment)


def test_failed_write_does_not_spend_nullifier() -> None:
    store = FlakyStore()
    service = _service(accumulator=ConsentAccumulator(store))
    request = _request(1)

    first = service.submit(request)
    assert first.error == "InternalError"
    assert len(service.accumulator) == 0
    assert store.load() == ([], set())

    store.failing = False
    retry = service.submit(request)
    assert retry.success
    assert retry.trail == FULL_TRAIL
    assert len(service.accumulator) == 1


def test_concurrent_same_nullifier_admits_exactly_once() -> None:
    service = _service()
    request = _request(42)
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        result = service.submit(request)
        with lock:
            results.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    admitted = [r for r in results if r.success]
    assert len(admitted) == 1
    assert all(r.error == "NullifierReused" for r in results if not r.success)
    assert len(service.accumulator) == 1


def test_interleaved_distinct_requests_do_not_affect_replay() -> None:
    service = _service()
    first = _request(1)
    assert service.submit(first).success
    assert service.submit(_request(2)).success
    assert service.submit(first).error == "NullifierReused"
    assert service.submit(_request(3)).success
    assert service.submit(first).error == "NullifierReused"


def test_admit_accepts_decoded_proof() -> None:
    from zk_consent.consent_protocol.types import proof_from_wire

    service = _service()
    result = service.admit(proof_from_wire(_request(1)))
    assert result.trail == FULL_TRAIL


@pytest.mark.trio
async def test_asubmit_admits() -> None:
    service = _service()
    result = await service.asubmit(_request(1))
    assert result.success
    assert result.trail == FULL_TRAIL


@pytest.mark.trio
async def test_asubmit_times_out_slow_verifier() -> None:
    service = _service(backend=SlowVerifyBackend(), verify_timeout=0.05)
    result = await service.asubmit(_request(1))
    assert result.error == "VerifierTimeout"
    assert result.to_response()[0] == 400
    assert len(service.accumulator) == 0


def test_health_reports_tree() -> None:
    service = _service()
    assert service.health() == {"status": "ok", "treeSize": 0, "root": "0"}
    service.submit(_request(1))
    health = service.health()
    assert health["treeSize"] == 1
    assert health["root"] == str(service.accumulator.current_root())


def test_reset_is_gated() -> None:
    service = _service()
    service.submit(_request(1))
    with pytest.raises(PermissionError):
        service.reset()
    assert len(service.accumulator) == 1

    enabled = _service(allow_reset=True, accumulator=service.accumulator)
    assert enabled.reset() == {"success": True, "root": "0"}
    assert len(service.accumulator) == 0
    assert enabled.submit(_request(1)).success


def test_membership_path_response() -> None:
    service = _service()
    service.submit(_request(1))
    hasher = service.accumulator.hasher
    commitment = hasher.commitment(255, NOW, 1)
    body = service.membership_path_response(commitment)
    assert body["success"] is True
    assert body["root"] == str(service.accumulator.current_root())
    assert len(body["pathElements"]) == 20
    assert body["pathIndices"] == [0] * 20
    with pytest.raises(KeyError):
        service.membership_path_response(commitment + 1)


def test_sources_compile_without_warnings() -> None:
    package_root = Path(zk_consent.__file__).parent
    for source in sorted(package_root.rglob("*.py")):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(source.read_text(encoding="utf-8"), str(source), "exec")

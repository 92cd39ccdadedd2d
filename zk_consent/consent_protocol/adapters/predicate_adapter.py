from __future__ import annotations

import hashlib
import hmac
from typing import Any, Dict, Optional

from ..config import DOMAIN_SEPARATORS, PROOF_VERSION
from ..exceptions import ProofGenerationError
from ..interfaces import ProofBackend
from ..predicate import evaluate_transition
from ..security import ConsentHasher, constant_time_compare, field_to_bytes, get_default_hasher
from ..types import PublicSignals, TransitionWitness, ZkProof

# Shared by prover and verifier, the way a proving/verification key pair is.
DEFAULT_SETUP_KEY = hashlib.sha3_256(b"ZK_CONSENT_V1_PREDICATE_CHECK_DEV_SETUP").digest()


class PredicateCheckingBackend(ProofBackend):
    """
    In-process backend that evaluates the transition predicate directly.

    Notes:
    - Proving fails closed: an unsatisfied predicate yields no proof.
    - The "proof" is an HMAC binding of the public signals under a setup key.
      It is neither zero-knowledge nor sound against anyone holding the key.
    - For tests and local demos only.
    """

    _BACKEND_NAME = "PredicateCheckingBackend"
    _BACKEND_VERSION = "0.1.0"
    _PROTOCOL = "predicate-check"

    def __init__(
        self,
        setup_key: Optional[bytes] = None,
        hasher: Optional[ConsentHasher] = None,
    ) -> None:
        key = DEFAULT_SETUP_KEY if setup_key is None else setup_key
        if not isinstance(key, (bytes, bytearray)) or len(key) < 16:
            raise ValueError("setup_key must be at least 16 bytes")
        self._setup_key = bytes(key)
        self._hasher = hasher or get_default_hasher()

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    def _binding(self, public_signals: PublicSignals) -> bytes:
        message = DOMAIN_SEPARATORS["predicate_binding"] + b"".join(
            field_to_bytes(value) for value in public_signals.to_list()
        )
        return hmac.new(self._setup_key, message, hashlib.sha3_256).digest()

    def prove(self, witness: TransitionWitness, public_signals: PublicSignals) -> ZkProof:
        if not isinstance(witness, TransitionWitness):
            raise TypeError("witness must be TransitionWitness")
        if not isinstance(public_signals, PublicSignals):
            raise TypeError("public_signals must be PublicSignals")

        result = evaluate_transition(public_signals, witness, self._hasher)
        if not result.satisfied:
            failed = ", ".join(check.value for check in result.failed)
            raise ProofGenerationError(
                f"witness does not satisfy the transition predicate ({failed})"
            )

        payload: Dict[str, Any] = {
            "protocol": self._PROTOCOL,
            "v": PROOF_VERSION,
            "binding": self._binding(public_signals).hex(),
        }
        return ZkProof(payload=payload, public_signals=public_signals)

    def verify(self, proof: ZkProof) -> bool:
        try:
            if not isinstance(proof, ZkProof):
                return False
            payload = proof.payload
            if not isinstance(payload, dict):
                return False
            if payload.get("protocol") != self._PROTOCOL:
                return False
            if payload.get("v") != PROOF_VERSION:
                return False
            binding = payload.get("binding")
            if not isinstance(binding, str):
                return False
            expected = self._binding(proof.public_signals)
            return constant_time_compare(bytes.fromhex(binding), expected)
        except Exception:
            return False

    def get_backend_info(self) -> Dict[str, Any]:
        return {
            "name": self.backend_name,
            "version": self.backend_version,
            "protocol": self._PROTOCOL,
            "hasher": getattr(self._hasher, "name", type(self._hasher).__name__),
            "security": "test_only",
        }

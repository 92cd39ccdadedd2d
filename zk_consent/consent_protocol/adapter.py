"""
Proof adapter: the seam between the consent protocol and a proving backend.

Client side, ``prove`` checks the transition predicate locally and then asks
the backend for a proof. When the backend cannot be loaded it degrades to a
signed ``AttestedClaim`` (if allowed) instead of failing the user flow.

Server side, ``verify`` branches on the proof's tag and never raises for a
bad proof; only ``VerifierTimeout`` escapes.
"""

from __future__ import annotations

import logging
from typing import Optional

from .attestation import create_attested_claim, verify_attested_claim
from .exceptions import ProofGenerationError, ProverUnavailable, VerifierTimeout
from .interfaces import ProofBackend
from .predicate import evaluate_transition
from .security import ConsentHasher, get_default_hasher
from .types import AttestedClaim, Proof, ProofKind, PublicSignals, TransitionWitness, ZkProof

logger = logging.getLogger(__name__)


class ProofAdapter:
    def __init__(
        self,
        backend: ProofBackend,
        *,
        allow_attested_fallback: bool = True,
        hasher: Optional[ConsentHasher] = None,
        attestation_max_skew: Optional[int] = None,
    ) -> None:
        self._backend = backend
        self._allow_fallback = allow_attested_fallback
        self._hasher = hasher or get_default_hasher()
        self._attestation_max_skew = attestation_max_skew

    @property
    def backend(self) -> ProofBackend:
        return self._backend

    def prove(self, witness: TransitionWitness, public_signals: PublicSignals) -> Proof:
        """
        Produce a proof for the claimed transition.

        Raises:
            ProofGenerationError: If the witness does not satisfy the
                predicate (in either mode)
            ProverUnavailable: If the backend is unavailable and the
                attested fallback is disabled
        """
        result = evaluate_transition(public_signals, witness, self._hasher)
        if not result.satisfied:
            failed = ", ".join(check.value for check in result.failed)
            raise ProofGenerationError(f"transition rejected locally ({failed})")

        try:
            return self._backend.prove(witness, public_signals)
        except ProverUnavailable as exc:
            if not self._allow_fallback:
                raise
            logger.warning(
                "Prover unavailable (%s); falling back to attested claim "
                "(weaker assurance)",
                exc,
            )
            return create_attested_claim(
                witness.identity_secret, public_signals, public_signals.current_time
            )

    def verify(self, proof: Proof, *, now: int) -> bool:
        """
        Check ``proof`` against its own public signals.

        Returns False for anything that does not verify. Raises only
        VerifierTimeout.
        """
        try:
            if proof.kind is ProofKind.ZK and isinstance(proof, ZkProof):
                return bool(self._backend.verify(proof))
            if proof.kind is ProofKind.ATTESTED and isinstance(proof, AttestedClaim):
                return verify_attested_claim(
                    proof, now=now, max_skew=self._attestation_max_skew
                )
            return False
        except VerifierTimeout:
            raise
        except Exception:
            logger.debug("Proof verification raised", exc_info=True)
            return False

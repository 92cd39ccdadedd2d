"""
Proving backend interface.

A backend turns (witness, public signals) into a backend-native proof and
checks such proofs. The compiled predicate and its keys belong to the
backend; callers never see them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from .types import PublicSignals, TransitionWitness, ZkProof


class ProofBackend(ABC):
    """Abstract zero-knowledge proving/verifying backend."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Human-readable backend name."""

    @property
    @abstractmethod
    def backend_version(self) -> str:
        """Backend implementation version."""

    @abstractmethod
    def prove(self, witness: TransitionWitness, public_signals: PublicSignals) -> ZkProof:
        """
        Produce a proof that ``witness`` satisfies the transition predicate
        for ``public_signals``.

        Raises:
            ProverUnavailable: If the backend or its artifacts cannot be loaded
            ProofGenerationError: If no proof exists for this witness
        """

    @abstractmethod
    def verify(self, proof: ZkProof) -> bool:
        """
        Check a proof against its public signals.

        Returns False on any malformed input. May raise VerifierTimeout.
        """

    def get_backend_info(self) -> Dict[str, Any]:
        return {"name": self.backend_name, "version": self.backend_version}

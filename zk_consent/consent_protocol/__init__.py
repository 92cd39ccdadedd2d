"""Public API for consent_protocol."""
from __future__ import annotations

from .accumulator import ConsentAccumulator
from .adapter import ProofAdapter
from .attestation import create_attested_claim, verify_attested_claim
from .exceptions import (
    ConsentProtocolError,
    InternalError,
    InvalidProof,
    MalformedRequest,
    NullifierReused,
    ProofGenerationError,
    ProverUnavailable,
    RejectionError,
    StaleRoot,
    VerifierTimeout,
)
from .factory import get_proof_backend
from .feature_flags import get_backend_type, set_backend_type
from .identity import IdentityStore
from .interfaces import ProofBackend
from .predicate import derive_public_signals, evaluate_transition, is_satisfied
from .security import ConsentHasher, domain_salt_for, get_default_hasher
from .service import AdmissionResult, AdmissionState, VerificationService
from .store import AccumulatorStore, CborFileStore, InMemoryStore
from .types import (
    AttestedClaim,
    ConsentRecord,
    MerklePath,
    Proof,
    ProofKind,
    PublicSignals,
    TransitionWitness,
    ZkProof,
    proof_from_wire,
)

__all__ = [
    "AccumulatorStore",
    "AdmissionResult",
    "AdmissionState",
    "AttestedClaim",
    "CborFileStore",
    "ConsentAccumulator",
    "ConsentHasher",
    "ConsentProtocolError",
    "ConsentRecord",
    "IdentityStore",
    "InMemoryStore",
    "InternalError",
    "InvalidProof",
    "MalformedRequest",
    "MerklePath",
    "NullifierReused",
    "Proof",
    "ProofAdapter",
    "ProofBackend",
    "ProofGenerationError",
    "ProofKind",
    "ProverUnavailable",
    "PublicSignals",
    "RejectionError",
    "StaleRoot",
    "TransitionWitness",
    "VerificationService",
    "VerifierTimeout",
    "ZkProof",
    "create_attested_claim",
    "derive_public_signals",
    "domain_salt_for",
    "evaluate_transition",
    "get_backend_type",
    "get_default_hasher",
    "get_proof_backend",
    "is_satisfied",
    "proof_from_wire",
    "set_backend_type",
    "verify_attested_claim",
]

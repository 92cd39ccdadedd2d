"""
⚠️ DRAFT — requires crypto review before production use

Offline attested claims (degraded fallback when no prover is available).

The client signs ``(domainSalt, commitment, nullifier, timestamp)`` with an
Ed25519 key derived from its identity secret and the domain salt, so the
verify key is per identity+domain and no more linkable than the nullifier.

SECURITY NOTE: an attested claim proves only that the holder of that key
signed this claim. It does NOT prove knowledge of a prior-state witness,
monotonicity, or record freshness, and must never be reported as
equivalent to a zero-knowledge proof.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .config import ATTESTATION_MAX_SKEW_SECONDS, DOMAIN_SEPARATORS
from .security import field_to_bytes
from .types import AttestedClaim, PublicSignals

logger = logging.getLogger(__name__)


def derive_signing_key(identity_secret: int, domain_salt: int) -> SigningKey:
    """Deterministic Ed25519 key for one identity on one domain."""
    seed = hashlib.sha3_256(
        DOMAIN_SEPARATORS["attestation_key"]
        + field_to_bytes(identity_secret)
        + field_to_bytes(domain_salt)
    ).digest()
    return SigningKey(seed)


def attestation_message(
    domain_salt: int, commitment: int, nullifier: int, timestamp: int
) -> bytes:
    domain_sep = DOMAIN_SEPARATORS["attestation_msg"]
    return (
        len(domain_sep).to_bytes(4, "big")
        + domain_sep
        + field_to_bytes(domain_salt)
        + field_to_bytes(commitment)
        + field_to_bytes(nullifier)
        + timestamp.to_bytes(8, "big")
    )


def create_attested_claim(
    identity_secret: int, public_signals: PublicSignals, timestamp: int
) -> AttestedClaim:
    """
    Sign the claimed transition.

    The caller is responsible for having checked the transition predicate
    locally; this function signs whatever it is given.
    """
    signing_key = derive_signing_key(identity_secret, public_signals.domain_salt)
    message = attestation_message(
        public_signals.domain_salt,
        public_signals.new_commitment,
        public_signals.nullifier,
        timestamp,
    )
    signed = signing_key.sign(message)
    return AttestedClaim(
        public_signals=public_signals,
        nullifier=public_signals.nullifier,
        commitment=public_signals.new_commitment,
        signature=signed.signature,
        verify_key=bytes(signing_key.verify_key),
        timestamp=timestamp,
    )


def verify_attested_claim(
    claim: AttestedClaim,
    *,
    now: int,
    max_skew: Optional[int] = None,
) -> bool:
    """
    Check an attested claim. Never raises.

    Returns:
        True if commitment and nullifier are non-zero and match the public
        signals, the timestamp is within ``max_skew`` of ``now``, and the
        signature verifies
    """
    skew = ATTESTATION_MAX_SKEW_SECONDS if max_skew is None else max_skew
    try:
        signals = claim.public_signals
        if claim.commitment == 0 or claim.nullifier == 0:
            return False
        if claim.commitment != signals.new_commitment:
            return False
        if claim.nullifier != signals.nullifier:
            return False
        if abs(now - claim.timestamp) > skew:
            logger.info(
                "Attested claim timestamp off by %ds", abs(now - claim.timestamp)
            )
            return False
        message = attestation_message(
            signals.domain_salt, claim.commitment, claim.nullifier, claim.timestamp
        )
        VerifyKey(claim.verify_key).verify(message, claim.signature)
        return True
    except (BadSignatureError, CryptoError, ValueError, TypeError, OverflowError):
        return False

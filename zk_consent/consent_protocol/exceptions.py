"""
Exceptions for the consent protocol.

Rejection kinds carry a stable ``kind`` string and the status code the
transport reports for them. All of them are terminal: the server never
retries on its own.
"""


class ConsentProtocolError(Exception):
    """Base exception for consent protocol errors."""

    kind = "ConsentProtocolError"
    status = 500


class RejectionError(ConsentProtocolError):
    """A request was refused; reported to the caller with status 400."""

    kind = "Rejected"
    status = 400


class MalformedRequest(RejectionError):
    """Proof or public signals missing or not well-typed."""

    kind = "MalformedRequest"


class InvalidProof(RejectionError):
    """The proof (or attested claim) did not verify."""

    kind = "InvalidProof"


class NullifierReused(RejectionError):
    """A transition for this identity+domain was already admitted."""

    kind = "NullifierReused"


class StaleRoot(RejectionError):
    """The claimed root is neither the empty sentinel nor the current root."""

    kind = "StaleRoot"


class ProverUnavailable(RejectionError):
    """Proving backend or circuit artifacts could not be loaded."""

    kind = "ProverUnavailable"


class VerifierTimeout(RejectionError):
    """Verification backend did not answer within the allotted time."""

    kind = "VerifierTimeout"


class InternalError(ConsentProtocolError):
    """Unexpected server-side failure."""

    kind = "InternalError"
    status = 500


class AccumulatorFullError(InternalError):
    """All leaves of the fixed-depth accumulator are in use."""


class ProofGenerationError(ConsentProtocolError):
    """No proof can be produced for the witness (fails closed)."""

    kind = "ProofGenerationError"


class ConfigurationError(ConsentProtocolError):
    """Configuration error."""

    kind = "ConfigurationError"


REJECTION_KINDS = {
    cls.kind: cls
    for cls in (
        MalformedRequest,
        InvalidProof,
        NullifierReused,
        StaleRoot,
        ProverUnavailable,
        VerifierTimeout,
        InternalError,
    )
}

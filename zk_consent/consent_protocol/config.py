"""
⚠️ DRAFT — requires crypto review before production use

Protocol configuration for consent state transitions.

These values are shared by the client (witness construction, proving) and the
server (verification, accumulator). Changing any of them breaks compatibility
with previously admitted commitments and with compiled circuits.
"""

# ============================================================================
# FIELD
# ============================================================================

# BN254 scalar field order (the field snarkjs/circom circuits work in)
FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_ELEMENT_BYTES = 32

# ============================================================================
# CONSENT RECORDS
# ============================================================================

CONSENT_BITS_WIDTH = 8
MAX_CONSENT_BITS = (1 << CONSENT_BITS_WIDTH) - 1  # 255 = full consent
TIMESTAMP_BITS = 64

# Two years in seconds. A consent record older than this cannot be carried
# into a new transition.
MAX_CONSENT_AGE_SECONDS = 63_072_000

IDENTITY_SECRET_BYTES = 32

# ============================================================================
# ACCUMULATOR
# ============================================================================

TREE_DEPTH = 20
TREE_CAPACITY = 1 << TREE_DEPTH

# Root value claimed by a first-ever transition (no prior leaf). Also the
# reported root of an accumulator that has no leaves yet.
EMPTY_ROOT = 0

# ============================================================================
# PUBLIC SIGNALS
# ============================================================================

# Order is fixed by the circuit: [currentTime, domainSalt, newCommitment,
# nullifier, root]
PUBLIC_SIGNAL_NAMES = (
    "currentTime",
    "domainSalt",
    "newCommitment",
    "nullifier",
    "root",
)
PUBLIC_SIGNAL_COUNT = len(PUBLIC_SIGNAL_NAMES)

# ============================================================================
# HASH FUNCTIONS
# ============================================================================

HASH_FUNCTION = "SHA3-256"

DOMAIN_SEPARATOR_PREFIX = b"ZK_CONSENT_V1_"

DOMAIN_SEPARATORS = {
    "commitment": DOMAIN_SEPARATOR_PREFIX + b"COMMITMENT",
    "nullifier": DOMAIN_SEPARATOR_PREFIX + b"NULLIFIER",
    "merkle_node": DOMAIN_SEPARATOR_PREFIX + b"MERKLE_NODE",
    "domain_salt": DOMAIN_SEPARATOR_PREFIX + b"DOMAIN_SALT",
    "attestation_key": DOMAIN_SEPARATOR_PREFIX + b"ATTEST_KEY",
    "attestation_msg": DOMAIN_SEPARATOR_PREFIX + b"ATTEST_MSG",
    "predicate_binding": DOMAIN_SEPARATOR_PREFIX + b"PREDICATE_BINDING",
}

# ============================================================================
# ATTESTED CLAIMS (offline fallback)
# ============================================================================

# Allowed distance between an attested claim's timestamp and the server clock
ATTESTATION_MAX_SKEW_SECONDS = 86_400
ATTESTATION_SIGNATURE_BYTES = 64
ATTESTATION_VERIFY_KEY_BYTES = 32

# ============================================================================
# SERVER DEFAULTS
# ============================================================================

# Allowed distance between a proof's currentTime signal and the server clock
DEFAULT_MAX_CLOCK_SKEW_SECONDS = 86_400
DEFAULT_VERIFY_TIMEOUT_SECONDS = 30.0

PROOF_VERSION = 1

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert FIELD_MODULUS.bit_length() == 254, "Unexpected field size"
    assert 0 < TREE_DEPTH <= 32, "Tree depth out of range"
    assert MAX_CONSENT_BITS < FIELD_MODULUS
    assert MAX_CONSENT_AGE_SECONDS > 0, "Consent age must be positive"
    assert EMPTY_ROOT == 0, "Empty root sentinel must be the zero element"
    assert PUBLIC_SIGNAL_COUNT == 5, "Circuit exposes exactly five signals"
    assert HASH_FUNCTION in ["SHA3-256", "SHA256"], "Invalid hash function"
    assert len(set(DOMAIN_SEPARATORS.values())) == len(DOMAIN_SEPARATORS)

    return True


# Auto-validate on import
validate_config()

import pytest

from zk_consent.consent_protocol.config import FIELD_MODULUS
from zk_consent.consent_protocol.security import (
    ConsentHasher,
    RandomnessSource,
    bytes_to_field,
    constant_time_compare,
    domain_salt_for,
    field_to_bytes,
    get_default_hasher,
    hash_to_field,
    is_field_element,
)


def test_hasher_is_deterministic_across_instances() -> None:
    a = ConsentHasher()
    b = ConsentHasher()
    assert a.commitment(255, 1_700_000_000, 42) == b.commitment(255, 1_700_000_000, 42)
    assert a.nullifier(42, 7) == b.nullifier(42, 7)
    assert a.node(1, 2) == b.node(1, 2)


def test_hash_outputs_are_field_elements() -> None:
    hasher = get_default_hasher()
    for value in (
        hasher.commitment(0, 0, 0),
        hasher.nullifier(FIELD_MODULUS - 1, 0),
        hasher.node(0, 0),
    ):
        assert is_field_element(value)


def test_node_is_order_sensitive() -> None:
    hasher = get_default_hasher()
    assert hasher.node(1, 2) != hasher.node(2, 1)


def test_domain_separation_between_uses() -> None:
    hasher = get_default_hasher()
    assert hasher.nullifier(1, 2) != hasher.node(1, 2)


def test_commitment_binds_every_input() -> None:
    hasher = get_default_hasher()
    base = hasher.commitment(3, 100, 9)
    assert hasher.commitment(4, 100, 9) != base
    assert hasher.commitment(3, 101, 9) != base
    assert hasher.commitment(3, 100, 10) != base


def test_hash_to_field_rejects_empty_separator() -> None:
    with pytest.raises(ValueError):
        hash_to_field(b"", [1])


def test_field_to_bytes_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        field_to_bytes(FIELD_MODULUS)
    with pytest.raises(ValueError):
        field_to_bytes(-1)
    assert field_to_bytes(1) == b"\x00" * 31 + b"\x01"


def test_bytes_to_field_is_little_endian() -> None:
    assert bytes_to_field(b"\x01" + b"\x00" * 31) == 1
    assert bytes_to_field(b"\xff" * 32) < FIELD_MODULUS
    with pytest.raises(TypeError):
        bytes_to_field("00")


def test_is_field_element_rejects_bool() -> None:
    assert is_field_element(0)
    assert not is_field_element(True)
    assert not is_field_element(FIELD_MODULUS)


def test_domain_salt_normalizes_name() -> None:
    assert domain_salt_for("Example.COM ") == domain_salt_for("example.com")
    assert domain_salt_for("example.com") != domain_salt_for("example.org")
    with pytest.raises(ValueError):
        domain_salt_for("  ")


def test_randomness_source() -> None:
    rng = RandomnessSource()
    assert len(rng.get_random_bytes(32)) == 32
    assert rng.get_random_bytes(32) != rng.get_random_bytes(32)
    assert is_field_element(rng.get_random_field_element())


def test_constant_time_compare() -> None:
    assert constant_time_compare(b"abc", b"abc")
    assert not constant_time_compare(b"abc", b"abd")

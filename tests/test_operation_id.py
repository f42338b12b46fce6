"""
Property-based tests for operation identity.
"""
import pytest
from eth_abi import encode
from hypothesis import given, settings, strategies as st
from pydantic import ValidationError
from web3 import Web3

from timelock_sdk.abi import ZERO_BYTES32, hash_operation, new_salt
from timelock_sdk.models import Operation

from conftest import TEST_RECIPIENT, TEST_TARGET

addresses = st.binary(min_size=20, max_size=20).map(lambda b: Web3.to_checksum_address("0x" + b.hex()))
words = st.binary(min_size=32, max_size=32)
values = st.integers(min_value=0, max_value=2**256 - 1)
payloads = st.binary(max_size=256)


@given(target=addresses, value=values, payload=payloads, salt=words)
@settings(max_examples=50)
def test_id_is_pure_function_of_fields(target, value, payload, salt):
    first = Operation(target=target, value=value, payload=payload, salt=salt)
    second = Operation(target=target.lower(), value=value, payload="0x" + payload.hex(), salt=salt)

    assert first.operation_id == second.operation_id
    assert first.operation_id == hash_operation(target, value, payload, None, salt)


@given(target=addresses, value=values, payload=payloads, predecessor=words, salt=words)
@settings(max_examples=50)
def test_id_matches_abi_encoded_digest(target, value, payload, predecessor, salt):
    operation = Operation(target=target, value=value, payload=payload, predecessor=predecessor, salt=salt)
    encoded = encode(
        ["address", "uint256", "bytes", "bytes32", "bytes32"],
        [target, value, payload, predecessor, salt]
    )

    assert operation.operation_id == "0x" + bytes(Web3.keccak(encoded)).hex()


@given(salt_a=words, salt_b=words)
def test_salt_changes_id(salt_a, salt_b):
    a = Operation(target=TEST_TARGET, salt=salt_a)
    b = Operation(target=TEST_TARGET, salt=salt_b)

    assert (a.operation_id == b.operation_id) == (salt_a == salt_b)


@given(value_a=values, value_b=values)
@settings(max_examples=50)
def test_value_changes_id(value_a, value_b):
    a = Operation(target=TEST_TARGET, value=value_a)
    b = Operation(target=TEST_TARGET, value=value_b)

    assert (a.operation_id == b.operation_id) == (value_a == value_b)


@given(payload_a=payloads, payload_b=payloads)
@settings(max_examples=50)
def test_payload_changes_id(payload_a, payload_b):
    a = Operation(target=TEST_TARGET, payload=payload_a)
    b = Operation(target=TEST_TARGET, payload=payload_b)

    assert (a.operation_id == b.operation_id) == (payload_a == payload_b)


def test_target_changes_id():
    assert Operation(target=TEST_TARGET).operation_id != Operation(target=TEST_RECIPIENT).operation_id


def test_zero_predecessor_means_none():
    explicit = Operation(target=TEST_TARGET, predecessor=ZERO_BYTES32)
    implicit = Operation(target=TEST_TARGET)

    assert explicit.predecessor is None
    assert explicit.predecessor_id is None
    assert explicit.operation_id == implicit.operation_id


def test_predecessor_changes_id():
    base = Operation(target=TEST_TARGET)
    dependent = Operation(target=TEST_TARGET, predecessor=base.operation_id)

    assert dependent.predecessor_id == base.operation_id
    assert dependent.operation_id != base.operation_id


def test_id_format():
    operation_id = Operation(target=TEST_TARGET, payload="0x1234").operation_id

    assert operation_id.startswith("0x")
    assert len(operation_id) == 66
    assert operation_id == operation_id.lower()


def test_new_salt_is_unique():
    salts = {new_salt("upgrade") for _ in range(20)}

    assert len(salts) == 20
    assert all(len(salt) == 32 for salt in salts)


@pytest.mark.parametrize("fields", [
    {"target": "0x1234"},
    {"target": TEST_TARGET, "value": -1},
    {"target": TEST_TARGET, "salt": "0x01"},
    {"target": TEST_TARGET, "predecessor": b"\x01" * 31},
    {"target": TEST_TARGET, "payload": "0xzz"},
])
def test_invalid_fields_are_rejected(fields):
    with pytest.raises(ValidationError):
        Operation(**fields)


def test_operation_is_immutable():
    operation = Operation(target=TEST_TARGET)

    with pytest.raises(ValidationError):
        operation.value = 5

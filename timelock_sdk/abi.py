"""
ABI helpers: call encoding for the TimelockController entry points and the
operation identity digest.
"""
import secrets
import time
from typing import Any, Optional, Sequence, Tuple, Union

from eth_abi import decode, encode
from web3 import Web3

ZERO_BYTES32 = b"\x00" * 32

# TimelockController entry points
SCHEDULE_SIGNATURE = "schedule(address,uint256,bytes,bytes32,bytes32,uint256)"
EXECUTE_SIGNATURE = "execute(address,uint256,bytes,bytes32,bytes32)"
CANCEL_SIGNATURE = "cancel(bytes32)"
UPDATE_DELAY_SIGNATURE = "updateDelay(uint256)"

SCHEDULE_TYPES = ["address", "uint256", "bytes", "bytes32", "bytes32", "uint256"]
EXECUTE_TYPES = ["address", "uint256", "bytes", "bytes32", "bytes32"]
OPERATION_TYPES = EXECUTE_TYPES

# UUPS proxy / Ownable
UPGRADE_SIGNATURE = "upgradeToAndCall(address,bytes)"
UPGRADE_TYPES = ["address", "bytes"]
OWNER_SIGNATURE = "owner()"
TRANSFER_OWNERSHIP_SIGNATURE = "transferOwnership(address)"

# bytes32(uint256(keccak256("eip1967.proxy.implementation")) - 1)
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC


def to_bytes(value: Union[str, bytes, bytearray, None], field: str = "value") -> bytes:
    """
    Normalize a hex string or bytes-like value to bytes.

    Args:
        value: Hex string (with or without 0x prefix) or bytes
        field: Field name used in error messages

    Returns:
        Raw bytes

    Raises:
        ValueError: If the value is not valid hex or of an unsupported type
    """
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        hex_str = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(hex_str)
        except ValueError as e:
            raise ValueError(f"{field} is not valid hex: {e}")
    raise ValueError(f"{field} must be a hex string or bytes, got {type(value).__name__}")


def to_bytes32(value: Union[str, bytes, bytearray, None], field: str = "value") -> bytes:
    """Normalize to exactly 32 bytes; None maps to the zero word."""
    if value is None:
        return ZERO_BYTES32
    raw = to_bytes(value, field)
    if len(raw) != 32:
        raise ValueError(f"{field} must be 32 bytes, got {len(raw)}")
    return raw


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: Sequence[str], args: Sequence[Any]) -> bytes:
    """Encode calldata: 4-byte selector followed by the ABI-encoded arguments."""
    return selector(signature) + encode(list(arg_types), list(args))


def decode_call(data: bytes, signature: str, arg_types: Sequence[str]) -> Optional[Tuple[Any, ...]]:
    """
    Decode calldata produced for ``signature``.

    Returns:
        Tuple of decoded arguments, or None if the selector does not match
    """
    if len(data) < 4 or data[:4] != selector(signature):
        return None
    return tuple(decode(list(arg_types), data[4:]))


def hash_operation(
    target: str,
    value: int,
    payload: bytes,
    predecessor: Optional[bytes],
    salt: bytes
) -> str:
    """
    Compute the operation id exactly as TimelockController.hashOperation does:
    keccak256(abi.encode(target, value, data, predecessor, salt)).

    Returns:
        The id as a lowercase 0x-prefixed hex string
    """
    encoded = encode(
        OPERATION_TYPES,
        [
            Web3.to_checksum_address(target),
            value,
            payload,
            to_bytes32(predecessor, "predecessor"),
            to_bytes32(salt, "salt"),
        ]
    )
    return to_hex(Web3.keccak(encoded))


def new_salt(label: str = "operation") -> bytes:
    """
    Generate a fresh 32-byte salt from a label, the current time and randomness.

    Two calls never return the same salt, so two otherwise identical
    operations can be scheduled side by side.
    """
    seed = f"{label}-{int(time.time() * 1000)}-{secrets.token_hex(16)}"
    return bytes(Web3.keccak(text=seed))

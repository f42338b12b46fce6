"""
Helpers for upgrading a UUPS proxy through a time-lock.

The proxy must already be owned by the timelock; the upgrade is then a
regular time-locked operation whose payload is ``upgradeToAndCall``.
"""
import logging
from typing import Optional, Union

from eth_abi import decode
from web3 import Web3

from .abi import (
    EIP1967_IMPLEMENTATION_SLOT,
    OWNER_SIGNATURE,
    TRANSFER_OWNERSHIP_SIGNATURE,
    UPGRADE_SIGNATURE,
    UPGRADE_TYPES,
    encode_call,
    new_salt,
    selector,
    to_bytes,
)
from .exceptions import NetworkClientError, UpgradePreflightError
from .executor import SubmissionExecutor
from .models import Call, Operation, TxReceipt
from .network.base import NetworkClient

logger = logging.getLogger(__name__)


def build_upgrade_operation(
    proxy: str,
    new_implementation: str,
    salt: Optional[Union[str, bytes]] = None,
    init_data: Union[str, bytes] = b"",
    predecessor: Optional[Union[str, bytes]] = None
) -> Operation:
    """
    Build the time-locked operation that upgrades ``proxy``.

    Args:
        proxy: Address of the UUPS proxy
        new_implementation: Address of the deployed implementation
        salt: 32-byte salt; a fresh one is generated when omitted
        init_data: Calldata for the post-upgrade call (empty for none)
        predecessor: Optional id of an operation that must execute first

    Returns:
        Operation targeting the proxy with value 0
    """
    payload = encode_call(
        UPGRADE_SIGNATURE,
        UPGRADE_TYPES,
        [Web3.to_checksum_address(new_implementation), to_bytes(init_data, "init_data")]
    )
    return Operation(
        target=proxy,
        value=0,
        payload=payload,
        predecessor=predecessor,
        salt=salt if salt is not None else new_salt("upgrade")
    )


def read_owner(client: NetworkClient, contract: str) -> str:
    """Read ``owner()`` of an Ownable contract."""
    raw = client.call(Call(to=contract, data=selector(OWNER_SIGNATURE)))
    (owner,) = decode(["address"], raw)
    return Web3.to_checksum_address(owner)


def read_implementation(client: NetworkClient, proxy: str) -> str:
    """Read the implementation address from the proxy's EIP-1967 slot."""
    word = client.get_storage_at(proxy, EIP1967_IMPLEMENTATION_SLOT)
    return Web3.to_checksum_address("0x" + bytes(word)[-20:].hex())


def preflight_upgrade(
    client: NetworkClient,
    proxy: str,
    timelock: str,
    new_implementation: str
) -> None:
    """
    Check that an upgrade can go through the time-lock.

    Raises:
        UpgradePreflightError: If the timelock does not own the proxy, or the
            new implementation has no code
    """
    try:
        owner = read_owner(client, proxy)
    except NetworkClientError as e:
        raise UpgradePreflightError(f"Could not read owner of {proxy}: {e}") from e

    if owner != Web3.to_checksum_address(timelock):
        raise UpgradePreflightError(
            f"Timelock ({timelock}) is not the owner. Current owner is {owner}. "
            "Transfer ownership to the timelock first."
        )

    try:
        implementation_code = client.get_code(new_implementation)
    except NetworkClientError as e:
        raise UpgradePreflightError(f"Could not read code at {new_implementation}: {e}") from e
    if not implementation_code:
        raise UpgradePreflightError(f"New implementation address {new_implementation} is not a contract")

    logger.debug(f"Upgrade preflight passed for proxy {proxy} -> {new_implementation}")


def transfer_ownership_to_timelock(
    client: NetworkClient,
    executor: SubmissionExecutor,
    contract: str,
    timelock: str
) -> Optional[TxReceipt]:
    """
    Hand ownership of an Ownable contract (usually the proxy) to the timelock.

    Once this is done, upgrades of the contract can only go through the
    time-lock.

    Returns:
        Receipt of the transfer, or None if the timelock already owns the contract

    Raises:
        UpgradePreflightError: If the submitter is not the current owner, the
            timelock has no code, or the owner did not change after the transfer
        FatalSubmissionError, SubmissionExhausted: From the executor
    """
    timelock = Web3.to_checksum_address(timelock)
    try:
        owner = read_owner(client, contract)
        timelock_code = client.get_code(timelock)
    except NetworkClientError as e:
        raise UpgradePreflightError(f"Could not read ownership of {contract}: {e}") from e

    if owner == timelock:
        logger.info(f"Timelock {timelock} already owns {contract}")
        return None
    if owner != Web3.to_checksum_address(client.address):
        raise UpgradePreflightError(
            f"Submitter ({client.address}) is not the owner of {contract}. Current owner is {owner}."
        )
    if not timelock_code:
        raise UpgradePreflightError(f"Timelock address {timelock} is not a contract")

    logger.info(f"Transferring ownership of {contract} from {owner} to timelock {timelock}")
    receipt = executor.submit(Call(
        to=contract,
        data=encode_call(TRANSFER_OWNERSHIP_SIGNATURE, ["address"], [timelock])
    ))

    new_owner = read_owner(client, contract)
    if new_owner != timelock:
        raise UpgradePreflightError(
            f"Ownership transfer of {contract} confirmed in block {receipt.block_number}, "
            f"but the owner is {new_owner}"
        )
    return receipt


def verify_upgrade(client: NetworkClient, proxy: str, expected_implementation: str) -> bool:
    """Return True if the proxy now points at ``expected_implementation``."""
    actual = read_implementation(client, proxy)
    expected = Web3.to_checksum_address(expected_implementation)
    if actual != expected:
        logger.warning(f"Implementation address mismatch for {proxy}: expected {expected}, found {actual}")
        return False
    return True

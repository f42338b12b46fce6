"""
Tests for the in-memory SimulatedNetwork.
"""
import pytest

from timelock_sdk.abi import (
    SCHEDULE_SIGNATURE,
    SCHEDULE_TYPES,
    TRANSFER_OWNERSHIP_SIGNATURE,
    UPDATE_DELAY_SIGNATURE,
    ZERO_BYTES32,
    encode_call,
)
from timelock_sdk.exceptions import (
    CallReverted,
    ConfirmationTimeout,
    EstimationFailed,
    NetworkClientError,
    TransientNetworkError,
)
from timelock_sdk.models import Call, DynamicFee, FixedFee
from timelock_sdk.network.simulated import SimulatedNetwork

from conftest import MIN_DELAY, START_TIME, TEST_TARGET

FEE = FixedFee(price_per_unit=5_000_000_000)


def _schedule_call(timelock, delay, salt=b"\x01" * 32):
    data = encode_call(SCHEDULE_SIGNATURE, SCHEDULE_TYPES, [TEST_TARGET, 0, b"", ZERO_BYTES32, salt, delay])
    return Call(to=timelock, data=data)


def test_clock_only_moves_on_advance(network):
    assert network.current_time() == START_TIME
    assert network.advance(10) == START_TIME + 10
    assert network.current_time() == START_TIME + 10


def test_nonces_are_sequential(network):
    first = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)
    second = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)

    assert (first.nonce, second.nonce) == (0, 1)
    assert first.tx_hash != second.tx_hash


def test_confirmation_is_idempotent(network):
    handle = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)

    first = network.await_confirmation(handle, 1)
    second = network.await_confirmation(handle, 1)

    assert first == second
    assert network.block_number == 1


def test_scripted_timeout_leaves_transaction_pending(network):
    handle = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)
    network.fail_next("confirm", ConfirmationTimeout("slow"))

    with pytest.raises(ConfirmationTimeout):
        network.await_confirmation(handle, 1)

    assert network.await_confirmation(handle, 1).status == 1


def test_replacing_a_mined_transaction_returns_it(network):
    handle = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)
    network.await_confirmation(handle, 1)

    assert network.submit_call(Call(to=TEST_TARGET), FEE, 21000, replacing=handle) is handle


def test_replaced_transaction_is_dropped(network):
    stuck = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)
    replacement = network.submit_call(Call(to=TEST_TARGET), FixedFee(price_per_unit=6_000_000_000), 21000, replacing=stuck)

    assert replacement.nonce == stuck.nonce
    with pytest.raises(NetworkClientError):
        network.await_confirmation(stuck, 1)


def test_gas_used_is_capped_by_limit(network):
    handle = network.submit_call(Call(to=TEST_TARGET), FEE, 30000)

    assert network.await_confirmation(handle, 1).gas_used == 30000


def test_schedule_rejects_short_delay(network, timelock):
    with pytest.raises(EstimationFailed) as exc_info:
        network.estimate_resources(_schedule_call(timelock, MIN_DELAY - 1))

    assert exc_info.value.reverted is True
    assert "TimelockInsufficientDelay" in str(exc_info.value)


def test_schedule_twice_reverts(network, timelock):
    call = _schedule_call(timelock, MIN_DELAY)
    network.await_confirmation(network.submit_call(call, FEE, 100000), 1)

    handle = network.submit_call(call, FEE, 100000)
    with pytest.raises(CallReverted, match="TimelockUnexpectedOperationState"):
        network.await_confirmation(handle, 1)


def test_update_delay_requires_self_call(network, timelock):
    call = Call(to=timelock, data=encode_call(UPDATE_DELAY_SIGNATURE, ["uint256"], [1]))

    with pytest.raises(EstimationFailed, match="TimelockUnauthorizedCaller"):
        network.estimate_resources(call)


def test_unknown_selector_reverts(network, timelock):
    with pytest.raises(EstimationFailed, match="not recognized"):
        network.estimate_resources(Call(to=timelock, data="0xdeadbeef"))


def test_unknown_registry(network):
    with pytest.raises(NetworkClientError):
        network.read_min_delay(TEST_TARGET)


def test_fail_next_unknown_stage(network):
    with pytest.raises(ValueError):
        network.fail_next("mempool", RuntimeError())


def test_deterministic_addresses():
    assert SimulatedNetwork(now=0).new_address() == SimulatedNetwork(now=0).new_address()


def test_underpriced_replacement_is_refused(network):
    """Like a geth txpool, a replacement must raise every fee component by 10%."""
    stuck = network.submit_call(Call(to=TEST_TARGET), FEE, 21000)

    with pytest.raises(TransientNetworkError, match="underpriced"):
        network.submit_call(Call(to=TEST_TARGET), FixedFee(price_per_unit=5_400_000_000), 21000, replacing=stuck)

    # The stuck transaction is still pending and can be mined
    assert network.await_confirmation(stuck, 1).status == 1


def test_dynamic_replacement_needs_higher_priority_fee(network):
    stuck = network.submit_call(
        Call(to=TEST_TARGET), DynamicFee(max_fee_per_unit=100, max_priority_fee_per_unit=10), 21000
    )

    with pytest.raises(TransientNetworkError):
        network.submit_call(
            Call(to=TEST_TARGET),
            DynamicFee(max_fee_per_unit=200, max_priority_fee_per_unit=10),
            21000,
            replacing=stuck
        )


def test_transfer_ownership(network):
    proxy = network.deploy_proxy(owner=network.address, implementation=network.deploy_contract())
    new_owner = network.new_address()
    call = Call(to=proxy, data=encode_call(TRANSFER_OWNERSHIP_SIGNATURE, ["address"], [new_owner]))

    network.await_confirmation(network.submit_call(call, FEE, 100000), 1)

    assert network.proxies[proxy].owner == new_owner
    # The previous owner can no longer transfer it
    with pytest.raises(EstimationFailed, match="OwnableUnauthorizedAccount"):
        network.estimate_resources(call)

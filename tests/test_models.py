"""
Tests for data models.
"""
import pytest
from pydantic import TypeAdapter, ValidationError

from timelock_sdk.models import (
    Call,
    DynamicFee,
    FeeQuote,
    FixedFee,
    OperationState,
    OperationStatus,
    ResourceEstimate,
    SubmissionAttempt,
    TransientFailure,
    TxReceipt,
)

from conftest import TEST_RECIPIENT, TEST_TARGET


class TestFeeQuote:
    """Fee quotes are a tagged union."""

    def test_parse_dynamic(self):
        quote = TypeAdapter(FeeQuote).validate_python(
            {"kind": "dynamic", "max_fee_per_unit": 120, "max_priority_fee_per_unit": 11}
        )
        assert isinstance(quote, DynamicFee)

    def test_parse_fixed(self):
        quote = TypeAdapter(FeeQuote).validate_python({"kind": "fixed", "price_per_unit": 5, "degraded": True})
        assert isinstance(quote, FixedFee)
        assert quote.degraded is True

    def test_priority_above_max_rejected(self):
        with pytest.raises(ValidationError):
            DynamicFee(max_fee_per_unit=10, max_priority_fee_per_unit=11)

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValidationError):
            FixedFee(price_per_unit=0)

    def test_tx_params(self):
        assert DynamicFee(max_fee_per_unit=120, max_priority_fee_per_unit=11).to_tx_params() == {
            "type": 2,
            "maxFeePerGas": 120,
            "maxPriorityFeePerGas": 11,
        }
        assert FixedFee(price_per_unit=5).to_tx_params() == {"gasPrice": 5}


class TestResourceEstimate:

    def test_from_base(self):
        estimate = ResourceEstimate.from_base(100000, 0.25)
        assert estimate.buffered_limit == 125000
        assert estimate.degraded is False

    def test_fallback(self):
        estimate = ResourceEstimate.fallback(100000)
        assert estimate.base_estimate == estimate.buffered_limit == 100000
        assert estimate.degraded is True


def test_call_normalizes_fields():
    call = Call(to=TEST_TARGET.lower(), data="0xdeadbeef", value=3)

    assert call.to == TEST_TARGET
    assert call.data == bytes.fromhex("deadbeef")
    assert call.to_tx_params() == {"to": TEST_TARGET, "data": "0xdeadbeef", "value": 3}


def test_call_rejects_negative_value():
    with pytest.raises(ValidationError):
        Call(to=TEST_TARGET, value=-1)


def test_receipt_from_web3():
    """Web3 receipts carry raw bytes; the model stores hex strings."""
    web3_receipt = {
        "transactionHash": bytes.fromhex("12" * 32),
        "blockNumber": 12345,
        "blockHash": bytes.fromhex("34" * 32),
        "status": 1,
        "gasUsed": 100000,
        "effectiveGasPrice": 5_000_000_000,
        "from": TEST_RECIPIENT,
        "to": TEST_TARGET,
        "logs": [{"address": TEST_TARGET, "data": "0x"}],
    }

    receipt = TxReceipt.from_web3(web3_receipt)

    assert receipt.tx_hash == "0x" + "12" * 32
    assert receipt.block_hash == "0x" + "34" * 32
    assert receipt.block_number == 12345
    assert receipt.from_address == TEST_RECIPIENT
    assert receipt.effective_gas_price == 5_000_000_000
    assert receipt.logs == [{"address": TEST_TARGET, "data": "0x"}]


def test_submission_attempt_outcome_is_tagged():
    attempt = SubmissionAttempt.model_validate({
        "attempt_number": 1,
        "fee_quote": {"kind": "fixed", "price_per_unit": 5},
        "resource_estimate": {"base_estimate": 1, "buffered_limit": 2},
        "outcome": {"kind": "transient", "reason": "txpool is full"},
    })

    assert isinstance(attempt.outcome, TransientFailure)
    assert isinstance(attempt.fee_quote, FixedFee)


class TestOperationStatus:

    def test_remaining_while_pending(self):
        status = OperationStatus(state=OperationState.PENDING, ready_at=1000)
        assert status.remaining(400) == 600
        assert str(status) == "pending(ready_at=1000)"

    def test_remaining_once_ready(self):
        status = OperationStatus(state=OperationState.READY, ready_at=1000)
        assert status.remaining(1200) == 0
        assert str(status) == "ready"

    def test_remaining_for_unset(self):
        assert OperationStatus(state=OperationState.UNSET).remaining(0) == 0

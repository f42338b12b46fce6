"""
Data models for the Timelock SDK.
"""
import math
from decimal import Decimal
from enum import Enum
from typing import Annotated, Dict, Any, Literal, Optional, List, Union

from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator
from web3 import Web3

from .abi import ZERO_BYTES32, hash_operation, to_bytes, to_hex


def _checksum(value: str, field: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"{field} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    effective_gas_price: Optional[int] = Field(None, alias="effectiveGasPrice")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @classmethod
    def from_web3(cls, web3_receipt: Any) -> "TxReceipt":
        """
        Convert a Web3 receipt (AttributeDict with HexBytes values) to a TxReceipt.

        Args:
            web3_receipt: The Web3 transaction receipt

        Returns:
            Our TxReceipt model
        """
        receipt_dict = dict(web3_receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, bytes):
                receipt_dict[key] = to_hex(value)

        receipt_dict["logs"] = [dict(log) for log in receipt_dict.get("logs") or []]
        return cls.model_validate(receipt_dict)


class Call(BaseModel):
    """A prepared call: exactly what will be estimated and submitted."""
    to: str
    data: bytes = b""
    value: int = Field(0, ge=0)

    class Config:
        frozen = True

    @field_validator("to", mode="before")
    @classmethod
    def _validate_to(cls, v):
        return _checksum(v, "to")

    @field_validator("data", mode="before")
    @classmethod
    def _validate_data(cls, v):
        return to_bytes(v, "data")

    def to_tx_params(self) -> Dict[str, Any]:
        return {"to": self.to, "data": to_hex(self.data), "value": self.value}


class DynamicFee(BaseModel):
    """EIP-1559 fee parameters."""
    kind: Literal["dynamic"] = "dynamic"
    max_fee_per_unit: PositiveInt
    max_priority_fee_per_unit: PositiveInt
    degraded: bool = False

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _priority_within_max(self):
        if self.max_priority_fee_per_unit > self.max_fee_per_unit:
            raise ValueError("max_priority_fee_per_unit must not exceed max_fee_per_unit")
        return self

    def to_tx_params(self) -> Dict[str, Any]:
        return {
            "type": 2,
            "maxFeePerGas": self.max_fee_per_unit,
            "maxPriorityFeePerGas": self.max_priority_fee_per_unit,
        }


class FixedFee(BaseModel):
    """Legacy single-price fee parameters."""
    kind: Literal["fixed"] = "fixed"
    price_per_unit: PositiveInt
    degraded: bool = False

    class Config:
        frozen = True

    def to_tx_params(self) -> Dict[str, Any]:
        return {"gasPrice": self.price_per_unit}


FeeQuote = Annotated[Union[DynamicFee, FixedFee], Field(discriminator="kind")]


class ResourceEstimate(BaseModel):
    """Resource ceiling for a call, with the safety buffer applied."""
    base_estimate: PositiveInt
    buffered_limit: PositiveInt
    degraded: bool = False

    class Config:
        frozen = True

    @classmethod
    def from_base(cls, base_estimate: int, buffer_ratio: float) -> "ResourceEstimate":
        ratio = Decimal(str(buffer_ratio))
        buffered = math.ceil(Decimal(base_estimate) * (1 + ratio))
        return cls(base_estimate=base_estimate, buffered_limit=buffered)

    @classmethod
    def fallback(cls, limit: int) -> "ResourceEstimate":
        return cls(base_estimate=limit, buffered_limit=limit, degraded=True)


class Confirmed(BaseModel):
    kind: Literal["confirmed"] = "confirmed"
    receipt: TxReceipt


class TransientFailure(BaseModel):
    kind: Literal["transient"] = "transient"
    reason: str


class FatalFailure(BaseModel):
    kind: Literal["fatal"] = "fatal"
    reason: str


AttemptOutcome = Annotated[
    Union[Confirmed, TransientFailure, FatalFailure],
    Field(discriminator="kind")
]


class SubmissionAttempt(BaseModel):
    """One attempt made by SubmissionExecutor.submit."""
    attempt_number: PositiveInt
    fee_quote: FeeQuote
    resource_estimate: ResourceEstimate
    outcome: AttemptOutcome
    tx_hash: Optional[str] = None

    class Config:
        frozen = True


class Operation(BaseModel):
    """
    A time-locked operation. Its id is a pure function of its fields and
    matches the remote TimelockController's hashOperation.
    """
    target: str
    value: int = Field(0, ge=0)
    payload: bytes = b""
    predecessor: Optional[bytes] = None
    salt: bytes = ZERO_BYTES32

    class Config:
        frozen = True

    @field_validator("target", mode="before")
    @classmethod
    def _validate_target(cls, v):
        return _checksum(v, "target")

    @field_validator("payload", mode="before")
    @classmethod
    def _validate_payload(cls, v):
        return to_bytes(v, "payload")

    @field_validator("predecessor", mode="before")
    @classmethod
    def _validate_predecessor(cls, v):
        if v is None:
            return None
        raw = to_bytes(v, "predecessor")
        if len(raw) != 32:
            raise ValueError(f"predecessor must be 32 bytes, got {len(raw)}")
        # The zero word means "no predecessor"
        return None if raw == ZERO_BYTES32 else raw

    @field_validator("salt", mode="before")
    @classmethod
    def _validate_salt(cls, v):
        raw = to_bytes(v, "salt")
        if len(raw) != 32:
            raise ValueError(f"salt must be 32 bytes, got {len(raw)}")
        return raw

    @property
    def operation_id(self) -> str:
        return hash_operation(self.target, self.value, self.payload, self.predecessor, self.salt)

    @property
    def predecessor_id(self) -> Optional[str]:
        return to_hex(self.predecessor) if self.predecessor else None


class OperationState(str, Enum):
    UNSET = "unset"
    PENDING = "pending"
    READY = "ready"
    DONE = "done"


class OperationStatus(BaseModel):
    """State of an operation, derived from a fresh remote read."""
    state: OperationState
    ready_at: Optional[int] = None

    class Config:
        frozen = True

    def remaining(self, now: int) -> int:
        """Seconds until the operation becomes ready (0 once ready)."""
        if self.state != OperationState.PENDING or self.ready_at is None:
            return 0
        return max(self.ready_at - now, 0)

    def __str__(self) -> str:
        if self.state == OperationState.PENDING:
            return f"pending(ready_at={self.ready_at})"
        return self.state.value


class ScheduledOperation(BaseModel):
    """Result of OperationRegistry.schedule."""
    operation_id: str
    ready_at: int
    receipt: Optional[TxReceipt] = None

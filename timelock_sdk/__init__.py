"""
Timelock SDK - resilient call submission and time-locked operations for EVM networks.
"""
from .version import __version__
from .client import TimelockClient
from .config import NetworkConfig, SubmissionSettings
from .executor import SubmissionExecutor
from .estimator import ResourceEstimator
from .fees import FeeStrategy
from .registry import OperationRegistry
from .abi import hash_operation, new_salt
from .models import (
    Call,
    DynamicFee,
    FixedFee,
    ResourceEstimate,
    SubmissionAttempt,
    Confirmed,
    TransientFailure,
    FatalFailure,
    Operation,
    OperationState,
    OperationStatus,
    ScheduledOperation,
    TxReceipt,
)
from .exceptions import (
    TimelockSDKError,
    NetworkClientError,
    TransientNetworkError,
    ConfirmationTimeout,
    CallRejected,
    CallReverted,
    SubmissionError,
    FatalSubmissionError,
    SubmissionExhausted,
    TimelockError,
    DelayTooShort,
    NotReady,
    OperationNotFound,
    PredecessorNotDone,
    OperationAlreadyDone,
    IdentityMismatch,
    UpgradePreflightError,
)

__all__ = [
    "TimelockClient",
    "NetworkConfig",
    "SubmissionSettings",
    "SubmissionExecutor",
    "ResourceEstimator",
    "FeeStrategy",
    "OperationRegistry",
    "hash_operation",
    "new_salt",
    "Call",
    "DynamicFee",
    "FixedFee",
    "ResourceEstimate",
    "SubmissionAttempt",
    "Confirmed",
    "TransientFailure",
    "FatalFailure",
    "Operation",
    "OperationState",
    "OperationStatus",
    "ScheduledOperation",
    "TxReceipt",
    "TimelockSDKError",
    "NetworkClientError",
    "TransientNetworkError",
    "ConfirmationTimeout",
    "CallRejected",
    "CallReverted",
    "SubmissionError",
    "FatalSubmissionError",
    "SubmissionExhausted",
    "TimelockError",
    "DelayTooShort",
    "NotReady",
    "OperationNotFound",
    "PredecessorNotDone",
    "OperationAlreadyDone",
    "IdentityMismatch",
    "UpgradePreflightError",
    "__version__",
]

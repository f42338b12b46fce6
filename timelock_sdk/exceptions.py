"""
Exceptions for the Timelock SDK.
"""
from typing import Any, List, Optional


class TimelockSDKError(Exception):
    """Base exception for all Timelock SDK errors."""
    pass


# ---------------------------------------------------------------------------
# Network client errors
# ---------------------------------------------------------------------------

class NetworkClientError(TimelockSDKError):
    """Raised by NetworkClient implementations."""
    pass


class FeeMarketUnavailable(NetworkClientError):
    """Raised when the fee market cannot be queried."""
    pass


class EstimationFailed(NetworkClientError):
    """Raised when the network cannot estimate resources for a call."""

    def __init__(self, message: str, reverted: bool = False):
        self.reverted = reverted
        super().__init__(message)


class TransientNetworkError(NetworkClientError):
    """A condition that may clear by itself: congestion, underpricing, node hiccups."""
    pass


class ConfirmationTimeout(TransientNetworkError):
    """Raised when a submitted call is not included within the timeout."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class CallRejected(NetworkClientError):
    """The node refused the call outright (e.g. insufficient funds)."""
    pass


class CallReverted(NetworkClientError):
    """The remote logic rejected the call."""

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"Call reverted: {reason}")


# ---------------------------------------------------------------------------
# Submission errors
# ---------------------------------------------------------------------------

class SubmissionError(TimelockSDKError):
    """Base for errors surfaced by the SubmissionExecutor."""

    def __init__(self, message: str, attempts: Optional[List[Any]] = None):
        self.attempts = list(attempts or [])
        super().__init__(message)


class FatalSubmissionError(SubmissionError):
    """A submission attempt was rejected for a business reason; no retry."""

    def __init__(self, reason: str, attempts: Optional[List[Any]] = None):
        self.reason = reason
        super().__init__(
            f"Submission aborted after {len(attempts or [])} attempt(s): {reason}",
            attempts
        )


class SubmissionExhausted(SubmissionError):
    """Every attempt failed with a transient condition."""

    def __init__(self, attempts: List[Any]):
        reasons = "; ".join(
            f"#{a.attempt_number}: {a.outcome.reason}" for a in attempts
        )
        super().__init__(
            f"Submission failed after {len(attempts)} attempts ({reasons})",
            attempts
        )


# ---------------------------------------------------------------------------
# Time-lock errors
# ---------------------------------------------------------------------------

class TimelockError(TimelockSDKError):
    """Base for caller errors raised by the OperationRegistry."""
    pass


class DelayTooShort(TimelockError):
    """The requested delay is below the registry's minimum delay."""

    def __init__(self, delay: int, min_delay: int):
        self.delay = delay
        self.min_delay = min_delay
        super().__init__(f"Delay {delay}s is below the minimum delay of {min_delay}s")


class NotReady(TimelockError):
    """The operation cannot be executed in its current state."""

    def __init__(self, operation_id: str, status: Any, message: Optional[str] = None):
        self.operation_id = operation_id
        self.status = status
        super().__init__(message or f"Operation {operation_id} is not ready (state: {status})")


class OperationNotFound(NotReady):
    """The operation was never scheduled, or has been cancelled."""

    def __init__(self, operation_id: str, status: Any = None):
        super().__init__(
            operation_id,
            status,
            f"Operation {operation_id} is not scheduled. It may not exist or may have been cancelled."
        )


class PredecessorNotDone(NotReady):
    """The operation depends on a predecessor that has not been executed."""

    def __init__(self, operation_id: str, predecessor_id: str, status: Any = None):
        self.predecessor_id = predecessor_id
        super().__init__(
            operation_id,
            status,
            f"Operation {operation_id} depends on {predecessor_id}, which is not done"
        )


class OperationAlreadyDone(TimelockError):
    """The operation has already been executed and cannot be scheduled again."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"Operation {operation_id} has already been executed")


class IdentityMismatch(TimelockError):
    """The supplied operation fields do not hash to the supplied id."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Operation fields hash to {actual}, not {expected}")


class UpgradePreflightError(TimelockSDKError):
    """A timelocked upgrade failed its pre-scheduling checks."""
    pass

"""
Time-lock operation registry.

A thin command/query wrapper over a remote TimelockController. Operation
state is never stored locally: every decision re-reads the remote record,
and the only local computation is the operation id itself.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from web3 import Web3

from .abi import (
    CANCEL_SIGNATURE,
    EXECUTE_SIGNATURE,
    EXECUTE_TYPES,
    SCHEDULE_SIGNATURE,
    SCHEDULE_TYPES,
    encode_call,
    to_bytes32,
    to_hex,
)
from .exceptions import (
    DelayTooShort,
    IdentityMismatch,
    NotReady,
    OperationAlreadyDone,
    OperationNotFound,
    PredecessorNotDone,
    TimelockError,
)
from .executor import SubmissionExecutor
from .models import (
    Call,
    Operation,
    OperationState,
    OperationStatus,
    ScheduledOperation,
    TxReceipt,
)
from .network.base import NetworkClient

logger = logging.getLogger(__name__)


def normalize_operation_id(operation_id: str) -> str:
    """Return ``operation_id`` as a lowercase 0x-prefixed 32-byte hex string."""
    return to_hex(to_bytes32(operation_id, "operation_id"))


class OperationRegistry:
    """
    Schedules, queries and executes time-locked operations.

    State machine per operation id (derived from the remote record at
    query time)::

        Unset --schedule--> Pending --time--> Ready --execute--> Done
        Pending/Ready --cancel--> Unset

    Schedule, execute and cancel calls go through the SubmissionExecutor.
    Within a process, one operation id never has two of these in flight.
    """

    def __init__(
        self,
        client: NetworkClient,
        executor: SubmissionExecutor,
        registry_address: str,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.executor = executor
        self.registry_address = Web3.to_checksum_address(registry_address)
        self.logger = logger or logging.getLogger(__name__)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _operation_lock(self, operation_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(operation_id, threading.Lock())
        with lock:
            yield

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def min_delay(self) -> int:
        """Current minimum delay in seconds, read from the registry."""
        return self.client.read_min_delay(self.registry_address)

    def status(self, operation_id: str) -> OperationStatus:
        """
        Read the state of an operation.

        Always queries the remote registry; never served from a cache.
        """
        operation_id = normalize_operation_id(operation_id)
        record = self.client.read_registry_state(self.registry_address, operation_id)

        if not record.exists:
            return OperationStatus(state=OperationState.UNSET)
        if record.done:
            return OperationStatus(state=OperationState.DONE)
        if self.client.current_time() < record.ready_timestamp:
            return OperationStatus(state=OperationState.PENDING, ready_at=record.ready_timestamp)
        return OperationStatus(state=OperationState.READY, ready_at=record.ready_timestamp)

    def time_remaining(self, operation_id: str) -> int:
        """Seconds until the operation becomes ready (0 if ready or not pending)."""
        return self.status(operation_id).remaining(self.client.current_time())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def schedule(self, operation: Operation, delay: int) -> ScheduledOperation:
        """
        Schedule ``operation`` to become executable after ``delay`` seconds.

        Scheduling an operation that is already pending or ready returns the
        existing schedule without submitting anything.

        Raises:
            DelayTooShort: If ``delay`` is below the registry's current minimum
            OperationAlreadyDone: If the operation has already been executed
            FatalSubmissionError, SubmissionExhausted: From the executor
        """
        operation_id = operation.operation_id

        min_delay = self.min_delay()
        if delay < min_delay:
            raise DelayTooShort(delay, min_delay)

        with self._operation_lock(operation_id):
            current = self.status(operation_id)
            if current.state in (OperationState.PENDING, OperationState.READY):
                self.logger.info(f"Operation {operation_id} already scheduled (ready at {current.ready_at})")
                return ScheduledOperation(operation_id=operation_id, ready_at=current.ready_at)
            if current.state == OperationState.DONE:
                raise OperationAlreadyDone(operation_id)

            self.logger.info(
                f"Scheduling operation {operation_id} on {self.registry_address}: "
                f"target={operation.target} delay={delay}s"
            )
            receipt = self.executor.submit(self._schedule_call(operation, delay))

            scheduled = self.status(operation_id)
            if scheduled.ready_at is None:
                raise TimelockError(
                    f"Operation {operation_id} is {scheduled} after its schedule call was confirmed"
                )

        self.logger.info(f"Operation {operation_id} scheduled, ready at {scheduled.ready_at}")
        return ScheduledOperation(operation_id=operation_id, ready_at=scheduled.ready_at, receipt=receipt)

    def execute(self, operation_id: str, operation: Operation) -> TxReceipt:
        """
        Execute a ready operation.

        ``operation`` must carry the exact fields it was scheduled with; they
        are re-hashed and checked against ``operation_id`` first.

        Raises:
            IdentityMismatch: If the fields do not hash to ``operation_id``
            OperationNotFound: If the operation is not scheduled
            NotReady: If the operation is pending or already done
            PredecessorNotDone: If the predecessor has not been executed
            FatalSubmissionError, SubmissionExhausted: From the executor
        """
        operation_id = normalize_operation_id(operation_id)
        computed = operation.operation_id
        if computed != operation_id:
            raise IdentityMismatch(operation_id, computed)

        with self._operation_lock(operation_id):
            current = self.status(operation_id)
            if current.state == OperationState.UNSET:
                raise OperationNotFound(operation_id, current)
            if current.state != OperationState.READY:
                raise NotReady(operation_id, current)

            predecessor_id = operation.predecessor_id
            if predecessor_id is not None:
                predecessor = self.status(predecessor_id)
                if predecessor.state != OperationState.DONE:
                    raise PredecessorNotDone(operation_id, predecessor_id, predecessor)

            self.logger.info(f"Executing operation {operation_id}: target={operation.target}")
            receipt = self.executor.submit(self._execute_call(operation))

        self.logger.info(f"Operation {operation_id} executed in block {receipt.block_number}")
        return receipt

    def cancel(self, operation_id: str) -> TxReceipt:
        """
        Cancel a pending or ready operation; its id returns to Unset.

        Raises:
            OperationNotFound: If the operation is not scheduled
            OperationAlreadyDone: If the operation has already been executed
        """
        operation_id = normalize_operation_id(operation_id)
        with self._operation_lock(operation_id):
            current = self.status(operation_id)
            if current.state == OperationState.UNSET:
                raise OperationNotFound(operation_id, current)
            if current.state == OperationState.DONE:
                raise OperationAlreadyDone(operation_id)

            self.logger.info(f"Cancelling operation {operation_id}")
            call = Call(
                to=self.registry_address,
                data=encode_call(CANCEL_SIGNATURE, ["bytes32"], [to_bytes32(operation_id)])
            )
            return self.executor.submit(call)

    def _schedule_call(self, operation: Operation, delay: int) -> Call:
        data = encode_call(SCHEDULE_SIGNATURE, SCHEDULE_TYPES, [
            operation.target,
            operation.value,
            operation.payload,
            to_bytes32(operation.predecessor),
            operation.salt,
            delay,
        ])
        return Call(to=self.registry_address, data=data)

    def _execute_call(self, operation: Operation) -> Call:
        data = encode_call(EXECUTE_SIGNATURE, EXECUTE_TYPES, [
            operation.target,
            operation.value,
            operation.payload,
            to_bytes32(operation.predecessor),
            operation.salt,
        ])
        # execute is payable; the call value funds the operation's own value
        return Call(to=self.registry_address, data=data, value=operation.value)

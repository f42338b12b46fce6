"""
Network client abstraction for the Timelock SDK.

This module defines the interface the submission layer and the operation
registry consume from the execution network, so that the same core runs
against a real JSON-RPC node (Web3NetworkClient) or an in-memory chain
(SimulatedNetwork).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from ..models import Call, DynamicFee, FixedFee, TxReceipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeMarket:
    """
    Raw fee-market reading from the network.

    ``max_fee`` and ``max_priority_fee`` are both set only when the network
    supports dynamic (EIP-1559) pricing.
    """
    max_fee: Optional[int] = None
    max_priority_fee: Optional[int] = None
    legacy_price: Optional[int] = None

    @property
    def supports_dynamic_fees(self) -> bool:
        return bool(self.max_fee) and bool(self.max_priority_fee)


@dataclass(frozen=True)
class RegistryState:
    """
    Raw registry record for an operation id.

    Mirrors TimelockController.getTimestamp: 0 means no record, 1 means done,
    anything else is the timestamp at which the operation becomes ready.
    """
    exists: bool
    ready_timestamp: int = 0
    done: bool = False

    _DONE_TIMESTAMP = 1

    @classmethod
    def from_timestamp(cls, timestamp: int) -> "RegistryState":
        if timestamp == 0:
            return cls(exists=False)
        if timestamp == cls._DONE_TIMESTAMP:
            return cls(exists=True, ready_timestamp=timestamp, done=True)
        return cls(exists=True, ready_timestamp=timestamp)


@dataclass(frozen=True)
class SubmissionHandle:
    """Reference to a submitted transaction."""
    tx_hash: str
    nonce: Optional[int] = None


class NetworkClient(ABC):
    """
    Abstract base class for execution-network clients.

    Implementations own signing, nonce sequencing and the classification of
    node errors into the NetworkClientError hierarchy. Every method is a
    blocking call bounded by the client's own request timeout.
    """

    @abstractmethod
    def query_fee_market(self) -> FeeMarket:
        """
        Read the current fee market.

        Raises:
            FeeMarketUnavailable: If the query fails
        """
        pass

    @abstractmethod
    def estimate_resources(self, call: Call) -> int:
        """
        Simulate ``call`` and return the resource units it consumes.

        Raises:
            EstimationFailed: If the call would revert or the node is unreachable
        """
        pass

    @abstractmethod
    def submit_call(
        self,
        call: Call,
        fee_quote: Union[DynamicFee, FixedFee],
        gas_limit: int,
        replacing: Optional[SubmissionHandle] = None
    ) -> SubmissionHandle:
        """
        Sign and broadcast ``call``.

        Args:
            call: The prepared call
            fee_quote: Fee parameters for this attempt
            gas_limit: Resource ceiling for this attempt
            replacing: Handle of a previous attempt that timed out; its nonce
                is reused so this submission replaces it

        Raises:
            TransientNetworkError: For retryable node conditions
            CallRejected: If the node refuses the call
        """
        pass

    @abstractmethod
    def await_confirmation(self, handle: SubmissionHandle, timeout: float) -> TxReceipt:
        """
        Wait for ``handle`` to be included.

        Raises:
            ConfirmationTimeout: If not confirmed within ``timeout`` seconds
            CallReverted: If the call was included but failed
        """
        pass

    @abstractmethod
    def read_registry_state(self, registry: str, operation_id: str) -> RegistryState:
        """Read the registry record for ``operation_id``."""
        pass

    @abstractmethod
    def read_min_delay(self, registry: str) -> int:
        """Read the registry's current minimum delay in seconds."""
        pass

    @abstractmethod
    def current_time(self) -> int:
        """Return the remote clock (timestamp of the latest block)."""
        pass

    @abstractmethod
    def get_code(self, address: str) -> bytes:
        """Return the deployed code at ``address`` (empty for accounts)."""
        pass

    @abstractmethod
    def get_storage_at(self, address: str, slot: int) -> bytes:
        """Return the 32-byte storage word at ``slot``."""
        pass

    @abstractmethod
    def call(self, call: Call) -> bytes:
        """Execute a read-only call and return the raw return data."""
        pass

    @property
    @abstractmethod
    def address(self) -> str:
        """Address of the submitting credential."""
        pass

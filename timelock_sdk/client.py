"""
TimelockClient - Main entry point of the Timelock SDK.
"""
import logging
from typing import Optional, Tuple, Union

from .config import NetworkConfig, SubmissionSettings
from .estimator import ResourceEstimator
from .executor import SubmissionExecutor
from .fees import FeeStrategy
from .models import Call, Operation, OperationStatus, ScheduledOperation, TxReceipt
from .network.base import NetworkClient
from .network.web3_client import Signer, Web3NetworkClient
from .registry import OperationRegistry
from .upgrade import (
    build_upgrade_operation,
    preflight_upgrade,
    transfer_ownership_to_timelock,
    verify_upgrade,
)


class TimelockClient:
    """
    Client for submitting calls and driving time-locked operations.

    This client handles:
    1. Submitting calls with adaptive fees and bounded retries
    2. Scheduling, querying, executing and cancelling time-locked operations
    3. Handing proxies to the time-lock and upgrading them through it

    To use this client, you'll need:
    - The address of a deployed TimelockController
    - Either a bundled network name, an RPC URL, or a ready NetworkClient
    - Either a private key or a custom signer (unless a NetworkClient is given)
    """

    def __init__(
        self,
        timelock_address: str,
        network: Optional[str] = None,
        rpc_url: Optional[str] = None,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        network_client: Optional[NetworkClient] = None,
        settings: Optional[SubmissionSettings] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the TimelockClient

        Args:
            timelock_address: TimelockController contract address
            network: Bundled network name (e.g., "bsc_testnet")
            rpc_url: RPC endpoint URL; overrides the network's RPC URL
            priv_key: Private key of the submitting account
            signer: Custom signer object (alternative to priv_key)
            network_client: Pre-built NetworkClient (skips Web3 setup)
            settings: Submission settings; read from the environment when omitted
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If no way to reach the network is given
            ValueError: If the network name is unknown
        """
        self.logger = logger or logging.getLogger(__name__)
        self.network = network
        self._network_config = NetworkConfig.get_network(network) if network else {}

        if network_client is None:
            if not rpc_url and not network:
                raise ValueError("Either network, rpc_url or network_client must be provided")
            network_client = Web3NetworkClient(
                rpc_url or NetworkConfig.get_rpc_url(network),
                priv_key=priv_key,
                signer=signer,
                chain_id=self._network_config.get("chainId"),
                confirmations=self._network_config.get("confirmations", 1),
                timeout=self._network_config.get("timeoutSeconds", 30),
                logger=self.logger
            )
        self.network_client = network_client

        if settings is None:
            settings = SubmissionSettings.for_network(network) if network else SubmissionSettings.from_env()
        self.settings = settings

        self.fee_strategy = FeeStrategy(
            network_client,
            fallback_price_wei=settings.fallback_gas_price_wei,
            logger=self.logger
        )
        self.estimator = ResourceEstimator(
            network_client,
            buffer_ratio=settings.buffer_ratio,
            fallback_limit=settings.fallback_gas_limit,
            logger=self.logger
        )
        self.executor = SubmissionExecutor(
            network_client,
            fee_strategy=self.fee_strategy,
            estimator=self.estimator,
            max_attempts=settings.max_attempts,
            attempt_timeout=settings.attempt_timeout,
            backoff_unit=settings.backoff_unit,
            logger=self.logger
        )
        self.registry = OperationRegistry(
            network_client,
            self.executor,
            timelock_address,
            logger=self.logger
        )

    @property
    def address(self) -> str:
        """Address of the submitting account"""
        return self.network_client.address

    @property
    def timelock_address(self) -> str:
        return self.registry.registry_address

    def submit_operation(self, call: Call) -> TxReceipt:
        """
        Submit an ordinary (not time-locked) call.

        Raises:
            FatalSubmissionError: If the network rejected the call
            SubmissionExhausted: If every attempt failed transiently
        """
        return self.executor.submit(call)

    def schedule_timelocked(self, operation: Operation, delay: Optional[int] = None) -> ScheduledOperation:
        """
        Schedule a time-locked operation.

        Args:
            operation: The operation to schedule
            delay: Delay in seconds; the registry's current minimum when omitted

        Returns:
            The operation id and the timestamp at which it becomes ready
        """
        if delay is None:
            delay = self.registry.min_delay()
        return self.registry.schedule(operation, delay)

    def query_timelock_status(self, operation_id: str) -> OperationStatus:
        return self.registry.status(operation_id)

    def execute_timelocked(self, operation_id: str, operation: Operation) -> TxReceipt:
        return self.registry.execute(operation_id, operation)

    def cancel_timelocked(self, operation_id: str) -> TxReceipt:
        return self.registry.cancel(operation_id)

    def transfer_to_timelock(self, contract: str) -> Optional[TxReceipt]:
        """
        Transfer ownership of ``contract`` from the submitting account to the timelock.

        Returns None if the timelock already owns it.
        """
        return transfer_ownership_to_timelock(
            self.network_client,
            self.executor,
            contract,
            self.timelock_address
        )

    def schedule_upgrade(
        self,
        proxy: str,
        new_implementation: str,
        delay: Optional[int] = None,
        salt: Optional[Union[str, bytes]] = None
    ) -> Tuple[Operation, ScheduledOperation]:
        """
        Check and schedule an upgrade of ``proxy`` to ``new_implementation``.

        Returns:
            The upgrade operation (keep it: execution needs the exact fields)
            and its schedule

        Raises:
            UpgradePreflightError: If the timelock does not own the proxy or
                the implementation has no code
        """
        preflight_upgrade(self.network_client, proxy, self.timelock_address, new_implementation)
        operation = build_upgrade_operation(proxy, new_implementation, salt=salt)
        scheduled = self.schedule_timelocked(operation, delay)
        self.logger.info(
            f"Upgrade of {proxy} to {new_implementation} scheduled as {scheduled.operation_id}, "
            f"ready at {scheduled.ready_at}"
        )
        return operation, scheduled

    def execute_upgrade(self, operation_id: str, operation: Operation, new_implementation: str) -> TxReceipt:
        """
        Execute a scheduled upgrade and check the proxy's implementation slot.

        A mismatch after a confirmed execution is logged, not raised.
        """
        receipt = self.execute_timelocked(operation_id, operation)
        if verify_upgrade(self.network_client, operation.target, new_implementation):
            self.logger.info(f"Upgrade of {operation.target} to {new_implementation} verified")
        return receipt

    def tx_url(self, tx_hash: str) -> Optional[str]:
        """Explorer URL for a transaction, when the network has an explorer."""
        explorer = self._network_config.get("explorer")
        if not explorer:
            return None
        if not tx_hash.startswith("0x"):
            tx_hash = "0x" + tx_hash
        return f"{explorer}/tx/{tx_hash}"

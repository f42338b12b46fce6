"""
Web3-backed NetworkClient implementation.

Talks JSON-RPC to an EVM node, signs with eth_account (or a custom signer),
and translates node failures into the NetworkClientError hierarchy. This is
the only module that inspects raw node errors.
"""
import logging
import threading
import time
import urllib.parse
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Protocol, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from ..abi import to_bytes32, to_hex
from ..exceptions import (
    CallRejected,
    CallReverted,
    ConfirmationTimeout,
    EstimationFailed,
    FeeMarketUnavailable,
    NetworkClientError,
    TransientNetworkError,
)
from ..models import Call, DynamicFee, FixedFee, TxReceipt
from .base import FeeMarket, NetworkClient, RegistryState, SubmissionHandle

logger = logging.getLogger(__name__)

# JSON-RPC error codes (EIP-1474 and common node extensions)
RPC_EXECUTION_REVERTED = 3
TRANSIENT_RPC_CODES = {-32005, -32603}

# Canonical txpool error strings emitted by geth-derived nodes (BSC included).
# Nodes expose these conditions only as message text.
TRANSIENT_TXPOOL_ERRORS = (
    "already known",
    "replacement transaction underpriced",
    "transaction underpriced",
    "nonce too low",
    "max fee per gas less than block base fee",
    "txpool is full",
    "future transaction tries to replace pending",
)


class Signer(Protocol):
    """Protocol for custom signers"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


class Web3NetworkClient(NetworkClient):
    """
    NetworkClient for EVM JSON-RPC nodes.

    Submissions from this client's credential are serialized under a lock
    (nonce read and broadcast), so independent operations may be submitted
    from several threads.
    """

    # Read-only subset of the OpenZeppelin TimelockController ABI
    TIMELOCK_ABI = [
        {
            "inputs": [{"internalType": "bytes32", "name": "id", "type": "bytes32"}],
            "name": "getTimestamp",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "getMinDelay",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    def __init__(
        self,
        rpc_url: str,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        chain_id: Optional[int] = None,
        confirmations: int = 1,
        poll_interval: float = 0.5,
        retry_count: int = 3,
        timeout: int = 30,
        w3: Optional[Web3] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the client

        Args:
            rpc_url: JSON-RPC endpoint URL
            priv_key: Private key of the submitting account (optional if signer provided)
            signer: Custom signer object (optional if priv_key provided)
            chain_id: Expected chain id; read from the node when omitted
            confirmations: Blocks required before a receipt counts as confirmed
            poll_interval: Receipt polling interval in seconds
            retry_count: Number of HTTP-level retries for RPC requests
            timeout: Timeout for each RPC request in seconds
            w3: Pre-built Web3 instance (skips provider setup)
            logger: Optional logger instance

        Raises:
            ValueError: If neither priv_key nor signer is provided
            ValueError: If rpc_url doesn't use https (unless it's localhost/127.0.0.1)
        """
        if not priv_key and not signer:
            raise ValueError("Either priv_key or signer must be provided")
        if confirmations < 1:
            raise ValueError("confirmations must be at least 1")

        # Validate URL for security
        parsed = urllib.parse.urlparse(rpc_url)
        host = parsed.netloc.split(':')[0]
        is_local = host in ('localhost', '127.0.0.1')
        if parsed.scheme != 'https' and not is_local:
            raise ValueError(f"rpc_url must use https:// for security (got: {parsed.scheme}://)")

        self.rpc_url = rpc_url
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        self.account: Optional[BaseAccount] = Account.from_key(priv_key) if priv_key else None
        self.signer = signer

        if w3 is None:
            # HTTP session with retries on server errors and dropped connections
            session = requests.Session()
            retries = Retry(
                total=retry_count,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["POST"],
                raise_on_status=False,
                connect=retry_count,
                read=retry_count,
                other=retry_count
            )
            session.mount("http://", HTTPAdapter(max_retries=retries))
            session.mount("https://", HTTPAdapter(max_retries=retries))
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}, session=session))
        self.w3 = w3

        self._chain_id = chain_id
        self._submit_lock = threading.Lock()

    @property
    def address(self) -> str:
        """
        Get the submitting account address

        Raises:
            ValueError: If no account or signer is available
        """
        if self.account:
            return self.account.address
        elif self.signer:
            return self.signer.address
        else:
            raise ValueError("No account or signer available")

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.w3.eth.chain_id
        return self._chain_id

    def _timelock(self, registry: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(registry), abi=self.TIMELOCK_ABI)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_fee_market(self) -> FeeMarket:
        try:
            legacy_price = self.w3.eth.gas_price
            block = self.w3.eth.get_block("latest")
        except (Web3Exception, requests.RequestException) as e:
            raise FeeMarketUnavailable(f"Fee market query failed: {e}") from e

        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return FeeMarket(legacy_price=legacy_price)

        try:
            priority_fee = self.w3.eth.max_priority_fee
        except (Web3Exception, requests.RequestException) as e:
            # Node has no eth_maxPriorityFeePerGas; price as legacy
            self.logger.debug(f"max_priority_fee unavailable, using legacy pricing: {e}")
            return FeeMarket(legacy_price=legacy_price)

        return FeeMarket(
            max_fee=base_fee * 2 + priority_fee,
            max_priority_fee=priority_fee,
            legacy_price=legacy_price
        )

    def estimate_resources(self, call: Call) -> int:
        tx = {"from": self.address, **call.to_tx_params()}
        try:
            return self.w3.eth.estimate_gas(tx)
        except ContractLogicError as e:
            raise EstimationFailed(f"Call would revert: {_revert_message(e)}", reverted=True) from e
        except (Web3Exception, requests.RequestException) as e:
            raise EstimationFailed(f"Estimation failed: {e}") from e

    def read_registry_state(self, registry: str, operation_id: str) -> RegistryState:
        with _node_errors():
            timestamp = self._timelock(registry).functions.getTimestamp(
                to_bytes32(operation_id, "operation_id")
            ).call()
        return RegistryState.from_timestamp(timestamp)

    def read_min_delay(self, registry: str) -> int:
        with _node_errors():
            return self._timelock(registry).functions.getMinDelay().call()

    def current_time(self) -> int:
        with _node_errors():
            return self.w3.eth.get_block("latest")["timestamp"]

    def get_code(self, address: str) -> bytes:
        with _node_errors():
            return bytes(self.w3.eth.get_code(Web3.to_checksum_address(address)))

    def get_storage_at(self, address: str, slot: int) -> bytes:
        with _node_errors():
            return bytes(self.w3.eth.get_storage_at(Web3.to_checksum_address(address), slot))

    def call(self, call: Call) -> bytes:
        with _node_errors():
            return bytes(self.w3.eth.call({"from": self.address, **call.to_tx_params()}))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def submit_call(
        self,
        call: Call,
        fee_quote: Union[DynamicFee, FixedFee],
        gas_limit: int,
        replacing: Optional[SubmissionHandle] = None
    ) -> SubmissionHandle:
        with self._submit_lock:
            try:
                if replacing is not None and self._is_mined(replacing):
                    self.logger.info(f"Transaction {replacing.tx_hash} was mined before its replacement was sent")
                    return replacing

                if replacing is not None and replacing.nonce is not None:
                    nonce = replacing.nonce
                else:
                    nonce = self.w3.eth.get_transaction_count(self.address, "pending")

                tx = {
                    "from": self.address,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "chainId": self.chain_id,
                    **call.to_tx_params(),
                    **fee_quote.to_tx_params(),
                }
                signed = self._sign(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except NetworkClientError:
                raise
            except ContractLogicError as e:
                raise CallReverted(_revert_message(e)) from e
            except (Web3Exception, requests.RequestException) as e:
                raise _classify_error(e) from e

        tx_hash_hex = to_hex(tx_hash)
        self.logger.info(f"Transaction sent: {tx_hash_hex} (nonce {nonce})")
        return SubmissionHandle(tx_hash=tx_hash_hex, nonce=nonce)

    def await_confirmation(self, handle: SubmissionHandle, timeout: float) -> TxReceipt:
        deadline = time.monotonic() + timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                handle.tx_hash,
                timeout=timeout,
                poll_latency=self.poll_interval
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {handle.tx_hash} not included within {timeout}s",
                tx_hash=handle.tx_hash
            ) from e
        except (Web3Exception, requests.RequestException) as e:
            raise _classify_error(e) from e

        if receipt["status"] != 1:
            reason = self._replay_revert_reason(handle.tx_hash, receipt["blockNumber"])
            raise CallReverted(reason, tx_hash=handle.tx_hash)

        # Wait for additional blocks when more than one confirmation is required
        target_block = receipt["blockNumber"] + self.confirmations - 1
        while self.w3.eth.block_number < target_block:
            if time.monotonic() >= deadline:
                raise ConfirmationTimeout(
                    f"Transaction {handle.tx_hash} did not reach {self.confirmations} confirmations within {timeout}s",
                    tx_hash=handle.tx_hash
                )
            time.sleep(self.poll_interval)

        self.logger.info(f"Transaction {handle.tx_hash} confirmed in block {receipt['blockNumber']}")
        return TxReceipt.from_web3(receipt)

    def _sign(self, tx: Dict[str, Any]) -> Any:
        try:
            if self.account:
                return self.account.sign_transaction(tx)
            return self.signer.sign_transaction(tx)
        except Exception as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise CallRejected(f"Failed to sign transaction: {e}") from e

    def _is_mined(self, handle: SubmissionHandle) -> bool:
        try:
            self.w3.eth.get_transaction_receipt(handle.tx_hash)
        except TransactionNotFound:
            return False
        return True

    def _replay_revert_reason(self, tx_hash: str, block_number: int) -> str:
        """Re-run a failed transaction with eth_call to recover its revert reason."""
        try:
            tx = self.w3.eth.get_transaction(tx_hash)
            self.w3.eth.call(
                {"from": tx["from"], "to": tx["to"], "data": tx["input"], "value": tx["value"]},
                block_identifier=block_number
            )
        except ContractLogicError as e:
            return _revert_message(e)
        except (Web3Exception, requests.RequestException) as e:
            self.logger.debug(f"Could not replay {tx_hash} for revert reason: {e}")
        return "transaction reverted (status 0)"


@contextmanager
def _node_errors() -> Iterator[None]:
    """Translate web3 and transport failures of a read into NetworkClientError."""
    try:
        yield
    except ContractLogicError as e:
        raise CallReverted(_revert_message(e)) from e
    except (Web3Exception, requests.RequestException) as e:
        raise _classify_error(e) from e


def _revert_message(exc: ContractLogicError) -> str:
    return getattr(exc, "message", None) or str(exc)


def _rpc_error(exc: Exception) -> Dict[str, Any]:
    """Extract the JSON-RPC error object from a web3 exception, if any."""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        return response["error"]
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {}


def _classify_error(exc: Exception) -> NetworkClientError:
    """
    Map a node/transport failure to the NetworkClientError hierarchy.

    Anything not recognized as transient (insufficient funds, intrinsic gas
    too low, unknown RPC errors) is CallRejected, so it is never retried.
    """
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return TransientNetworkError(f"Node unreachable: {exc}")

    error = _rpc_error(exc)
    code = error.get("code")
    message = str(error.get("message") or exc)
    lowered = message.lower()

    if code == RPC_EXECUTION_REVERTED:
        return CallReverted(message)
    if code in TRANSIENT_RPC_CODES:
        return TransientNetworkError(message)
    if any(marker in lowered for marker in TRANSIENT_TXPOOL_ERRORS):
        return TransientNetworkError(message)
    return CallRejected(message)

"""
In-memory NetworkClient implementation.

SimulatedNetwork reproduces the parts of an EVM chain the SDK depends on:
a fee market, gas estimation, nonce-ordered submissions, receipts, and the
OpenZeppelin TimelockController state machine (schedule, execute, cancel,
updateDelay) together with UUPS proxies owned through Ownable. Time only
moves when ``advance`` is called, which makes time-lock flows testable
without waiting.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Union

from eth_abi import encode
from web3 import Web3

from ..abi import (
    CANCEL_SIGNATURE,
    EIP1967_IMPLEMENTATION_SLOT,
    EXECUTE_SIGNATURE,
    EXECUTE_TYPES,
    OWNER_SIGNATURE,
    SCHEDULE_SIGNATURE,
    SCHEDULE_TYPES,
    TRANSFER_OWNERSHIP_SIGNATURE,
    UPDATE_DELAY_SIGNATURE,
    UPGRADE_SIGNATURE,
    UPGRADE_TYPES,
    ZERO_BYTES32,
    decode_call,
    hash_operation,
    selector,
    to_bytes32,
    to_hex,
)
from ..exceptions import CallReverted, EstimationFailed, NetworkClientError, TransientNetworkError
from ..models import Call, DynamicFee, FixedFee, TxReceipt
from .base import FeeMarket, NetworkClient, RegistryState, SubmissionHandle

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "0x0D745Ff007d343D79164E30Ad00340d5770bFE27"
DONE_TIMESTAMP = 1
REPLACEMENT_BUMP_PCT = 110
STAGES = ("fee_market", "estimate", "submit", "confirm")

# Placeholder runtime code for simulated contracts
_CONTRACT_CODE = bytes.fromhex("6080604052")

Effect = Callable[[], None]


@dataclass
class SimulatedTimelock:
    min_delay: int
    timestamps: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulatedProxy:
    owner: str
    implementation: str


@dataclass
class _PendingTx:
    call: Call
    fee_quote: Union[DynamicFee, FixedFee]
    gas_limit: int
    nonce: int


class SimulatedNetwork(NetworkClient):
    """
    A deterministic in-memory chain for tests and dry runs.

    Failures can be scripted per stage with ``fail_next``; each queued
    exception is raised once, in order, by the matching call.
    """

    def __init__(
        self,
        now: Optional[int] = None,
        fee_market: Optional[FeeMarket] = None,
        gas_estimate: int = 50000,
        sender: str = DEFAULT_SENDER,
        logger: Optional[logging.Logger] = None
    ):
        self.now = int(time.time()) if now is None else now
        self.fee_market = fee_market or FeeMarket(
            max_fee=100_000_000_000,
            max_priority_fee=1_000_000_000,
            legacy_price=5_000_000_000
        )
        self.gas_estimate = gas_estimate
        self.block_number = 0
        self.logger = logger or logging.getLogger(__name__)

        self.timelocks: Dict[str, SimulatedTimelock] = {}
        self.proxies: Dict[str, SimulatedProxy] = {}
        self.code: Dict[str, bytes] = {}
        self.storage: Dict[tuple, bytes] = {}
        self.reverting: Dict[str, str] = {}
        self.calls: List[Call] = []

        self._sender = Web3.to_checksum_address(sender)
        self._nonce = 0
        self._address_counter = 0
        self._pending: Dict[str, _PendingTx] = {}
        self._receipts: Dict[str, TxReceipt] = {}
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Scenario setup
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._sender

    def new_address(self) -> str:
        with self._lock:
            self._address_counter += 1
            digest = Web3.keccak(text=f"simulated-address-{self._address_counter}")
            return Web3.to_checksum_address(to_hex(digest[-20:]))

    def deploy_timelock(self, min_delay: int, address: Optional[str] = None) -> str:
        address = Web3.to_checksum_address(address) if address else self.new_address()
        with self._lock:
            self.timelocks[address] = SimulatedTimelock(min_delay=min_delay)
            self.code[address] = _CONTRACT_CODE
        return address

    def deploy_contract(self, address: Optional[str] = None) -> str:
        address = Web3.to_checksum_address(address) if address else self.new_address()
        with self._lock:
            self.code[address] = _CONTRACT_CODE
        return address

    def deploy_proxy(self, owner: str, implementation: str, address: Optional[str] = None) -> str:
        address = Web3.to_checksum_address(address) if address else self.new_address()
        with self._lock:
            self.code[address] = _CONTRACT_CODE
            self.proxies[address] = SimulatedProxy(
                owner=Web3.to_checksum_address(owner),
                implementation=Web3.to_checksum_address(implementation)
            )
            self._write_implementation_slot(address, implementation)
        return address

    def reject_calls_to(self, address: str, reason: str) -> None:
        """Make every call to ``address`` revert with ``reason``."""
        self.reverting[Web3.to_checksum_address(address)] = reason

    def fail_next(self, stage: str, *errors: Exception) -> None:
        """Queue exceptions to raise from the next calls of ``stage``."""
        if stage not in STAGES:
            raise ValueError(f"Unknown stage {stage!r}; expected one of {STAGES}")
        with self._lock:
            self._failures[stage].extend(errors)

    def advance(self, seconds: int) -> int:
        """Move the chain clock forward and return the new time."""
        with self._lock:
            self.now += seconds
            return self.now

    def _maybe_fail(self, stage: str) -> None:
        with self._lock:
            if self._failures[stage]:
                raise self._failures[stage].popleft()

    # ------------------------------------------------------------------
    # NetworkClient reads
    # ------------------------------------------------------------------

    def query_fee_market(self) -> FeeMarket:
        self._maybe_fail("fee_market")
        return self.fee_market

    def estimate_resources(self, call: Call) -> int:
        self._maybe_fail("estimate")
        try:
            self._plan(call, self._sender)
        except CallReverted as e:
            raise EstimationFailed(f"Call would revert: {e.reason}", reverted=True) from e
        return self.gas_estimate

    def read_registry_state(self, registry: str, operation_id: str) -> RegistryState:
        timelock = self._timelock(registry)
        with self._lock:
            return RegistryState.from_timestamp(timelock.timestamps.get(operation_id.lower(), 0))

    def read_min_delay(self, registry: str) -> int:
        return self._timelock(registry).min_delay

    def current_time(self) -> int:
        return self.now

    def get_code(self, address: str) -> bytes:
        return self.code.get(Web3.to_checksum_address(address), b"")

    def get_storage_at(self, address: str, slot: int) -> bytes:
        return self.storage.get((Web3.to_checksum_address(address), slot), ZERO_BYTES32)

    def call(self, call: Call) -> bytes:
        proxy = self.proxies.get(call.to)
        if proxy is not None and call.data == selector(OWNER_SIGNATURE):
            return encode(["address"], [proxy.owner])
        raise CallReverted(f"call to {call.to} is not supported by the simulated network")

    def _timelock(self, registry: str) -> SimulatedTimelock:
        timelock = self.timelocks.get(Web3.to_checksum_address(registry))
        if timelock is None:
            raise NetworkClientError(f"No timelock deployed at {registry}")
        return timelock

    # ------------------------------------------------------------------
    # NetworkClient writes
    # ------------------------------------------------------------------

    def submit_call(
        self,
        call: Call,
        fee_quote: Union[DynamicFee, FixedFee],
        gas_limit: int,
        replacing: Optional[SubmissionHandle] = None
    ) -> SubmissionHandle:
        self._maybe_fail("submit")
        with self._lock:
            if replacing is not None:
                if replacing.tx_hash in self._receipts:
                    return replacing
                stuck = self._pending.get(replacing.tx_hash)
                if stuck is not None and not _outbids(fee_quote, stuck.fee_quote):
                    raise TransientNetworkError("replacement transaction underpriced")
                self._pending.pop(replacing.tx_hash, None)
                nonce = replacing.nonce
            else:
                nonce = self._nonce
                self._nonce += 1

            tx_hash = to_hex(Web3.keccak(text=f"simulated-tx-{nonce}-{len(self.calls)}-{fee_quote}"))
            self._pending[tx_hash] = _PendingTx(call, fee_quote, gas_limit, nonce)
            self.calls.append(call)

        self.logger.debug(f"Simulated transaction {tx_hash} submitted (nonce {nonce})")
        return SubmissionHandle(tx_hash=tx_hash, nonce=nonce)

    def await_confirmation(self, handle: SubmissionHandle, timeout: float) -> TxReceipt:
        with self._lock:
            if handle.tx_hash in self._receipts:
                return self._receipts[handle.tx_hash]

        # A scripted timeout leaves the transaction pending, like a stuck tx
        self._maybe_fail("confirm")

        with self._lock:
            pending = self._pending.pop(handle.tx_hash, None)
            if pending is None:
                raise NetworkClientError(f"Unknown transaction {handle.tx_hash}")

            effects = self._plan(pending.call, self._sender)
            for effect in effects:
                effect()

            self.block_number += 1
            receipt = TxReceipt(
                transactionHash=handle.tx_hash,
                blockNumber=self.block_number,
                blockHash=to_hex(Web3.keccak(text=f"simulated-block-{self.block_number}")),
                status=1,
                gasUsed=min(self.gas_estimate, pending.gas_limit),
                effectiveGasPrice=_effective_price(pending.fee_quote),
                **{"from": self._sender, "to": pending.call.to},
                logs=[]
            )
            self._receipts[handle.tx_hash] = receipt
            return receipt

    # ------------------------------------------------------------------
    # Execution semantics
    # ------------------------------------------------------------------

    def _plan(self, call: Call, sender: str) -> List[Effect]:
        """
        Validate ``call`` against current state and return the state changes
        it would make. Raises CallReverted instead of returning when the
        remote logic would reject it.
        """
        with self._lock:
            if call.to in self.reverting:
                raise CallReverted(self.reverting[call.to])
            if call.to in self.timelocks:
                return self._plan_timelock(call, sender)
            if call.to in self.proxies:
                return self._plan_proxy(call, sender)
            return []

    def _plan_timelock(self, call: Call, sender: str) -> List[Effect]:
        timelock = self.timelocks[call.to]

        args = decode_call(call.data, SCHEDULE_SIGNATURE, SCHEDULE_TYPES)
        if args is not None:
            target, value, payload, predecessor, salt, delay = args
            op_id = hash_operation(target, value, payload, predecessor, salt)
            if timelock.timestamps.get(op_id, 0) != 0:
                raise CallReverted(f"TimelockUnexpectedOperationState({op_id})")
            if delay < timelock.min_delay:
                raise CallReverted(f"TimelockInsufficientDelay({delay}, {timelock.min_delay})")
            ready_at = self.now + delay
            return [lambda: timelock.timestamps.__setitem__(op_id, ready_at)]

        args = decode_call(call.data, EXECUTE_SIGNATURE, EXECUTE_TYPES)
        if args is not None:
            target, value, payload, predecessor, salt = args
            op_id = hash_operation(target, value, payload, predecessor, salt)
            timestamp = timelock.timestamps.get(op_id, 0)
            if timestamp <= DONE_TIMESTAMP or timestamp > self.now:
                raise CallReverted(f"TimelockUnexpectedOperationState({op_id})")
            if predecessor != ZERO_BYTES32:
                pred_id = to_hex(predecessor)
                if timelock.timestamps.get(pred_id, 0) != DONE_TIMESTAMP:
                    raise CallReverted(f"TimelockUnexecutedPredecessor({pred_id})")
            inner = self._plan(Call(to=target, data=payload, value=value), call.to)
            return inner + [lambda: timelock.timestamps.__setitem__(op_id, DONE_TIMESTAMP)]

        args = decode_call(call.data, CANCEL_SIGNATURE, ["bytes32"])
        if args is not None:
            op_id = to_hex(args[0])
            if timelock.timestamps.get(op_id, 0) <= DONE_TIMESTAMP:
                raise CallReverted(f"TimelockUnexpectedOperationState({op_id})")
            return [lambda: timelock.timestamps.pop(op_id, None)]

        args = decode_call(call.data, UPDATE_DELAY_SIGNATURE, ["uint256"])
        if args is not None:
            if sender != call.to:
                raise CallReverted(f"TimelockUnauthorizedCaller({sender})")
            new_delay = args[0]
            return [lambda: setattr(timelock, "min_delay", new_delay)]

        raise CallReverted("function selector was not recognized")

    def _plan_proxy(self, call: Call, sender: str) -> List[Effect]:
        proxy = self.proxies[call.to]
        args = decode_call(call.data, TRANSFER_OWNERSHIP_SIGNATURE, ["address"])
        if args is not None:
            if Web3.to_checksum_address(sender) != proxy.owner:
                raise CallReverted(f"OwnableUnauthorizedAccount({sender})")
            new_owner = Web3.to_checksum_address(args[0])
            if int(new_owner, 16) == 0:
                raise CallReverted("OwnableInvalidOwner(0x0000000000000000000000000000000000000000)")
            return [lambda: setattr(proxy, "owner", new_owner)]

        args = decode_call(call.data, UPGRADE_SIGNATURE, UPGRADE_TYPES)
        if args is None:
            return []
        if Web3.to_checksum_address(sender) != proxy.owner:
            raise CallReverted(f"OwnableUnauthorizedAccount({sender})")
        new_implementation = Web3.to_checksum_address(args[0])
        if not self.code.get(new_implementation):
            raise CallReverted(f"ERC1967InvalidImplementation({new_implementation})")

        def _upgrade():
            proxy.implementation = new_implementation
            self._write_implementation_slot(call.to, new_implementation)
        return [_upgrade]

    def _write_implementation_slot(self, proxy: str, implementation: str) -> None:
        word = to_bytes32(b"\x00" * 12 + bytes.fromhex(implementation[2:]))
        self.storage[(Web3.to_checksum_address(proxy), EIP1967_IMPLEMENTATION_SLOT)] = word


def _effective_price(fee_quote: Union[DynamicFee, FixedFee]) -> int:
    if isinstance(fee_quote, DynamicFee):
        return fee_quote.max_fee_per_unit
    return fee_quote.price_per_unit


def _fee_components(fee_quote: Union[DynamicFee, FixedFee]):
    if isinstance(fee_quote, DynamicFee):
        return fee_quote.max_fee_per_unit, fee_quote.max_priority_fee_per_unit
    return fee_quote.price_per_unit, fee_quote.price_per_unit


def _outbids(new: Union[DynamicFee, FixedFee], old: Union[DynamicFee, FixedFee]) -> bool:
    """True if every fee component of ``new`` clears the txpool price bump over ``old``."""
    return all(
        n * 100 >= o * REPLACEMENT_BUMP_PCT
        for n, o in zip(_fee_components(new), _fee_components(old))
    )

"""
Resilient call submission: fresh fees and estimates per attempt, bounded
retries with linear backoff, and early abort on business rejections.
"""
import logging
import time
from typing import List, Optional, Union

from .estimator import ResourceEstimator
from .exceptions import (
    FatalSubmissionError,
    NetworkClientError,
    SubmissionExhausted,
    TransientNetworkError,
)
from .fees import FeeStrategy, replacement_quote
from .models import (
    Call,
    Confirmed,
    DynamicFee,
    FatalFailure,
    FixedFee,
    ResourceEstimate,
    SubmissionAttempt,
    TransientFailure,
    TxReceipt,
)
from .network.base import NetworkClient, SubmissionHandle

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_ATTEMPT_TIMEOUT = 30.0
DEFAULT_BACKOFF_UNIT = 2.0

logger = logging.getLogger(__name__)


class SubmissionExecutor:
    """
    Submits prepared calls and waits for their confirmation.

    Each attempt re-quotes fees and re-estimates resources. Outcomes are
    classified by exception type only: TransientNetworkError (including
    ConfirmationTimeout) is retried, every other NetworkClientError aborts
    immediately. The executor has no knowledge of time-lock semantics.
    """

    def __init__(
        self,
        client: NetworkClient,
        fee_strategy: Optional[FeeStrategy] = None,
        estimator: Optional[ResourceEstimator] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        backoff_unit: float = DEFAULT_BACKOFF_UNIT,
        logger: Optional[logging.Logger] = None
    ):
        _validate_budget(max_attempts, attempt_timeout)
        self.client = client
        self.fee_strategy = fee_strategy or FeeStrategy(client)
        self.estimator = estimator or ResourceEstimator(client)
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.backoff_unit = backoff_unit
        self.logger = logger or logging.getLogger(__name__)

    def submit(
        self,
        call: Call,
        max_attempts: Optional[int] = None,
        attempt_timeout: Optional[float] = None
    ) -> TxReceipt:
        """
        Submit ``call`` and return its receipt once confirmed.

        Args:
            call: The prepared call
            max_attempts: Override for the configured attempt budget
            attempt_timeout: Override for the per-attempt confirmation timeout

        Returns:
            Receipt of the confirmed transaction

        Raises:
            FatalSubmissionError: If the network rejected the call for a business reason
            SubmissionExhausted: If every attempt failed transiently
        """
        if max_attempts is None:
            max_attempts = self.max_attempts
        timeout = self.attempt_timeout if attempt_timeout is None else attempt_timeout
        _validate_budget(max_attempts, timeout)

        attempts: List[SubmissionAttempt] = []
        stuck: Optional[SubmissionHandle] = None
        stuck_fee: Optional[Union[DynamicFee, FixedFee]] = None

        for attempt_number in range(1, max_attempts + 1):
            fee_quote = self.fee_strategy.quote()
            if stuck_fee is not None:
                # Same nonce as the stuck transaction: outbid it or the node drops this one
                fee_quote = replacement_quote(fee_quote, stuck_fee)
            estimate = self.estimator.estimate(call)

            outcome, handle = self._attempt(call, fee_quote, estimate, timeout, stuck)
            attempts.append(SubmissionAttempt(
                attempt_number=attempt_number,
                fee_quote=fee_quote,
                resource_estimate=estimate,
                outcome=outcome,
                tx_hash=handle.tx_hash if handle else None
            ))

            if isinstance(outcome, Confirmed):
                return outcome.receipt

            if isinstance(outcome, FatalFailure):
                self.logger.error(
                    f"Attempt {attempt_number}/{max_attempts} for call to {call.to} rejected: {outcome.reason}"
                )
                raise FatalSubmissionError(outcome.reason, attempts)

            # Transient: a handle that was sent but not confirmed gets replaced next time
            if handle is not None or stuck is not None:
                stuck = handle or stuck
                stuck_fee = fee_quote
            self.logger.warning(
                f"Attempt {attempt_number}/{max_attempts} for call to {call.to} failed: {outcome.reason}"
            )
            if attempt_number < max_attempts:
                wait_time = attempt_number * self.backoff_unit
                self.logger.info(f"Retrying after {wait_time} seconds...")
                time.sleep(wait_time)

        raise SubmissionExhausted(attempts)

    def _attempt(
        self,
        call: Call,
        fee_quote: Union[DynamicFee, FixedFee],
        estimate: ResourceEstimate,
        timeout: float,
        replacing: Optional[SubmissionHandle]
    ):
        """Run one attempt and classify it. Returns (outcome, handle or None)."""
        handle = None
        try:
            handle = self.client.submit_call(call, fee_quote, estimate.buffered_limit, replacing=replacing)
            receipt = self.client.await_confirmation(handle, timeout)
        except TransientNetworkError as e:
            return TransientFailure(reason=str(e)), handle
        except NetworkClientError as e:
            return FatalFailure(reason=str(e)), handle
        return Confirmed(receipt=receipt), handle


def _validate_budget(max_attempts: int, attempt_timeout: float) -> None:
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if attempt_timeout <= 0:
        raise ValueError("attempt_timeout must be positive")

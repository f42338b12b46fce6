"""
Resource (gas) estimation with a safety buffer.
"""
import logging
from typing import Optional

from ._rate_limited_log import rate_limited_log
from .exceptions import NetworkClientError
from .models import Call, ResourceEstimate
from .network.base import NetworkClient

DEFAULT_BUFFER_RATIO = 0.20
DEFAULT_FALLBACK_GAS_LIMIT = 100000

logger = logging.getLogger(__name__)


class ResourceEstimator:
    """
    Estimates the resource ceiling for a prepared call.

    The buffer is applied multiplicatively to the raw network estimate. When
    the network cannot estimate (the call would revert, or the node is
    unreachable) the fallback limit is returned flagged as degraded, so the
    caller can still attempt the submission.
    """

    def __init__(
        self,
        client: NetworkClient,
        buffer_ratio: float = DEFAULT_BUFFER_RATIO,
        fallback_limit: int = DEFAULT_FALLBACK_GAS_LIMIT,
        logger: Optional[logging.Logger] = None
    ):
        if buffer_ratio < 0:
            raise ValueError("buffer_ratio must not be negative")
        if fallback_limit <= 0:
            raise ValueError("fallback_limit must be positive")
        self.client = client
        self.buffer_ratio = buffer_ratio
        self.fallback_limit = fallback_limit
        self.logger = logger or logging.getLogger(__name__)

    def estimate(self, call: Call) -> ResourceEstimate:
        """
        Estimate resources for ``call``, the exact call that will be submitted.

        Returns:
            ResourceEstimate with the buffered limit, or the degraded fallback
        """
        try:
            base = self.client.estimate_resources(call)
        except NetworkClientError as e:
            return self._fallback(call, str(e))

        if base <= 0:
            return self._fallback(call, f"network returned non-positive estimate {base}")

        estimate = ResourceEstimate.from_base(base, self.buffer_ratio)
        self.logger.debug(
            f"Estimated gas for call to {call.to}: {estimate.base_estimate} "
            f"(with buffer: {estimate.buffered_limit})"
        )
        return estimate

    def _fallback(self, call: Call, reason: str) -> ResourceEstimate:
        rate_limited_log(
            f"Gas estimation failed for call to {call.to}, using default: {self.fallback_limit}. Error: {reason}",
            key=f"estimate-fallback:{call.to}",
            logger_instance=self.logger
        )
        return ResourceEstimate.fallback(self.fallback_limit)

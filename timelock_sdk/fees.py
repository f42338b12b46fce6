"""
Fee selection for submitted calls.
"""
import logging
from typing import Optional, Union

from ._rate_limited_log import rate_limited_log
from .exceptions import NetworkClientError
from .models import DynamicFee, FixedFee
from .network.base import NetworkClient

# Escalation over the reported market, in percent. Outruns fee drift between
# quote time and inclusion time.
PRIORITY_FEE_ESCALATION_PCT = 110
MAX_FEE_ESCALATION_PCT = 120
LEGACY_PRICE_ESCALATION_PCT = 110

# Minimum increase of every fee component for a same-nonce replacement
# (geth txpool price bump)
REPLACEMENT_BUMP_PCT = 110

DEFAULT_FALLBACK_GAS_PRICE_WEI = 5_000_000_000  # 5 gwei

logger = logging.getLogger(__name__)


def _escalate(amount: int, percent: int) -> int:
    return amount * percent // 100


class FeeStrategy:
    """
    Decides fee parameters from the current fee market.

    Every call to ``quote`` reads the market again; quotes are never cached.
    """

    def __init__(
        self,
        client: NetworkClient,
        fallback_price_wei: int = DEFAULT_FALLBACK_GAS_PRICE_WEI,
        logger: Optional[logging.Logger] = None
    ):
        if fallback_price_wei <= 0:
            raise ValueError("fallback_price_wei must be positive")
        self.client = client
        self.fallback_price_wei = fallback_price_wei
        self.logger = logger or logging.getLogger(__name__)

    def quote(self) -> Union[DynamicFee, FixedFee]:
        """
        Produce a fee quote.

        Returns:
            DynamicFee when the network reports both max fee and priority fee,
            otherwise FixedFee. A FixedFee with ``degraded=True`` is returned
            when the market cannot be read.
        """
        try:
            market = self.client.query_fee_market()
        except NetworkClientError as e:
            return self._fallback(str(e))

        if market.supports_dynamic_fees:
            max_fee = _escalate(market.max_fee, MAX_FEE_ESCALATION_PCT)
            priority_fee = _escalate(market.max_priority_fee, PRIORITY_FEE_ESCALATION_PCT)
            quote = DynamicFee(
                max_fee_per_unit=max_fee,
                max_priority_fee_per_unit=min(priority_fee, max_fee)
            )
            self.logger.debug(
                f"Dynamic fee quote: max={quote.max_fee_per_unit} priority={quote.max_priority_fee_per_unit}"
            )
            return quote

        if not market.legacy_price:
            return self._fallback("network reported no usable fee data")

        quote = FixedFee(price_per_unit=_escalate(market.legacy_price, LEGACY_PRICE_ESCALATION_PCT))
        self.logger.debug(f"Fixed fee quote: price={quote.price_per_unit}")
        return quote

    def _fallback(self, reason: str) -> FixedFee:
        rate_limited_log(
            f"Fee market unavailable, using fallback gas price {self.fallback_price_wei} wei: {reason}",
            key="fee-fallback",
            logger_instance=self.logger
        )
        return FixedFee(price_per_unit=self.fallback_price_wei, degraded=True)


def _outbid(amount: int) -> int:
    return -(-amount * REPLACEMENT_BUMP_PCT // 100) + 1


def replacement_quote(
    fresh: Union[DynamicFee, FixedFee],
    previous: Union[DynamicFee, FixedFee]
) -> Union[DynamicFee, FixedFee]:
    """
    Fee quote for a transaction that replaces one sent with ``previous``.

    Nodes accept a replacement only if every fee component exceeds the
    pending transaction's by REPLACEMENT_BUMP_PCT, so each component is the
    larger of the fresh market quote and the bumped previous value. The
    replacement keeps the previous transaction's fee kind.
    """
    if isinstance(fresh, DynamicFee):
        fresh_max, fresh_priority = fresh.max_fee_per_unit, fresh.max_priority_fee_per_unit
    else:
        fresh_max = fresh_priority = fresh.price_per_unit

    if isinstance(previous, DynamicFee):
        max_fee = max(fresh_max, _outbid(previous.max_fee_per_unit))
        priority_fee = max(fresh_priority, _outbid(previous.max_priority_fee_per_unit))
        return DynamicFee(
            max_fee_per_unit=max_fee,
            max_priority_fee_per_unit=min(priority_fee, max_fee),
            degraded=fresh.degraded
        )
    return FixedFee(
        price_per_unit=max(fresh_max, _outbid(previous.price_per_unit)),
        degraded=fresh.degraded
    )

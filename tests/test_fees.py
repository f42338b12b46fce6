"""
Tests for fee selection.
"""
import logging
from unittest.mock import MagicMock

import pytest

from timelock_sdk.exceptions import FeeMarketUnavailable
from timelock_sdk.fees import DEFAULT_FALLBACK_GAS_PRICE_WEI, FeeStrategy, replacement_quote
from timelock_sdk.models import DynamicFee, FixedFee
from timelock_sdk.network.base import FeeMarket, NetworkClient


@pytest.fixture
def client():
    return MagicMock(spec=NetworkClient)


def test_dynamic_quote_escalates_both_components(client):
    """Max fee is raised by 20% and priority fee by 10%."""
    client.query_fee_market.return_value = FeeMarket(max_fee=100, max_priority_fee=10)

    quote = FeeStrategy(client).quote()

    assert isinstance(quote, DynamicFee)
    assert quote.max_fee_per_unit == 120
    assert quote.max_priority_fee_per_unit == 11
    assert quote.degraded is False


def test_dynamic_quote_uses_integer_arithmetic(client):
    client.query_fee_market.return_value = FeeMarket(
        max_fee=3_000_000_001,
        max_priority_fee=1_000_000_001
    )

    quote = FeeStrategy(client).quote()

    assert quote.max_fee_per_unit == 3_600_000_001
    assert quote.max_priority_fee_per_unit == 1_100_000_001


def test_priority_fee_is_clamped_to_max_fee(client):
    """A priority fee above the max fee is never quoted."""
    client.query_fee_market.return_value = FeeMarket(max_fee=10, max_priority_fee=20)

    quote = FeeStrategy(client).quote()

    assert quote.max_fee_per_unit == 12
    assert quote.max_priority_fee_per_unit == 12


def test_legacy_quote_when_dynamic_fields_missing(client):
    client.query_fee_market.return_value = FeeMarket(legacy_price=5_000_000_000)

    quote = FeeStrategy(client).quote()

    assert isinstance(quote, FixedFee)
    assert quote.price_per_unit == 5_500_000_000
    assert quote.degraded is False


def test_partial_dynamic_data_falls_back_to_legacy(client):
    client.query_fee_market.return_value = FeeMarket(max_fee=100, legacy_price=50)

    quote = FeeStrategy(client).quote()

    assert isinstance(quote, FixedFee)
    assert quote.price_per_unit == 55


def test_fallback_when_market_unavailable(client, caplog):
    """Query failure yields the configured fallback price, flagged degraded."""
    client.query_fee_market.side_effect = FeeMarketUnavailable("connection refused")

    with caplog.at_level(logging.WARNING):
        quote = FeeStrategy(client).quote()

    assert isinstance(quote, FixedFee)
    assert quote.price_per_unit == DEFAULT_FALLBACK_GAS_PRICE_WEI
    assert quote.degraded is True
    assert "connection refused" in caplog.text


def test_fallback_when_market_is_empty(client):
    client.query_fee_market.return_value = FeeMarket()

    quote = FeeStrategy(client, fallback_price_wei=7).quote()

    assert quote == FixedFee(price_per_unit=7, degraded=True)


def test_fallback_warning_is_rate_limited(client, caplog):
    client.query_fee_market.side_effect = FeeMarketUnavailable("down")
    strategy = FeeStrategy(client)

    with caplog.at_level(logging.WARNING):
        strategy.quote()
        strategy.quote()
        strategy.quote()

    warnings = [r for r in caplog.records if "Fee market unavailable" in r.getMessage()]
    assert len(warnings) == 1


def test_every_quote_reads_the_market(client):
    """Quotes are never cached between calls."""
    client.query_fee_market.side_effect = [
        FeeMarket(max_fee=100, max_priority_fee=10),
        FeeMarket(max_fee=200, max_priority_fee=20),
    ]
    strategy = FeeStrategy(client)

    first = strategy.quote()
    second = strategy.quote()

    assert client.query_fee_market.call_count == 2
    assert first.max_fee_per_unit == 120
    assert second.max_fee_per_unit == 240


def test_invalid_fallback_price():
    with pytest.raises(ValueError):
        FeeStrategy(MagicMock(spec=NetworkClient), fallback_price_wei=0)


class TestReplacementQuote:
    """A same-nonce replacement must outbid the transaction it replaces."""

    def test_unchanged_market_is_bumped(self):
        previous = DynamicFee(max_fee_per_unit=120, max_priority_fee_per_unit=11)

        quote = replacement_quote(previous, previous)

        assert quote == DynamicFee(max_fee_per_unit=133, max_priority_fee_per_unit=14)

    def test_higher_market_wins(self):
        previous = DynamicFee(max_fee_per_unit=100, max_priority_fee_per_unit=10)
        fresh = DynamicFee(max_fee_per_unit=200, max_priority_fee_per_unit=20)

        assert replacement_quote(fresh, previous) == fresh

    def test_each_component_is_bumped_independently(self):
        previous = DynamicFee(max_fee_per_unit=100, max_priority_fee_per_unit=10)
        fresh = DynamicFee(max_fee_per_unit=300, max_priority_fee_per_unit=5)

        quote = replacement_quote(fresh, previous)

        assert quote.max_fee_per_unit == 300
        assert quote.max_priority_fee_per_unit == 12

    def test_fixed_fee_replacement(self):
        quote = replacement_quote(FixedFee(price_per_unit=50), FixedFee(price_per_unit=100))

        assert quote == FixedFee(price_per_unit=111)

    def test_keeps_the_previous_fee_kind(self):
        fixed = replacement_quote(
            DynamicFee(max_fee_per_unit=300, max_priority_fee_per_unit=5),
            FixedFee(price_per_unit=100)
        )
        dynamic = replacement_quote(
            FixedFee(price_per_unit=50, degraded=True),
            DynamicFee(max_fee_per_unit=100, max_priority_fee_per_unit=10)
        )

        assert fixed == FixedFee(price_per_unit=300)
        assert dynamic == DynamicFee(max_fee_per_unit=111, max_priority_fee_per_unit=50, degraded=True)

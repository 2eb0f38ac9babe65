"""Tests for price sources and the fallback aggregator."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from basketfund.errors import InvalidInput, PriceUnavailable
from basketfund.pricing import CallablePriceSource, PriceAggregator, StaticPriceSource


@pytest.fixture
def primary(now) -> StaticPriceSource:
    source = StaticPriceSource("primary", max_age=timedelta(minutes=10))
    source.set_price("BTC", Decimal("40000"), now)
    return source


@pytest.fixture
def secondary(now) -> StaticPriceSource:
    source = StaticPriceSource("secondary", max_age=timedelta(hours=1))
    source.set_price("BTC", Decimal("39950"), now)
    return source


# ========== Fallback Tests ==========


class TestFallback:
    """Tests for get_price_with_fallback / get_price."""

    def test_primary_wins_when_valid(self, primary, secondary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary, secondary]})
        quote = aggregator.get_price_with_fallback("BTC", now)

        assert quote.valid is True
        assert quote.price == Decimal("40000")
        assert quote.source == "primary"
        assert quote.source_index == 0

    def test_stale_primary_falls_back(self, primary, secondary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary, secondary]})
        quote = aggregator.get_price_with_fallback("BTC", now + timedelta(minutes=30))

        assert quote.valid is True
        assert quote.source == "secondary"
        assert quote.price == Decimal("39950")

    def test_zero_price_is_invalid(self, primary, secondary, now) -> None:
        primary.set_price("BTC", Decimal("0"), now)
        aggregator = PriceAggregator({"BTC": [primary, secondary]})
        assert aggregator.get_price_with_fallback("BTC", now).source == "secondary"

    def test_all_sources_failing_is_explicitly_invalid(self, primary, secondary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary, secondary]})
        quote = aggregator.get_price_with_fallback("BTC", now + timedelta(hours=2))

        assert quote.valid is False
        assert quote.price == Decimal("0")
        assert quote.source is None

    def test_get_price_raises_when_invalid(self, primary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        with pytest.raises(PriceUnavailable) as exc_info:
            aggregator.get_price("BTC", now + timedelta(hours=2))
        assert exc_info.value.asset == "BTC"

    def test_unregistered_asset_is_unavailable(self, now) -> None:
        with pytest.raises(PriceUnavailable):
            PriceAggregator().get_price("ETH", now)

    def test_raising_source_is_skipped(self, secondary, now) -> None:
        broken = Mock()
        broken.name = "broken"
        broken.max_age = timedelta(minutes=5)
        broken.read.side_effect = ConnectionError("feed down")

        aggregator = PriceAggregator({"BTC": [broken, secondary]})
        quote = aggregator.get_price_with_fallback("BTC", now)

        assert quote.source == "secondary"
        broken.read.assert_called_once()

    def test_any_number_of_sources(self, now) -> None:
        sources = [StaticPriceSource(f"feed-{i}") for i in range(5)]
        sources[4].set_price("BTC", Decimal("41000"), now)
        aggregator = PriceAggregator({"BTC": sources})

        quote = aggregator.get_price_with_fallback("BTC", now)
        assert quote.source_index == 4

    def test_callable_source_is_always_fresh(self, now) -> None:
        feed = CallablePriceSource("live", fetch=lambda asset: Decimal("2500") if asset == "ETH" else None)
        aggregator = PriceAggregator({"ETH": [feed], "SOL": [feed]})

        assert aggregator.get_price("ETH", now) == Decimal("2500")
        assert aggregator.get_price_with_fallback("SOL", now).valid is False

    def test_negative_static_price_rejected(self, now) -> None:
        with pytest.raises(ValueError, match="negative"):
            StaticPriceSource("manual").set_price("BTC", Decimal("-1"), now)


# ========== Staleness Tests ==========


class TestStaleness:
    def test_not_stale_with_valid_quote(self, primary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        assert aggregator.is_stale("BTC", now, timedelta(hours=1)) is False

    def test_within_heartbeat_is_not_stale(self, primary, now) -> None:
        """Quote is too old to price with but still inside the heartbeat."""
        aggregator = PriceAggregator({"BTC": [primary]})
        later = now + timedelta(minutes=30)
        assert aggregator.get_price_with_fallback("BTC", later).valid is False
        assert aggregator.is_stale("BTC", later, timedelta(hours=1)) is False

    def test_beyond_heartbeat_is_stale(self, primary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary], "ETH": [StaticPriceSource("empty")]})
        later = now + timedelta(hours=2)
        assert aggregator.stale_assets(["BTC", "ETH"], later, timedelta(hours=1)) == ["BTC", "ETH"]


# ========== Administration Tests ==========


class TestAdministration:
    def test_add_duplicate_asset_raises(self, primary) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        with pytest.raises(InvalidInput, match="already"):
            aggregator.add_asset("BTC", [primary])

    def test_add_asset_without_sources_raises(self) -> None:
        with pytest.raises(InvalidInput):
            PriceAggregator().add_asset("BTC", [])

    def test_remove_unknown_asset_raises(self) -> None:
        with pytest.raises(InvalidInput, match="not registered"):
            PriceAggregator().remove_asset("BTC")

    def test_add_source_at_position(self, primary, secondary, now) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        aggregator.add_source("BTC", secondary, position=0)

        assert [s.name for s in aggregator.sources_for("BTC")] == ["secondary", "primary"]
        assert aggregator.get_price_with_fallback("BTC", now).source == "secondary"

    def test_add_duplicate_source_raises(self, primary) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        with pytest.raises(InvalidInput, match="already attached"):
            aggregator.add_source("BTC", StaticPriceSource("primary"))

    def test_remove_source(self, primary, secondary) -> None:
        aggregator = PriceAggregator({"BTC": [primary, secondary]})
        aggregator.remove_source("BTC", "primary")
        assert [s.name for s in aggregator.sources_for("BTC")] == ["secondary"]

    def test_remove_missing_source_raises(self, primary) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        with pytest.raises(InvalidInput, match="not attached"):
            aggregator.remove_source("BTC", "nope")

    def test_remove_last_source_raises(self, primary) -> None:
        aggregator = PriceAggregator({"BTC": [primary]})
        with pytest.raises(InvalidInput, match="last"):
            aggregator.remove_source("BTC", "primary")

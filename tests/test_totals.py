"""Tests for order totals assembly and stale-response handling."""

from decimal import Decimal

import pytest

from storefront.errors import CheckoutValidationError
from storefront.models import Currency, ExchangeRate, ShippingRate, ShippingRatesResult
from storefront.services.totals import OrderTotalsAssembler


def make_rate(rate_id="rate_1", amount="12.50", currency=Currency.USD, days=3):
    return ShippingRate(
        id=rate_id,
        carrier="usps",
        service="Priority Mail",
        amount=Decimal(amount),
        currency=currency,
        estimated_days=days,
        attributes=["CHEAPEST"],
    )


@pytest.fixture
def assembler(ledger, converter, app_config, tee_item):
    ledger.add_item(tee_item)
    return OrderTotalsAssembler(ledger, converter, app_config.pricing)


class TestTotals:
    def test_cart_without_shipping_or_tariff(self, assembler):
        totals = assembler.totals()

        assert totals.subtotal == Decimal("59.98")
        assert totals.shipping == Decimal("0")
        assert totals.tax == Decimal("4.7984")
        assert totals.tariff == Decimal("0")
        assert totals.total == Decimal("64.7784")
        assert totals.display_total == "$64.78"

    def test_gb_clothing_tariff_is_added(self, assembler, estimator, ledger):
        seq = assembler.begin_tariff_lookup()
        estimate = estimator.estimate("GB", ledger.subtotal_usd(), "clothing")
        assembler.receive_tariff_estimate(seq, estimate)

        totals = assembler.totals()

        assert estimate.total_with_tariff == Decimal("71.976")
        assert totals.tariff == Decimal("11.996")
        assert totals.total == Decimal("76.7744")

    def test_selected_rate_replaces_fallback(self, assembler):
        seq = assembler.begin_shipping_lookup()
        assembler.receive_shipping_rates(seq, [make_rate()])
        assembler.select_rate("rate_1")

        totals = assembler.totals()

        assert totals.shipping == Decimal("12.50")
        assert totals.total == Decimal("59.98") + Decimal("12.50") + Decimal("4.7984")

    def test_foreign_quote_is_converted_to_usd(self, assembler):
        rate = make_rate(amount="10", currency=Currency.EUR)
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [rate])
        assembler.select_rate(rate)

        assert assembler.totals().shipping == Decimal("10.90")

    def test_fallback_shipping_below_threshold(self, ledger, converter, app_config, item_factory):
        ledger.add_item(item_factory(unit_price_usd=Decimal("50.00")))
        assembler = OrderTotalsAssembler(ledger, converter, app_config.pricing)

        assert assembler.totals().shipping == Decimal("9.99")

    def test_display_currency(self, assembler):
        totals = assembler.totals(Currency.JPY)

        assert totals.currency is Currency.JPY
        assert totals.total == Decimal("64.7784")
        assert totals.display_total == "¥9717"
        assert totals.display_subtotal == "¥8997"


class TestSelection:
    def test_unknown_rate_id_is_rejected(self, assembler):
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [make_rate()])

        with pytest.raises(CheckoutValidationError):
            assembler.select_rate("rate_404")

    def test_deselect_restores_fallback(self, assembler):
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [make_rate()])
        assembler.select_rate("rate_1")
        assembler.select_rate(None)

        assert assembler.totals().shipping == Decimal("0")

    def test_selection_dropped_when_rate_disappears(self, assembler):
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [make_rate()])
        assembler.select_rate("rate_1")

        assembler.receive_shipping_rates(
            assembler.begin_shipping_lookup(), [make_rate("rate_2", "20")]
        )

        assert assembler.selected_rate is None

    def test_failed_lookup_records_error(self, assembler):
        seq = assembler.begin_shipping_lookup()
        assembler.receive_shipping_rates(seq, ShippingRatesResult(success=False, error="timeout"))

        assert assembler.available_rates == []
        assert assembler.shipping_error == "timeout"


class TestStaleResponses:
    def test_older_shipping_response_is_dropped(self, assembler):
        first = assembler.begin_shipping_lookup()
        second = assembler.begin_shipping_lookup()

        assert assembler.receive_shipping_rates(second, [make_rate("new")]) is True
        assert assembler.receive_shipping_rates(first, [make_rate("old")]) is False

        assert [rate.id for rate in assembler.available_rates] == ["new"]

    def test_older_tariff_response_is_dropped(self, assembler, estimator):
        first = assembler.begin_tariff_lookup()
        second = assembler.begin_tariff_lookup()

        assembler.receive_tariff_estimate(second, estimator.estimate("GB", "59.98"))
        applied = assembler.receive_tariff_estimate(first, estimator.estimate("DE", "1000"))

        assert applied is False
        assert assembler.tariff_estimate.country == "GB"


class TestCaching:
    def test_totals_are_cached_until_something_changes(self, assembler, ledger, item_factory):
        first = assembler.totals()
        assert assembler.totals() is first

        ledger.add_item(item_factory(product_id="P9"))

        refreshed = assembler.totals()
        assert refreshed is not first
        assert refreshed.subtotal == Decimal("79.98")

    def test_selection_change_invalidates_cache(self, assembler):
        first = assembler.totals()
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [make_rate()])

        assert assembler.totals() is not first

    def test_currency_change_invalidates_cache(self, assembler):
        usd = assembler.totals(Currency.USD)
        eur = assembler.totals(Currency.EUR)

        assert eur is not usd
        assert eur.display_total == "€59.60"

    def test_rate_refresh_invalidates_cache(self, assembler, converter):
        before = assembler.totals(Currency.EUR)

        converter.refresh_rates(
            [ExchangeRate(from_currency="USD", to_currency="EUR", rate=Decimal("2"))]
        )
        after = assembler.totals(Currency.EUR)

        assert before.display_total == "€59.60"
        assert after.display_total == "€129.56"

    def test_rate_refresh_reconverts_foreign_quote(self, assembler, converter):
        rate = make_rate(amount="10", currency=Currency.EUR)
        assembler.receive_shipping_rates(assembler.begin_shipping_lookup(), [rate])
        assembler.select_rate(rate)
        assert assembler.totals().shipping == Decimal("10.90")

        converter.refresh_rates(
            [ExchangeRate(from_currency="EUR", to_currency="USD", rate=Decimal("1.5"))]
        )

        assert assembler.totals().shipping == Decimal("15.0")

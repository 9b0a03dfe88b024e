"""Tests for the shipping-rate client.

Covers the provider request, best-offer selection, error handling, and the
carrier catalogue helpers.
"""

import asyncio
from decimal import Decimal

import aiohttp
import pytest

from storefront.config import ShippingConfig
from storefront.errors import CheckoutValidationError
from storefront.models import Currency, Parcel, ShippingAddress
from storefront.services.shipping import (
    ShippingRateClient,
    carriers_for_country,
    describe_rate,
)

PROVIDER_RESPONSE = {
    "object_id": "shp_123",
    "rates": [
        {
            "object_id": "rate_fast",
            "provider": "DHL",
            "servicelevel": {"name": "Express Worldwide"},
            "amount": "45.00",
            "currency": "USD",
            "estimated_days": 2,
            "attributes": ["FASTEST"],
        },
        {
            "object_id": "rate_cheap",
            "provider": "USPS",
            "servicelevel": {"name": "First Class International"},
            "amount": "18.20",
            "currency": "USD",
            "estimated_days": 9,
            "attributes": ["CHEAPEST", "BESTVALUE"],
        },
        {
            "object_id": "rate_untagged",
            "provider": "UPS",
            "servicelevel": {"name": "Worldwide Saver"},
            "amount": "5.00",
            "currency": "USD",
            "estimated_days": 4,
            "attributes": [],
        },
    ],
}


@pytest.fixture
def client():
    return ShippingRateClient(ShippingConfig(api_token="shippo_test_token"))


@pytest.fixture
def address():
    return ShippingAddress(name="Jane", street1="1 High St", city="London", zip="SW1A 1AA", country="gb")


class TestGetRates:
    @pytest.mark.asyncio
    async def test_returns_tagged_rates_cheapest_first(self, client, address, mock_http_session):
        mock_http_session.response.json.return_value = PROVIDER_RESPONSE

        result = await client.get_rates(mock_http_session, address)

        assert result.success is True
        assert result.shipment_id == "shp_123"
        assert [rate.id for rate in result.rates] == ["rate_cheap", "rate_fast"]
        assert result.rates[0].amount == Decimal("18.20")
        assert result.rates[0].service == "First Class International"
        assert result.rates[1].description == "DHL Express Worldwide - Express (2 days)"

    @pytest.mark.asyncio
    async def test_request_payload(self, client, address, mock_http_session):
        mock_http_session.response.json.return_value = PROVIDER_RESPONSE

        await client.get_rates(mock_http_session, address, Parcel(weight=Decimal("1.5")), Currency.GBP)

        args, kwargs = mock_http_session.post.call_args
        assert args[0] == "https://api.goshippo.com/shipments/"
        assert kwargs["headers"] == {"Authorization": "ShippoToken shippo_test_token"}
        payload = kwargs["json"]
        assert payload["address_to"]["country"] == "GB"
        assert payload["address_from"]["city"] == "Los Angeles"
        assert payload["parcels"][0]["weight"] == "1.5"
        assert payload["extra"] == {"currency": "GBP"}

    @pytest.mark.asyncio
    async def test_rates_are_capped(self, address, mock_http_session):
        client = ShippingRateClient(ShippingConfig(api_token="t", max_rates=1))
        mock_http_session.response.json.return_value = PROVIDER_RESPONSE

        result = await client.get_rates(mock_http_session, address)

        assert [rate.id for rate in result.rates] == ["rate_cheap"]

    @pytest.mark.asyncio
    async def test_network_error_is_failed_result(self, client, address, mock_http_session):
        mock_http_session.post.side_effect = aiohttp.ClientError("Network error")

        result = await client.get_rates(mock_http_session, address)

        assert result.success is False
        assert result.rates == []
        assert "Network error" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_failed_result(self, client, address, mock_http_session):
        mock_http_session.post.side_effect = asyncio.TimeoutError()

        result = await client.get_rates(mock_http_session, address)

        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_missing_token(self, address, mock_http_session):
        client = ShippingRateClient(ShippingConfig(api_token=None))

        result = await client.get_rates(mock_http_session, address)

        assert result.success is False
        mock_http_session.post.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("override", [{"country": ""}, {"zip": " "}])
    async def test_incomplete_address_is_rejected(self, client, address, mock_http_session, override):
        incomplete = address.model_copy(update=override)

        with pytest.raises(CheckoutValidationError):
            await client.get_rates(mock_http_session, incomplete)


def test_unusable_rates_are_skipped(client):
    rates = client.select_rates(
        [
            {"object_id": "bad", "provider": "UPS", "amount": "n/a", "attributes": ["CHEAPEST"],
             "estimated_days": 3},
            {"object_id": "ok", "provider": "UPS", "amount": "7", "attributes": ["CHEAPEST"],
             "estimated_days": 3, "servicelevel": {"name": "Ground"}},
        ]
    )

    assert [rate.id for rate in rates] == ["ok"]


@pytest.mark.parametrize(
    "days,speed",
    [(1, "Express"), (3, "Express"), (5, "Standard"), (7, "Standard"), (12, "Economy")],
)
def test_describe_rate_speed(days, speed):
    assert describe_rate("usps", "Priority", days) == f"USPS Priority - {speed} ({days} days)"


def test_carriers_for_country():
    assert carriers_for_country("gb")[0]["name"] == "Royal Mail"
    assert carriers_for_country("ZZ") == carriers_for_country("US")

"""Shipping-rate lookup through the external rate provider.

Creates a shipment quote with the provider (Shippo) for the warehouse origin,
the customer's destination and a parcel, keeps only the tagged best offers,
and returns them cheapest first. Provider failures are returned as a failed
result and are never retried here.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from ..config import ShippingConfig
from ..errors import CheckoutValidationError
from ..messages import (
    ERROR_ADDRESS_REQUIRED,
    ERROR_SHIPPING_FAILED,
    ERROR_SHIPPING_NOT_CONFIGURED,
    SHIPPING_DESCRIPTION,
    SHIPPING_SPEED_ECONOMY,
    SHIPPING_SPEED_EXPRESS,
    SHIPPING_SPEED_STANDARD,
)
from ..models import Currency, Parcel, ShippingAddress, ShippingRate, ShippingRatesResult

logger = logging.getLogger(__name__)

PREFERRED_ATTRIBUTES = {"CHEAPEST", "FASTEST", "BESTVALUE"}

CARRIER_NAMES = {
    "usps": "USPS",
    "fedex": "FedEx",
    "ups": "UPS",
    "dhl": "DHL",
    "dpd": "DPD",
    "royalmail": "Royal Mail",
}

SUPPORTED_COUNTRIES = ["US", "CN", "GB", "DE", "FR", "JP", "AU", "CA", "MX", "BR", "IN"]

CARRIERS_BY_COUNTRY: dict[str, list[dict[str, Any]]] = {
    "US": [
        {"id": "usps", "name": "USPS", "services": ["First Class", "Priority Mail", "Express Mail"],
         "notes": "Most economical for domestic US"},
        {"id": "fedex", "name": "FedEx", "services": ["Ground", "2Day", "Overnight"],
         "notes": "Reliable and fast"},
        {"id": "ups", "name": "UPS", "services": ["Ground", "3 Day Select", "Next Day Air"],
         "notes": "Wide international coverage"},
    ],
    "CN": [
        {"id": "dhl", "name": "DHL", "services": ["Express Worldwide", "Economy Select"],
         "notes": "Fast delivery to China"},
        {"id": "fedex", "name": "FedEx", "services": ["International Priority", "International Economy"],
         "notes": "Reliable international service"},
    ],
    "GB": [
        {"id": "royalmail", "name": "Royal Mail", "services": ["International Standard", "International Tracked"],
         "notes": "Official UK postal service"},
        {"id": "dpd", "name": "DPD", "services": ["Classic", "Predict"],
         "notes": "Reliable European delivery"},
    ],
    "EU": [
        {"id": "dhl", "name": "DHL", "services": ["Express", "Parcel"],
         "notes": "Wide European network"},
        {"id": "dpd", "name": "DPD", "services": ["Classic", "Predict"],
         "notes": "Reliable European delivery"},
    ],
}


def describe_rate(carrier: str, service: str, days: int) -> str:
    """Human readable summary, e.g. 'DHL Express Worldwide - Express (2 days)'."""
    carrier_name = CARRIER_NAMES.get(carrier.lower(), carrier)
    if days <= 3:
        speed = SHIPPING_SPEED_EXPRESS
    elif days <= 7:
        speed = SHIPPING_SPEED_STANDARD
    else:
        speed = SHIPPING_SPEED_ECONOMY
    return SHIPPING_DESCRIPTION.format(carrier=carrier_name, service=service, speed=speed, days=days)


def carriers_for_country(country: str) -> list[dict[str, Any]]:
    """Carrier catalogue for a destination, defaulting to the US list."""
    return CARRIERS_BY_COUNTRY.get((country or "").strip().upper(), CARRIERS_BY_COUNTRY["US"])


def validate_destination(address: ShippingAddress) -> None:
    """Reject addresses that cannot be quoted.

    Raises:
        CheckoutValidationError: If country or zip is empty.
    """
    if not address.country or not address.zip.strip():
        raise CheckoutValidationError(ERROR_ADDRESS_REQUIRED, field="address")


def _address_payload(address: ShippingAddress) -> dict[str, Any]:
    return address.model_dump(exclude_none=True)


def _parcel_payload(parcel: Parcel) -> dict[str, str]:
    return {
        "length": str(parcel.length),
        "width": str(parcel.width),
        "height": str(parcel.height),
        "weight": str(parcel.weight),
        "mass_unit": parcel.mass_unit,
        "distance_unit": parcel.distance_unit,
    }


class ShippingRateClient:
    """Client for the shipping-rate provider."""

    def __init__(self, config: ShippingConfig):
        self.config = config

    async def get_rates(
        self,
        session: aiohttp.ClientSession,
        to_address: ShippingAddress,
        parcel: Parcel | None = None,
        currency: Currency = Currency.USD,
    ) -> ShippingRatesResult:
        """Quote shipping from the warehouse to ``to_address``.

        Args:
            session: HTTP session used for the provider call.
            to_address: Customer destination.
            parcel: Parcel dimensions, defaults to the configured parcel.
            currency: Preferred quote currency.

        Returns:
            ShippingRatesResult with up to ``max_rates`` quotes, cheapest first,
            or success=False with an error message.

        Raises:
            CheckoutValidationError: If the destination lacks country or zip.
        """
        validate_destination(to_address)

        if not self.config.api_token:
            logger.error("Shipping-rate lookup requested without SHIPPO_API_KEY")
            return ShippingRatesResult(success=False, error=ERROR_SHIPPING_NOT_CONFIGURED)

        payload = {
            "address_from": _address_payload(self.config.from_address),
            "address_to": _address_payload(to_address),
            "parcels": [_parcel_payload(parcel or self.config.default_parcel)],
            "async": False,
            "extra": {"currency": currency.value},
        }
        headers = {"Authorization": f"ShippoToken {self.config.api_token}"}

        try:
            logger.info(f"Requesting shipping rates to {to_address.country} {to_address.zip}")
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            async with session.post(
                self.config.api_url, json=payload, headers=headers, timeout=timeout
            ) as response:
                response.raise_for_status()
                shipment = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error getting shipping rates: {e}")
            return ShippingRatesResult(success=False, error=str(e) or ERROR_SHIPPING_FAILED)

        if not isinstance(shipment, dict):
            logger.error("Shipping-rate provider returned an unexpected payload")
            return ShippingRatesResult(success=False, error=ERROR_SHIPPING_FAILED)

        rates = self.select_rates(shipment.get("rates") or [])
        logger.info(f"Received {len(rates)} shipping rates")
        return ShippingRatesResult(
            success=True, rates=rates, shipment_id=shipment.get("object_id")
        )

    def select_rates(self, raw_rates: list[dict[str, Any]]) -> list[ShippingRate]:
        """Keep tagged offers, sort by amount and cap the list length."""
        rates: list[ShippingRate] = []
        for raw in raw_rates:
            attributes = raw.get("attributes") or []
            if not PREFERRED_ATTRIBUTES.intersection(attributes):
                continue
            rate = self._parse_rate(raw, attributes)
            if rate is not None:
                rates.append(rate)

        rates.sort(key=lambda rate: rate.amount)
        return rates[: self.config.max_rates]

    def _parse_rate(self, raw: dict[str, Any], attributes: list[str]) -> ShippingRate | None:
        servicelevel = raw.get("servicelevel") or {}
        carrier = str(raw.get("provider", ""))
        service = str(servicelevel.get("name") or raw.get("servicelevel_name") or "")
        days = raw.get("estimated_days") or raw.get("days") or 0

        try:
            amount = Decimal(str(raw.get("amount")))
            currency = Currency(str(raw.get("currency", "USD")).upper())
            return ShippingRate(
                id=str(raw.get("object_id", "")),
                carrier=carrier,
                service=service,
                amount=amount,
                currency=currency,
                estimated_days=int(days),
                attributes=list(attributes),
                description=describe_rate(carrier, service, int(days)),
            )
        except (InvalidOperation, ValueError) as e:
            logger.warning(f"Skipping unusable shipping rate {raw.get('object_id')}: {e}")
            return None

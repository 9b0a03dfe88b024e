"""HTTP route handlers for the storefront API.

Thin aiohttp.web handlers that validate request bodies, delegate to the
services held by the DI container, and render JSON. Validation problems map
to 400 responses; a failing shipping-rate provider maps to 502.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from functools import partial
from typing import Any

import aiohttp
from aiohttp import web
from pydantic import ValidationError

from ..core.container import Container
from ..errors import CheckoutValidationError
from ..messages import (
    ERROR_ADDRESS_REQUIRED,
    ERROR_INVALID_JSON,
    ERROR_SHIPPING_FAILED,
)
from ..models import Currency, Parcel, ShippingAddress, TariffEstimate
from ..services.currency import currency_info, format_amount, parse_currency
from ..services.payment import payment_methods_for, supported_payment_currencies
from ..services.shipping import SUPPORTED_COUNTRIES, carriers_for_country

logger = logging.getLogger(__name__)

CONTAINER_KEY = web.AppKey("container", Container)
HTTP_SESSION_KEY = web.AppKey("http_session", aiohttp.ClientSession)

routes = web.RouteTableDef()


def _json_default(value: object) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


_dumps = partial(json.dumps, default=_json_default, ensure_ascii=False)


def json_response(data: dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(message: str, status: int) -> web.Response:
    return json_response({"success": False, "error": message}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise CheckoutValidationError(ERROR_INVALID_JSON)
    if not isinstance(body, dict):
        raise CheckoutValidationError(ERROR_INVALID_JSON)
    return body


def _formatted_estimate(estimate: TariffEstimate) -> dict[str, str]:
    currency = estimate.currency
    return {
        "value": format_amount(estimate.declared_value, currency),
        "vat_amount": format_amount(estimate.vat_amount, currency),
        "duty_amount": format_amount(estimate.duty_amount, currency),
        "total_tariff": format_amount(estimate.total_tariff, currency),
        "total_with_tariff": format_amount(estimate.total_with_tariff, currency),
    }


@routes.post("/api/estimate-tariff")
async def estimate_tariff(request: web.Request) -> web.Response:
    """Estimate import taxes for a declared value and destination."""
    container = request.app[CONTAINER_KEY]
    try:
        body = await _read_json(request)
        currency = parse_currency(body.get("currency") or Currency.USD)
        estimate = container.tariff_estimator().estimate(
            body.get("country"),
            body.get("value"),
            category=body.get("category") or "clothing",
            currency=currency,
            weight_kg=Decimal(str(body.get("weight", "0.5"))),
        )
    except CheckoutValidationError as e:
        return error_response(str(e), 400)
    except (ArithmeticError, ValueError):
        return error_response("Weight must be a number", 400)

    payload = estimate.model_dump()
    payload["formatted"] = _formatted_estimate(estimate)
    return json_response({"success": True, "estimate": payload})


@routes.get("/api/estimate-tariff")
async def tariff_info(request: web.Request) -> web.Response:
    """Reference tables for a country and category."""
    container = request.app[CONTAINER_KEY]
    info = container.tariff_estimator().describe(
        request.query.get("country", "US"), request.query.get("category", "clothing")
    )
    return json_response({"success": True, **info})


@routes.post("/api/shipping-rates")
async def shipping_rates(request: web.Request) -> web.Response:
    """Quote carrier rates to the submitted destination."""
    container = request.app[CONTAINER_KEY]
    try:
        body = await _read_json(request)
        raw_address = body.get("to_address")
        if not isinstance(raw_address, dict):
            raise CheckoutValidationError(ERROR_ADDRESS_REQUIRED, field="to_address")
        address = ShippingAddress.model_validate(raw_address)
        parcel = Parcel.model_validate(body["parcel"]) if body.get("parcel") else None
        currency = parse_currency(body.get("currency") or Currency.USD)

        result = await container.shipping_client().get_rates(
            request.app[HTTP_SESSION_KEY], address, parcel, currency
        )
    except ValidationError:
        return error_response(ERROR_ADDRESS_REQUIRED, 400)
    except CheckoutValidationError as e:
        return error_response(str(e), 400)

    if not result.success:
        return error_response(result.error or ERROR_SHIPPING_FAILED, 502)

    return json_response(
        {
            "success": True,
            "rates": [rate.model_dump() for rate in result.rates],
            "shipment_id": result.shipment_id,
            "to_address": address.model_dump(),
        }
    )


@routes.get("/api/shipping-rates")
async def shipping_options(request: web.Request) -> web.Response:
    """Carriers serving a country and the quoting defaults."""
    container = request.app[CONTAINER_KEY]
    shipping_config = container.app_config().shipping
    country = request.query.get("country", "US")
    return json_response(
        {
            "success": True,
            "country": country,
            "carriers": carriers_for_country(country),
            "default_parcel": shipping_config.default_parcel.model_dump(),
            "from_address": shipping_config.from_address.model_dump(),
            "supported_countries": SUPPORTED_COUNTRIES,
            "currency_options": [currency.value for currency in Currency],
        }
    )


@routes.get("/api/currencies")
async def currencies(request: web.Request) -> web.Response:
    """Supported currencies and the current exchange-rate table."""
    converter = request.app[CONTAINER_KEY].currency_converter()
    return json_response(
        {
            "success": True,
            "currencies": currency_info(),
            "rates": [rate.model_dump() for rate in converter.rates()],
        }
    )


@routes.get("/api/payment-methods")
async def payment_methods(request: web.Request) -> web.Response:
    """Payment methods offered for a currency."""
    currency = request.query.get("currency", "usd")
    return json_response(
        {
            "success": True,
            "currency": currency,
            "payment_methods": payment_methods_for(currency),
            "supported_currencies": supported_payment_currencies(),
        }
    )

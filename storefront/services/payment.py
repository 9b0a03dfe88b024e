"""Payment-intent parameters for the external payment gateway.

The gateway itself is an opaque collaborator; this module only prepares the
two values it receives: the final amount in the display currency and the
lowercase currency code.
"""

import logging

from ..errors import CheckoutValidationError
from ..messages import ERROR_AMOUNT_REQUIRED
from ..models import Currency, OrderTotals, PaymentIntentRequest
from .currency import CurrencyConverter, round_for

logger = logging.getLogger(__name__)

PAYMENT_METHODS_BY_CURRENCY = {
    "usd": ["card", "paypal", "apple_pay", "google_pay"],
    "cny": ["card", "alipay", "wechat_pay"],
    "eur": ["card", "paypal", "apple_pay", "google_pay"],
    "gbp": ["card", "paypal", "apple_pay", "google_pay"],
    "jpy": ["card", "paypal"],
}
DEFAULT_PAYMENT_METHODS = ["card", "paypal"]


def payment_methods_for(currency: str) -> list[str]:
    return PAYMENT_METHODS_BY_CURRENCY.get((currency or "").lower(), DEFAULT_PAYMENT_METHODS)


def build_payment_intent(totals: OrderTotals, converter: CurrencyConverter) -> PaymentIntentRequest:
    """Convert the USD total into the display currency for the gateway.

    Raises:
        CheckoutValidationError: If the converted total is not positive.
    """
    currency = totals.currency
    amount = round_for(converter.convert(totals.total, currency), currency)
    if amount <= 0:
        raise CheckoutValidationError(ERROR_AMOUNT_REQUIRED, field="amount")

    request = PaymentIntentRequest(amount=amount, currency=currency.value.lower())
    logger.info(f"Payment intent prepared: {request.amount} {request.currency}")
    return request


def supported_payment_currencies() -> list[str]:
    return [currency.value for currency in Currency]

"""Per-customer checkout session.

A CheckoutSession is built once per user session and passed explicitly to
whatever needs it. It ties together the session's key-value store, the cart
ledger, the currency preference and the totals assembler, while sharing the
process-wide exchange-rate converter and tariff estimator.
"""

import logging

import aiohttp

from .config import Config
from .errors import CheckoutValidationError
from .models import (
    Currency,
    OrderTotals,
    Parcel,
    PaymentIntentRequest,
    ShippingAddress,
    ShippingRatesResult,
    TariffEstimate,
)
from .services.cart import CartLedger
from .services.currency import CurrencyConverter, CurrencyPreference
from .services.payment import build_payment_intent
from .services.shipping import ShippingRateClient
from .services.storage import KeyValueStore
from .services.tariff import TariffEstimator
from .services.totals import OrderTotalsAssembler

logger = logging.getLogger(__name__)


class CheckoutSession:
    """Cart, currency preference and checkout selections for one customer."""

    def __init__(
        self,
        store: KeyValueStore,
        converter: CurrencyConverter,
        tariff_estimator: TariffEstimator,
        config: Config,
        shipping_client: ShippingRateClient | None = None,
    ):
        self.store = store
        self.converter = converter
        self.tariff_estimator = tariff_estimator
        self.shipping_client = shipping_client
        self.config = config

        self.cart = CartLedger(store, config.storage.cart_key, config.pricing)
        self.currency_preference = CurrencyPreference(
            store, config.storage.currency_key, default=config.currency.default_currency
        )
        self.assembler = OrderTotalsAssembler(self.cart, converter, config.pricing)

        self._tariff_request: tuple[str, str, Currency] | None = None
        self._tariff_revision = 0

    @property
    def currency(self) -> Currency:
        return self.currency_preference.get()

    def set_currency(self, currency: Currency | str) -> Currency:
        return self.currency_preference.set(currency)

    def format_price(self, amount_usd, currency: Currency | None = None) -> str:
        return self.converter.format(amount_usd, currency or self.currency)

    def estimate_tariff(
        self, country: str, category: str = "clothing", currency: Currency = Currency.USD
    ) -> TariffEstimate:
        """Estimate tariff for the current cart subtotal and apply it.

        The destination and category are remembered so the estimate follows
        later cart changes.

        Raises:
            CheckoutValidationError: If the country is empty or the cart is empty.
        """
        seq = self.assembler.begin_tariff_lookup()
        estimate = self.tariff_estimator.estimate(
            country, self.cart.subtotal_usd(), category=category, currency=currency
        )
        self.assembler.receive_tariff_estimate(seq, estimate)
        self._tariff_request = (country, category, currency)
        self._tariff_revision = self.cart.revision
        return estimate

    def _refresh_tariff(self) -> None:
        """Re-run the remembered tariff estimate if the cart changed since."""
        if self._tariff_request is None or self._tariff_revision == self.cart.revision:
            return

        country, category, currency = self._tariff_request
        seq = self.assembler.begin_tariff_lookup()
        try:
            estimate = self.tariff_estimator.estimate(
                country, self.cart.subtotal_usd(), category=category, currency=currency
            )
        except CheckoutValidationError as e:
            logger.debug(f"Dropping tariff estimate after cart change: {e}")
            estimate = None
        self.assembler.receive_tariff_estimate(seq, estimate)
        self._tariff_revision = self.cart.revision

    async def fetch_shipping_rates(
        self,
        session: aiohttp.ClientSession,
        address: ShippingAddress,
        parcel: Parcel | None = None,
    ) -> ShippingRatesResult:
        """Quote shipping for ``address`` and apply the result if still current.

        Raises:
            RuntimeError: If the session was built without a shipping client.
            CheckoutValidationError: If the address lacks country or zip.
        """
        if self.shipping_client is None:
            raise RuntimeError("CheckoutSession has no shipping client")

        seq = self.assembler.begin_shipping_lookup()
        result = await self.shipping_client.get_rates(session, address, parcel)
        self.assembler.receive_shipping_rates(seq, result)
        return result

    def totals(self) -> OrderTotals:
        self._refresh_tariff()
        return self.assembler.totals(self.currency)

    def payment_intent(self) -> PaymentIntentRequest:
        return build_payment_intent(self.totals(), self.converter)

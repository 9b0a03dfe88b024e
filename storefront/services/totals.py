"""Order totals assembly for checkout.

Combines the cart subtotal, the selected carrier rate (or the flat fallback),
sales tax and the tariff estimate into the final payable amount. Everything is
summed in USD and converted once, at the end, into the customer's display
currency.

Shipping and tariff lookups run asynchronously on user action. Each lookup is
tagged with a sequence number when it starts; a response carrying an older
number than the latest issued one is dropped, so a slow stale response can
never overwrite newer state.
"""

import logging
from decimal import Decimal

from ..config import PricingConfig
from ..errors import CheckoutValidationError
from ..models import Currency, OrderTotals, ShippingRate, ShippingRatesResult, TariffEstimate
from .cart import CartLedger, sales_tax, shipping_fallback
from .currency import CurrencyConverter

logger = logging.getLogger(__name__)


class OrderTotalsAssembler:
    """Holds checkout selections for one session and derives its totals."""

    def __init__(self, ledger: CartLedger, converter: CurrencyConverter, pricing: PricingConfig):
        self.ledger = ledger
        self.converter = converter
        self.pricing = pricing

        self.available_rates: list[ShippingRate] = []
        self.selected_rate: ShippingRate | None = None
        self.shipping_error: str | None = None
        self.tariff_estimate: TariffEstimate | None = None

        self._shipping_seq = 0
        self._tariff_seq = 0
        self._version = 0
        self._last_key: tuple[int, int, int, Currency] | None = None
        self._last_totals: OrderTotals | None = None

    def _invalidate(self) -> None:
        self._version += 1

    def _cache_key(self, currency: Currency) -> tuple[int, int, int, Currency]:
        return (self.ledger.revision, self._version, self.converter.generation, currency)

    def begin_shipping_lookup(self) -> int:
        """Tag a new shipping-rate request; returns its sequence number."""
        self._shipping_seq += 1
        return self._shipping_seq

    def receive_shipping_rates(
        self, seq: int, result: ShippingRatesResult | list[ShippingRate]
    ) -> bool:
        """Apply a shipping-rate response if it belongs to the latest request.

        A selected rate that is missing from the new list is deselected.

        Returns:
            True if applied, False if the response was stale.
        """
        if seq != self._shipping_seq:
            logger.debug(f"Dropping stale shipping rates #{seq} (latest #{self._shipping_seq})")
            return False

        if isinstance(result, ShippingRatesResult):
            rates = result.rates if result.success else []
            self.shipping_error = None if result.success else result.error
        else:
            rates = list(result)
            self.shipping_error = None

        self.available_rates = rates
        if self.selected_rate is not None and all(r.id != self.selected_rate.id for r in rates):
            self.selected_rate = None
        self._invalidate()
        return True

    def select_rate(self, rate: ShippingRate | str | None) -> ShippingRate | None:
        """Choose a carrier rate by record or id; None reverts to the fallback.

        Raises:
            CheckoutValidationError: If an id does not match an available rate.
        """
        if isinstance(rate, str):
            match = next((r for r in self.available_rates if r.id == rate), None)
            if match is None:
                raise CheckoutValidationError(f"Unknown shipping rate: {rate}", field="rate_id")
            rate = match

        self.selected_rate = rate
        self._invalidate()
        return rate

    def begin_tariff_lookup(self) -> int:
        """Tag a new tariff-estimate request; returns its sequence number."""
        self._tariff_seq += 1
        return self._tariff_seq

    def receive_tariff_estimate(self, seq: int, estimate: TariffEstimate | None) -> bool:
        """Apply a tariff estimate if it belongs to the latest request.

        Returns:
            True if applied, False if the response was stale.
        """
        if seq != self._tariff_seq:
            logger.debug(f"Dropping stale tariff estimate #{seq} (latest #{self._tariff_seq})")
            return False

        self.tariff_estimate = estimate
        self._invalidate()
        return True

    def shipping_usd(self, subtotal: Decimal) -> Decimal:
        if self.selected_rate is None:
            return shipping_fallback(subtotal, self.pricing)
        return self.converter.to_usd(self.selected_rate.amount, self.selected_rate.currency)

    def compute(self, currency: Currency = Currency.USD) -> OrderTotals:
        """Recompute totals from the current cart and selections."""
        subtotal = self.ledger.subtotal_usd()
        shipping = self.shipping_usd(subtotal)
        tax = sales_tax(subtotal, self.pricing)
        tariff = self.tariff_estimate.total_tariff if self.tariff_estimate else Decimal("0")
        total = subtotal + shipping + tax + tariff

        fmt = self.converter.format
        totals = OrderTotals(
            subtotal=subtotal,
            shipping=shipping,
            tax=tax,
            tariff=tariff,
            total=total,
            currency=currency,
            display_subtotal=fmt(subtotal, currency),
            display_shipping=fmt(shipping, currency),
            display_tax=fmt(tax, currency),
            display_tariff=fmt(tariff, currency),
            display_total=fmt(total, currency),
        )

        self._last_key = self._cache_key(currency)
        self._last_totals = totals
        return totals

    def totals(self, currency: Currency = Currency.USD) -> OrderTotals:
        """Last computed totals, recomputed if the cart, a selection or the rates changed."""
        key = self._cache_key(currency)
        if self._last_totals is not None and key == self._last_key:
            return self._last_totals
        return self.compute(currency)

"""Data models for the storefront pricing core.

Defines Pydantic models for every record crossing a component boundary:
currencies and exchange rates, cart line items, shipping addresses and
quotes, tariff estimates, and the derived order totals. Money is always a
Decimal amount in USD unless a field says otherwise.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Currency(str, Enum):
    """Supported display currencies."""

    USD = "USD"
    CNY = "CNY"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS[self]

    @property
    def display_name(self) -> str:
        return CURRENCY_NAMES[self]

    @property
    def decimals(self) -> int:
        """Number of decimal places shown for this currency."""
        return 0 if self is Currency.JPY else 2


CURRENCY_SYMBOLS: dict[Currency, str] = {
    Currency.USD: "$",
    Currency.CNY: "¥",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.JPY: "¥",
}

CURRENCY_NAMES: dict[Currency, str] = {
    Currency.USD: "US Dollar",
    Currency.CNY: "Chinese Yuan",
    Currency.EUR: "Euro",
    Currency.GBP: "British Pound",
    Currency.JPY: "Japanese Yen",
}


class ExchangeRate(BaseModel):
    """Exchange rate for one direction of a currency pair.

    Attributes:
        from_currency: Source currency.
        to_currency: Target currency.
        rate: Multiplier applied to an amount in the source currency.
        updated_at: When the rate was last refreshed.
        source: Identifier of where the rate came from ("default", "api").
    """

    from_currency: Currency
    to_currency: Currency
    rate: Decimal = Field(gt=0)
    updated_at: datetime = Field(default_factory=datetime.now)
    source: str = "default"

    @property
    def key(self) -> tuple[Currency, Currency]:
        return (self.from_currency, self.to_currency)


class LookupMiss(BaseModel):
    """A table lookup that resolved to a fallback value.

    Attributes:
        table: Name of the table consulted.
        key: Key that was missing.
        fallback: Description of the value used instead.
    """

    table: str
    key: str
    fallback: str


class NewCartItem(BaseModel):
    """Cart item data as submitted by the caller, before an id is assigned."""

    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    unit_price_usd: Decimal = Field(gt=0)
    quantity: int = Field(ge=1, le=99)
    image: str = Field(min_length=1)
    sku: str = Field(min_length=1)
    size: str | None = None
    color: str | None = None

    @property
    def identity(self) -> tuple[str, str | None, str | None]:
        """Merge identity: same product in the same size and color."""
        return (self.product_id, self.size, self.color)


class CartItem(NewCartItem):
    """Stored cart line item.

    Attributes:
        id: Unique line id generated on insert.
    """

    id: str = Field(min_length=1)

    @property
    def line_total_usd(self) -> Decimal:
        return self.unit_price_usd * self.quantity


class ShippingAddress(BaseModel):
    """Destination or origin address for shipping and tariff lookups."""

    name: str = ""
    street1: str = ""
    street2: str | None = None
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    phone: str | None = None
    email: str | None = None

    @field_validator("country")
    @classmethod
    def _upper_country(cls, value: str) -> str:
        return value.strip().upper()


class Parcel(BaseModel):
    """Package dimensions used when quoting carrier rates."""

    length: Decimal = Decimal("30")
    width: Decimal = Decimal("20")
    height: Decimal = Decimal("5")
    weight: Decimal = Decimal("0.5")
    mass_unit: str = "kg"
    distance_unit: str = "cm"


class ShippingRate(BaseModel):
    """A single carrier quote.

    Attributes:
        id: Provider rate id.
        carrier: Carrier code (e.g. 'usps', 'dhl').
        service: Service level name.
        amount: Quoted price in ``currency``.
        currency: Quote currency.
        estimated_days: Estimated transit time.
        attributes: Provider tags such as CHEAPEST or FASTEST.
        description: Human readable summary.
    """

    id: str
    carrier: str
    service: str
    amount: Decimal = Field(ge=0)
    currency: Currency = Currency.USD
    estimated_days: int = Field(gt=0)
    attributes: list[str] = Field(default_factory=list)
    description: str = ""


class ShippingRatesResult(BaseModel):
    """Outcome of a shipping-rate lookup."""

    success: bool
    rates: list[ShippingRate] = Field(default_factory=list)
    shipment_id: str | None = None
    error: str | None = None


class TariffEstimate(BaseModel):
    """Import duty and VAT exposure for a prospective order.

    Attributes:
        country: ISO-2 destination country.
        declared_value: Customs value, USD equivalent.
        currency: Currency the declared value was quoted in.
        category: Goods category used for rate lookups.
        weight_kg: Declared parcel weight.
        is_duty_free: Whether the value is within the duty-free threshold.
        duty_free_threshold: Threshold for the country, None if none exists.
        vat_rate: VAT rate applied (0.20 = 20%).
        duty_rate: Customs duty rate applied.
        vat_amount: VAT charged.
        duty_amount: Customs duty charged.
        total_tariff: Duty plus VAT.
        total_with_tariff: Declared value plus total tariff.
        documentation_required: Documents the shipment needs.
        processing_fee: Flat customs processing fee for the country.
        notes: Human readable explanation.
        fallbacks: Table lookups that resolved to a fallback value.
    """

    country: str
    declared_value: Decimal
    currency: Currency = Currency.USD
    category: str = "clothing"
    weight_kg: Decimal = Decimal("0.5")
    is_duty_free: bool
    duty_free_threshold: Decimal | None = None
    vat_rate: Decimal = Decimal("0")
    duty_rate: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    duty_amount: Decimal = Decimal("0")
    total_tariff: Decimal = Decimal("0")
    total_with_tariff: Decimal
    documentation_required: list[str] = Field(default_factory=list)
    processing_fee: Decimal = Decimal("0")
    notes: str = ""
    fallbacks: list[LookupMiss] = Field(default_factory=list)


class OrderTotals(BaseModel):
    """Derived checkout totals.

    All amounts are USD; ``currency`` and the ``display_*`` strings describe
    how the totals are rendered for the customer.
    """

    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    tariff: Decimal = Decimal("0")
    total: Decimal
    currency: Currency = Currency.USD
    display_subtotal: str = ""
    display_shipping: str = ""
    display_tax: str = ""
    display_tariff: str = ""
    display_total: str = ""


class PaymentIntentRequest(BaseModel):
    """Parameters handed to the payment gateway when creating an intent.

    Attributes:
        amount: Final total in the display currency.
        currency: Lowercase ISO currency code.
    """

    amount: Decimal = Field(gt=0)
    currency: str

    @property
    def amount_minor_units(self) -> int:
        """Amount in cents (or the currency's hundredth unit)."""
        return int((self.amount * 100).quantize(Decimal("1"), ROUND_HALF_UP))

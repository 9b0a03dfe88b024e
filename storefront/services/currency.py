"""Currency conversion and exchange-rate refresh service.

Converts canonical USD amounts into the supported display currencies using a
rate table seeded from static defaults and refreshed periodically from an
exchange-rate API. Conversion never raises: a missing rate degrades to the
unconverted USD figure and is logged and recorded as a lookup miss.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import aiohttp

from ..config import CurrencyConfig
from ..errors import CheckoutValidationError
from ..models import Currency, ExchangeRate, LookupMiss
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

RateKey = tuple[Currency, Currency]


def parse_currency(code: str | Currency) -> Currency:
    """Resolve a currency code, case-insensitively.

    Raises:
        CheckoutValidationError: If the code is not a supported currency.
    """
    if isinstance(code, Currency):
        return code
    try:
        return Currency((code or "").strip().upper())
    except ValueError:
        raise CheckoutValidationError(f"Currency {code} is not supported", field="currency")


def is_valid_currency(code: str) -> bool:
    return (code or "").strip().upper() in Currency.__members__


def currency_info() -> list[dict[str, str | int]]:
    """Symbol, name and display precision of every supported currency."""
    return [
        {
            "code": currency.value,
            "symbol": currency.symbol,
            "name": currency.display_name,
            "decimals": currency.decimals,
        }
        for currency in Currency
    ]


def round_for(amount: Decimal, currency: Currency) -> Decimal:
    """Round an amount to the display precision of ``currency``."""
    exponent = Decimal("1") if currency.decimals == 0 else Decimal("0.01")
    return amount.quantize(exponent, ROUND_HALF_UP)


def format_amount(amount: Decimal, currency: Currency) -> str:
    """Render an amount already expressed in ``currency`` with its symbol."""
    return f"{currency.symbol}{round_for(amount, currency)}"


def _to_decimal(value: object) -> Decimal:
    """Convert arbitrary numeric input to Decimal, zero on failure."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        amount = None

    if amount is None or not amount.is_finite():
        logger.warning(f"Cannot interpret amount {value!r}, using 0")
        return Decimal("0")
    return amount


class CurrencyConverter:
    """Converts USD amounts using a replace-by-key exchange-rate table.

    The table is never mutated in place: a refresh builds a new mapping and
    swaps the reference, so readers always see a fully committed table.

    Attributes:
        generation: Incremented on every committed refresh.
    """

    def __init__(self, rates: Iterable[ExchangeRate] = ()):
        """Initialize converter.

        Args:
            rates: Seed rates, usually the static defaults from rates.yml.
        """
        self._rates: dict[RateKey, ExchangeRate] = {rate.key: rate for rate in rates}
        self.misses: list[LookupMiss] = []
        self.generation = 0

    def rate(self, from_currency: Currency, to_currency: Currency) -> ExchangeRate | None:
        return self._rates.get((from_currency, to_currency))

    def rates(self) -> list[ExchangeRate]:
        """Snapshot of the current rate table."""
        return list(self._rates.values())

    def _apply(self, amount: Decimal, from_currency: Currency, to_currency: Currency) -> Decimal:
        rate = self._rates.get((from_currency, to_currency))
        if rate is None:
            logger.warning(f"Exchange rate not found for {from_currency.value} to {to_currency.value}")
            self.misses.append(
                LookupMiss(
                    table="exchange_rates",
                    key=f"{from_currency.value}->{to_currency.value}",
                    fallback="unconverted amount",
                )
            )
            return amount
        return amount * rate.rate

    def convert(self, amount_usd: Decimal | float | int, target: Currency) -> Decimal:
        """Convert a USD amount to ``target``.

        Args:
            amount_usd: Non-negative amount in USD.
            target: Display currency.

        Returns:
            Converted amount, or the USD amount unchanged when no USD->target
            rate exists.
        """
        amount = _to_decimal(amount_usd)
        if target is Currency.USD:
            return amount
        return self._apply(amount, Currency.USD, target)

    def to_usd(self, amount: Decimal | float | int, source: Currency) -> Decimal:
        """Convert an amount quoted in ``source`` back to USD.

        Falls back to the unconverted amount when no source->USD rate exists.
        """
        value = _to_decimal(amount)
        if source is Currency.USD:
            return value
        return self._apply(value, source, Currency.USD)

    def format(self, amount_usd: Decimal | float | int, target: Currency) -> str:
        """Convert and render a USD amount, e.g. '$12.50' or '¥1875'."""
        return format_amount(self.convert(amount_usd, target), target)

    def refresh_rates(self, new_rates: Iterable[ExchangeRate]) -> int:
        """Upsert rates by (from, to); entries absent from the batch are kept.

        Returns:
            Number of entries written.
        """
        incoming = {rate.key: rate for rate in new_rates}
        if not incoming:
            return 0

        table = dict(self._rates)
        table.update(incoming)
        self._rates = table
        self.generation += 1

        logger.debug(f"Exchange rates refreshed: {len(incoming)} entries")
        return len(incoming)


class RateRefresher:
    """Periodically refreshes a converter from an exchange-rate API.

    The API is expected to answer with rates relative to USD:
    ``{"rates": {"CNY": 7.18, "EUR": 0.91, ...}}``. Both USD->X and the
    reciprocal X->USD entries are upserted.
    """

    def __init__(self, converter: CurrencyConverter, config: CurrencyConfig):
        self.converter = converter
        self.config = config
        self._task: asyncio.Task[None] | None = None

    async def fetch_rates(self, session: aiohttp.ClientSession) -> list[ExchangeRate]:
        """Fetch current rates from the API.

        Returns:
            Parsed rates, empty when the request or payload is unusable.
        """
        try:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            async with session.get(self.config.rates_api_url, timeout=timeout) as response:
                response.raise_for_status()
                payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Failed to fetch exchange rates: {e}")
            return []

        return self._parse_rates(payload)

    def _parse_rates(self, payload: object) -> list[ExchangeRate]:
        raw_rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(raw_rates, dict):
            logger.error("Exchange-rate response has no 'rates' mapping")
            return []

        now = datetime.now()
        parsed: list[ExchangeRate] = []
        for currency in Currency:
            if currency is Currency.USD or currency.value not in raw_rates:
                continue
            value = _to_decimal(raw_rates[currency.value])
            if value <= 0:
                logger.warning(f"Ignoring non-positive rate for {currency.value}: {value}")
                continue
            parsed.append(
                ExchangeRate(
                    from_currency=Currency.USD,
                    to_currency=currency,
                    rate=value,
                    updated_at=now,
                    source="api",
                )
            )
            parsed.append(
                ExchangeRate(
                    from_currency=currency,
                    to_currency=Currency.USD,
                    rate=(Decimal("1") / value).quantize(Decimal("0.000001"), ROUND_HALF_UP),
                    updated_at=now,
                    source="api",
                )
            )
        return parsed

    async def refresh_once(self, session: aiohttp.ClientSession) -> int:
        """Fetch and apply one batch; the table is untouched on failure."""
        rates = await self.fetch_rates(session)
        if not rates:
            logger.warning("Exchange-rate refresh produced no rates; keeping current table")
            return 0
        count = self.converter.refresh_rates(rates)
        logger.info(f"Exchange rates updated: {count} entries")
        return count

    async def _run(self) -> None:
        async with aiohttp.ClientSession() as session:
            while True:
                await self.refresh_once(session)
                await asyncio.sleep(self.config.refresh_interval_seconds)

    def start(self) -> None:
        """Start the background refresh loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Exchange-rate refresher started (every {self.config.refresh_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel the refresh loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Exchange-rate refresher stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


class CurrencyPreference:
    """The customer's chosen display currency, persisted as a plain string."""

    def __init__(self, store: KeyValueStore, key: str, default: Currency = Currency.USD):
        self.store = store
        self.key = key
        self.default = default

    def get(self) -> Currency:
        saved = self.store.get(self.key)
        if saved and is_valid_currency(saved):
            return Currency(saved.strip().upper())
        return self.default

    def set(self, currency: Currency | str) -> Currency:
        resolved = parse_currency(currency)
        self.store.set(self.key, resolved.value)
        return resolved

"""Import tariff estimation service.

Estimates the import duty and VAT a customer may owe at the destination,
driven entirely by the rule tables in tariffs.yml:
- Duty-free threshold per country
- VAT rate per category and country
- Customs duty rate per country (or region bucket) and category
- Flat processing fee per country

Clothing is charged VAT only. Other categories pay duty on the declared value
and VAT on value plus duty. Every table lookup falls back to a documented
default instead of raising; the fallbacks used are attached to the estimate.
"""

import logging
from decimal import Decimal, InvalidOperation

from ..config import TariffTables
from ..errors import CheckoutValidationError
from ..messages import (
    DEFAULT_TARIFF_NOTE,
    DOC_COMMERCIAL_INVOICE,
    DOC_CUSTOMS_DECLARATION,
    DOC_IMPORT_DECLARATION,
    DOC_STANDARD,
    DUTY_FREE_NOTE,
    ERROR_TARIFF_REQUIRED_FIELDS,
    ERROR_TARIFF_VALUE,
    TARIFF_DISCLAIMER,
    TARIFF_NOTES,
)
from ..models import Currency, LookupMiss, TariffEstimate

logger = logging.getLogger(__name__)

CLOTHING = "clothing"
ZERO = Decimal("0")


def _category_name(category: object) -> str:
    """Normalized category, clothing when empty. Non-string input is stringified."""
    if category is None:
        return CLOTHING
    return str(category).strip().lower() or CLOTHING


class TariffEstimator:
    """Compute duty-free eligibility, VAT, duty and ancillary requirements."""

    def __init__(self, tables: TariffTables):
        """Store the rule tables used for every estimate."""
        self.tables = tables

    def estimate(
        self,
        country: str | None,
        value: Decimal | float | int | str | None,
        category: str | None = CLOTHING,
        currency: Currency = Currency.USD,
        weight_kg: Decimal | float = Decimal("0.5"),
    ) -> TariffEstimate:
        """Estimate import taxes for an order.

        Args:
            country: ISO-2 destination country.
            value: Declared value, USD equivalent.
            category: Goods category, defaults to clothing.
            currency: Currency the value was quoted in, informational.
            weight_kg: Parcel weight, informational.

        Returns:
            TariffEstimate with rates, amounts, documents, fee and notes.

        Raises:
            CheckoutValidationError: If country or value is missing, or value <= 0.
        """
        country_code, declared_value = self._validate(country, value)
        category_name = _category_name(category)
        misses: list[LookupMiss] = []

        threshold = self.tables.duty_free_thresholds.get(country_code)
        is_duty_free = bool(threshold) and declared_value <= threshold

        vat_rate = duty_rate = vat_amount = duty_amount = ZERO
        if not is_duty_free:
            vat_rate = self.vat_rate(country_code, category_name, misses)
            if category_name == CLOTHING:
                vat_amount = declared_value * vat_rate
            else:
                duty_rate = self.duty_rate(country_code, category_name, misses)
                duty_amount = declared_value * duty_rate
                vat_amount = (declared_value + duty_amount) * vat_rate
        total_tariff = duty_amount + vat_amount

        estimate = TariffEstimate(
            country=country_code,
            declared_value=declared_value,
            currency=currency,
            category=category_name,
            weight_kg=Decimal(str(weight_kg)),
            is_duty_free=is_duty_free,
            duty_free_threshold=threshold,
            vat_rate=vat_rate,
            duty_rate=duty_rate,
            vat_amount=vat_amount,
            duty_amount=duty_amount,
            total_tariff=total_tariff,
            total_with_tariff=declared_value + total_tariff,
            documentation_required=self.documentation_required(country_code, declared_value),
            processing_fee=self.processing_fee(country_code, misses),
            notes=self.notes(country_code, is_duty_free),
            fallbacks=misses,
        )

        logger.info(
            f"Tariff estimate {country_code}/{category_name}: value {declared_value}, "
            f"duty-free={is_duty_free}, total tariff {total_tariff}"
        )
        return estimate

    def _validate(self, country: str | None, value: object) -> tuple[str, Decimal]:
        if not country or not str(country).strip() or value is None or value == "":
            raise CheckoutValidationError(ERROR_TARIFF_REQUIRED_FIELDS)

        try:
            declared_value = value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise CheckoutValidationError(ERROR_TARIFF_VALUE, field="value")

        if not declared_value.is_finite() or declared_value <= 0:
            raise CheckoutValidationError(ERROR_TARIFF_VALUE, field="value")

        return str(country).strip().upper(), declared_value

    def vat_rate(self, country: str, category: str, misses: list[LookupMiss]) -> Decimal:
        """VAT rate for a category and country with clothing/default fallbacks."""
        category_rates = self.tables.vat_rates.get(category)
        if category_rates is None:
            misses.append(
                LookupMiss(table="vat_rates", key=category, fallback=self.tables.fallback_category)
            )
            category_rates = self.tables.vat_rates.get(self.tables.fallback_category, {})

        rate = category_rates.get(country)
        # Zero-rated entries fall back to the default rate too.
        if not rate:
            misses.append(
                LookupMiss(
                    table="vat_rates",
                    key=f"{category}/{country}",
                    fallback=str(self.tables.default_vat_rate),
                )
            )
            logger.debug(f"No VAT rate for {country}/{category}, using default")
            return self.tables.default_vat_rate
        return rate

    def duty_rate(self, country: str, category: str, misses: list[LookupMiss]) -> Decimal:
        """Customs duty rate, using the region bucket for unknown countries."""
        region_rates = self.tables.duty_rates.get(country)
        if region_rates is None:
            misses.append(
                LookupMiss(
                    table="duty_rates", key=country, fallback=self.tables.fallback_duty_region
                )
            )
            region_rates = self.tables.duty_rates.get(self.tables.fallback_duty_region, {})

        rate = region_rates.get(category)
        if rate is None:
            misses.append(LookupMiss(table="duty_rates", key=f"{country}/{category}", fallback="0"))
            return ZERO
        return rate

    def documentation_required(self, country: str, value: Decimal) -> list[str]:
        """Customs documents needed for a shipment of ``value`` to ``country``."""
        above_invoice_threshold = value > self.tables.commercial_invoice_threshold
        requirements: list[str] = []

        if above_invoice_threshold:
            requirements.append(DOC_COMMERCIAL_INVOICE)
        if country in self.tables.customs_declaration_countries:
            requirements.append(DOC_CUSTOMS_DECLARATION)
        if country in self.tables.import_declaration_countries and above_invoice_threshold:
            requirements.append(DOC_IMPORT_DECLARATION)

        if not requirements:
            requirements.append(DOC_STANDARD)
        return requirements

    def processing_fee(self, country: str, misses: list[LookupMiss] | None = None) -> Decimal:
        fee = self.tables.processing_fees.get(country)
        if fee is None:
            if misses is not None:
                misses.append(
                    LookupMiss(
                        table="processing_fees",
                        key=country,
                        fallback=str(self.tables.default_processing_fee),
                    )
                )
            return self.tables.default_processing_fee
        return fee

    def notes(self, country: str, is_duty_free: bool) -> str:
        if is_duty_free:
            return DUTY_FREE_NOTE
        return TARIFF_NOTES.get(country, DEFAULT_TARIFF_NOTE)

    def describe(self, country: str = "US", category: str = CLOTHING) -> dict[str, object]:
        """Reference information about the rule tables for a country/category.

        Returns:
            Dictionary with thresholds, the VAT table for the category (or the
            fallback category), known categories and a disclaimer.
        """
        country_code = str(country or "US").strip().upper()
        category_name = _category_name(category)
        vat_table = self.tables.vat_rates.get(
            category_name, self.tables.vat_rates.get(self.tables.fallback_category, {})
        )
        return {
            "country": country_code,
            "category": category_name,
            "duty_free_threshold": self.tables.duty_free_thresholds.get(country_code),
            "duty_free_thresholds": dict(self.tables.duty_free_thresholds),
            "tariff_rates": dict(vat_table),
            "common_categories": list(self.tables.vat_rates),
            "notes": TARIFF_DISCLAIMER,
        }

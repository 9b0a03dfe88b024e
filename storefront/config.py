"""Configuration management for the storefront.

Handles all application configuration including environment variables, YAML
rule tables, and default settings. Provides structured configuration classes
for the different concerns of the application (pricing, currency, storage,
shipping, tariffs, server).
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Currency, ExchangeRate, Parcel, ShippingAddress

logger = logging.getLogger(__name__)


class PricingConfig(BaseSettings):
    """Checkout pricing parameters.

    Attributes:
        tax_rate: Flat sales tax applied to the subtotal (0.08 = 8%).
        free_shipping_threshold: Subtotal above which fallback shipping is free.
        fallback_shipping: Shipping charged when no carrier rate is selected.
    """

    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("50")
    fallback_shipping: Decimal = Decimal("9.99")


class CurrencyConfig(BaseSettings):
    """Currency conversion settings.

    Attributes:
        default_currency: Display currency used when no preference is stored.
        refresh_interval_seconds: Period of the background rate refresh.
        rates_api_url: Exchange-rate endpoint returning rates relative to USD.
        request_timeout: HTTP timeout for rate refreshes, in seconds.
    """

    model_config = SettingsConfigDict(populate_by_name=True)

    default_currency: Currency = Currency.USD
    refresh_interval_seconds: int = Field(default=300, validation_alias="RATES_REFRESH_INTERVAL")
    rates_api_url: str = Field(
        default="https://open.er-api.com/v6/latest/USD", validation_alias="RATES_API_URL"
    )
    request_timeout: int = 10


class StorageConfig(BaseSettings):
    """Key-value persistence for cart and currency preference.

    Attributes:
        backend: 'memory' or 'redis'.
        redis_url: Redis connection URL when backend is 'redis'.
        key_prefix: Namespace prepended to every stored key.
        cart_key: Key holding the serialized cart line items.
        currency_key: Key holding the preferred display currency.
    """

    model_config = SettingsConfigDict(populate_by_name=True)

    backend: str = Field(default="memory", validation_alias="STORAGE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    key_prefix: str = "storefront"
    cart_key: str = "crossborder-cart"
    currency_key: str = "preferred-currency"


class ShippingConfig(BaseSettings):
    """Shipping-rate provider settings.

    Attributes:
        api_url: Shipment creation endpoint of the rate provider.
        api_token: Provider API token; lookups fail fast without one.
        timeout: HTTP request timeout in seconds.
        max_rates: Number of best quotes returned to the caller.
        default_parcel: Parcel used when the caller does not supply one.
        from_address: Warehouse origin address.
    """

    model_config = SettingsConfigDict(populate_by_name=True)

    api_url: str = Field(default="https://api.goshippo.com/shipments/", validation_alias="SHIPPO_API_URL")
    api_token: str | None = Field(default=None, validation_alias="SHIPPO_API_KEY")
    timeout: int = 20
    max_rates: int = 5
    default_parcel: Parcel = Field(default_factory=Parcel)
    from_address: ShippingAddress = Field(
        default_factory=lambda: ShippingAddress(
            name="CrossBorder Tee Store Warehouse",
            street1="123 Commerce St",
            city="Los Angeles",
            state="CA",
            zip="90001",
            country="US",
            phone="+1-555-123-4567",
            email="warehouse@crossborder-tee-store.com",
        )
    )


class ServerConfig(BaseSettings):
    """HTTP API server settings."""

    model_config = SettingsConfigDict(populate_by_name=True)

    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


class TariffTables(BaseModel):
    """Rule tables consumed by the tariff estimator.

    Attributes:
        vat_rates: category -> country -> VAT rate.
        duty_rates: country (or region bucket) -> category -> duty rate.
        duty_free_thresholds: country -> duty-free declared value.
        processing_fees: country -> flat processing fee.
        default_vat_rate: VAT rate when the country has no entry.
        default_processing_fee: Fee for countries without an entry.
        commercial_invoice_threshold: Value above which invoices are required.
        fallback_category: Category whose VAT table stands in for unknown ones.
        fallback_duty_region: Duty bucket used for unrecognized countries.
        customs_declaration_countries: Countries always needing a declaration form.
        import_declaration_countries: Countries needing an import declaration
            above the commercial invoice threshold.
    """

    vat_rates: dict[str, dict[str, Decimal]] = Field(default_factory=dict)
    duty_rates: dict[str, dict[str, Decimal]] = Field(default_factory=dict)
    duty_free_thresholds: dict[str, Decimal] = Field(default_factory=dict)
    processing_fees: dict[str, Decimal] = Field(default_factory=dict)
    default_vat_rate: Decimal = Decimal("0.10")
    default_processing_fee: Decimal = Decimal("10")
    commercial_invoice_threshold: Decimal = Decimal("1000")
    fallback_category: str = "clothing"
    fallback_duty_region: str = "EU"
    customs_declaration_countries: list[str] = Field(default_factory=list)
    import_declaration_countries: list[str] = Field(default_factory=list)

    @classmethod
    def from_yaml_data(cls, data: dict[str, Any]) -> "TariffTables":
        """Build tables from the parsed contents of tariffs.yml."""
        documentation = data.get("documentation", {}) or {}
        fields: dict[str, Any] = {
            "vat_rates": _decimal_table(data.get("vat_rates", {})),
            "duty_rates": _decimal_table(data.get("duty_rates", {})),
            "duty_free_thresholds": _decimal_map(data.get("duty_free_thresholds", {})),
            "processing_fees": _decimal_map(data.get("processing_fees", {})),
            "customs_declaration_countries": documentation.get("customs_declaration_countries", []),
            "import_declaration_countries": documentation.get("import_declaration_countries", []),
        }
        for name in (
            "default_vat_rate",
            "default_processing_fee",
            "commercial_invoice_threshold",
        ):
            if data.get(name) is not None:
                fields[name] = Decimal(str(data[name]))
        for name in ("fallback_category", "fallback_duty_region"):
            if data.get(name):
                fields[name] = data[name]
        return cls(**fields)


def _decimal_map(raw: dict[str, Any] | None) -> dict[str, Decimal]:
    return {str(key): Decimal(str(value)) for key, value in (raw or {}).items()}


def _decimal_table(raw: dict[str, Any] | None) -> dict[str, dict[str, Decimal]]:
    return {str(key): _decimal_map(inner) for key, inner in (raw or {}).items()}


class Config:
    """Application configuration manager.

    Centralizes loading and management of all configuration sources including
    environment variables, YAML files, and default values. Provides typed
    access to configuration sections for different application components.
    """

    def __init__(self, config_dir: Path | None = None):
        """Initialize configuration manager.

        Args:
            config_dir: Path to configuration directory, defaults to storefront/config.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent / "config"

        self.config_dir = Path(config_dir)

        self.pricing = PricingConfig()
        self.currency = CurrencyConfig()
        self.storage = StorageConfig()
        self.shipping = ShippingConfig()
        self.server = ServerConfig()

        self.tariffs = self._load_tariff_tables()
        self.default_rates = self._load_default_rates()

    def _load_yaml(self, filename: str) -> dict[str, Any] | None:
        path = self.config_dir / filename
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return None

        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _load_tariff_tables(self) -> TariffTables:
        """Load tariff rule tables from tariffs.yml.

        Returns:
            Parsed tables, or empty tables with default fallbacks if the file
            is missing.
        """
        data = self._load_yaml("tariffs.yml")
        if data is None:
            return TariffTables()
        return TariffTables.from_yaml_data(data)

    def _load_default_rates(self) -> list[ExchangeRate]:
        """Load seed exchange rates from rates.yml."""
        data = self._load_yaml("rates.yml")
        if data is None:
            return []

        return [
            ExchangeRate(
                from_currency=entry["from"],
                to_currency=entry["to"],
                rate=Decimal(str(entry["rate"])),
                source="default",
            )
            for entry in data.get("rates", [])
        ]


# Global configuration instance
config = Config()

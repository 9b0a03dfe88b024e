"""Dependency-injection container.

This module defines a dependency-injection (DI) container that wires together
the application's components. Process-wide services (rate table, tariff
rules, shipping client, rate refresher) are singletons; the session store and
checkout sessions are built by factories, one per customer session:

    container = Container()
    session = container.checkout_session(store__session_id="a1b2c3")
"""

from dependency_injector import containers, providers

from storefront.config import Config, config
from storefront.services.currency import CurrencyConverter, RateRefresher
from storefront.services.shipping import ShippingRateClient
from storefront.services.storage import KeyValueStore, create_store
from storefront.services.tariff import TariffEstimator
from storefront.session import CheckoutSession


def build_session_store(app_config: Config, session_id: str = "default") -> KeyValueStore:
    return create_store(app_config.storage, session_id)


def build_converter(app_config: Config) -> CurrencyConverter:
    return CurrencyConverter(app_config.default_rates)


def build_rate_refresher(converter: CurrencyConverter, app_config: Config) -> RateRefresher:
    return RateRefresher(converter, app_config.currency)


def build_tariff_estimator(app_config: Config) -> TariffEstimator:
    return TariffEstimator(app_config.tariffs)


def build_shipping_client(app_config: Config) -> ShippingRateClient:
    return ShippingRateClient(app_config.shipping)


class Container(containers.DeclarativeContainer):
    """DI container for the application.

    This container holds the wiring for all the application's components.
    """

    app_config = providers.Object(config)

    # Services
    currency_converter = providers.Singleton(build_converter, app_config)
    rate_refresher = providers.Singleton(build_rate_refresher, currency_converter, app_config)
    tariff_estimator = providers.Singleton(build_tariff_estimator, app_config)
    shipping_client = providers.Singleton(build_shipping_client, app_config)

    # Per-customer state
    store = providers.Factory(build_session_store, app_config)
    checkout_session = providers.Factory(
        CheckoutSession,
        store=store,
        converter=currency_converter,
        tariff_estimator=tariff_estimator,
        config=app_config,
        shipping_client=shipping_client,
    )

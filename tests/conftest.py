"""Shared fixtures for storefront tests.

Provides the packaged configuration, fresh converters, estimators, stores and
cart ledgers, sample cart items, and mocked aiohttp sessions.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from storefront.config import Config
from storefront.services.cart import CartLedger
from storefront.services.currency import CurrencyConverter
from storefront.services.storage import InMemoryStore
from storefront.services.tariff import TariffEstimator


@pytest.fixture(autouse=True)
def test_environment(monkeypatch):
    """Pin environment-driven settings for every test."""
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("SHIPPO_API_KEY", raising=False)
    monkeypatch.delenv("RATES_API_URL", raising=False)


@pytest.fixture
def app_config():
    """Configuration loaded from the packaged YAML tables."""
    return Config()


@pytest.fixture
def converter(app_config):
    """Converter seeded with the default exchange rates."""
    return CurrencyConverter(app_config.default_rates)


@pytest.fixture
def estimator(app_config):
    """Tariff estimator over the packaged rule tables."""
    return TariffEstimator(app_config.tariffs)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger(store, app_config):
    """Empty cart ledger backed by an in-memory store."""
    return CartLedger(store, app_config.storage.cart_key, app_config.pricing)


@pytest.fixture
def tee_item():
    """A T-shirt line as submitted by the storefront."""
    return {
        "product_id": "P1",
        "name": "Classic Tee",
        "unit_price_usd": Decimal("29.99"),
        "quantity": 2,
        "image": "/images/tee.jpg",
        "sku": "TEE-RED-M",
        "size": "M",
        "color": "red",
    }


def make_item(**overrides):
    """Build cart item data with sensible defaults."""
    item = {
        "product_id": "P1",
        "name": "Classic Tee",
        "unit_price_usd": Decimal("20"),
        "quantity": 1,
        "image": "/images/tee.jpg",
        "sku": "TEE-1",
        "size": "M",
        "color": "red",
    }
    item.update(overrides)
    return item


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def mock_http_session():
    """Mock aiohttp.ClientSession whose GET/POST answer with ``response``."""
    session = MagicMock(spec=aiohttp.ClientSession)

    response = MagicMock()
    response.status = 200
    response.raise_for_status = MagicMock()
    response.json = AsyncMock(return_value={})

    session.get.return_value.__aenter__.return_value = response
    session.post.return_value.__aenter__.return_value = response
    session.response = response

    return session

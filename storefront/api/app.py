"""aiohttp application factory.

Builds the web application around a DI container and ties the lifetime of the
shared HTTP client session and the exchange-rate refresher to the app.
"""

import logging

import aiohttp
from aiohttp import web

from ..core.container import Container
from .routes import CONTAINER_KEY, HTTP_SESSION_KEY, routes

logger = logging.getLogger(__name__)


def create_app(container: Container | None = None, refresh_rates: bool = True) -> web.Application:
    """Create the storefront API application.

    Args:
        container: DI container, a fresh one is built when omitted.
        refresh_rates: Whether to run the background exchange-rate refresher.

    Returns:
        Configured aiohttp application.
    """
    app = web.Application()
    app[CONTAINER_KEY] = container or Container()
    app.add_routes(routes)

    async def on_startup(app: web.Application) -> None:
        app[HTTP_SESSION_KEY] = aiohttp.ClientSession()
        if refresh_rates:
            app[CONTAINER_KEY].rate_refresher().start()

    async def on_cleanup(app: web.Application) -> None:
        try:
            await app[CONTAINER_KEY].rate_refresher().stop()
        finally:
            await app[HTTP_SESSION_KEY].close()
        logger.info("Storefront API resources released")

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app

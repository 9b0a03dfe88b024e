"""Application entry point.

Configures logging, builds the DI container and serves the storefront HTTP
API. The exchange-rate refresher runs in the background for the lifetime of
the server.
"""

import logging

from aiohttp import web

from .api import create_app
from .core.container import Container

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the storefront API server."""
    container = Container()
    server_config = container.app_config().server

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, server_config.log_level.upper(), logging.INFO),
    )

    app = create_app(container)
    logger.info(f"Starting storefront API on {server_config.host}:{server_config.port}")
    web.run_app(app, host=server_config.host, port=server_config.port)


if __name__ == "__main__":
    main()

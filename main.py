"""
Eventbrite proxy entry point.
Serves cached, ticket-enriched monthly event listings over HTTP.
"""

import sys

import uvicorn
from loguru import logger

from eventproxy.api import create_app
from eventproxy.settings import global_settings


def main() -> None:
    """Configure logging and run the HTTP server."""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level.upper())

    logger.info(
        f"Starting Eventbrite proxy on http://{global_settings.host}:{global_settings.port}"
    )

    # Uvicorn drains in-flight requests on SIGINT/SIGTERM before the lifespan
    # shutdown runs
    uvicorn.run(
        create_app(global_settings),
        host=global_settings.host,
        port=global_settings.port,
        timeout_graceful_shutdown=int(global_settings.shutdown_timeout_seconds),
        log_level=global_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

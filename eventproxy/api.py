"""FastAPI app exposing the cached Eventbrite proxy to the frontend."""

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from eventproxy.datasource.eventbrite import EventbriteClient
from eventproxy.exceptions import register_error_handlers
from eventproxy.services.cache import TTLCache
from eventproxy.services.enrichment import EnrichmentAggregator
from eventproxy.services.events import EventQueryService
from eventproxy.services.fetcher import RetryingFetcher
from eventproxy.services.singleflight import SingleFlight
from eventproxy.settings import Settings, global_settings


def build_service(
    settings: Settings, fetcher: RetryingFetcher | None = None
) -> EventQueryService:
    """Wire the query service from settings."""
    fetcher = fetcher or RetryingFetcher(default_timeout=settings.events_timeout)
    source = EventbriteClient.from_settings(settings, fetcher)
    cache = TTLCache(
        default_ttl=timedelta(seconds=settings.cache_ttl_seconds),
        sweep_interval=timedelta(seconds=settings.cache_sweep_interval_seconds),
        debug=settings.debug,
    )
    aggregator = EnrichmentAggregator(
        source,
        default_currency=settings.default_currency,
        max_concurrency=settings.enrichment_concurrency,
    )
    return EventQueryService(
        source=source,
        cache=cache,
        aggregator=aggregator,
        single_flight=SingleFlight(debug=settings.debug) if settings.single_flight else None,
    )


def create_app(
    settings: Settings | None = None,
    service: EventQueryService | None = None,
) -> FastAPI:
    """
    Create the proxy app.

    Args:
        settings: Configuration (defaults to the environment)
        service: Pre-built query service, mainly for tests

    Returns:
        FastAPI app
    """
    settings = settings or global_settings
    service = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not service.source.is_configured():
            logger.warning("Eventbrite token or organization id is not configured")
        service.cache.start_sweeper()
        logger.info("Eventbrite proxy started")
        try:
            yield
        finally:
            service.cache.stop_sweeper()
            if service.single_flight is not None:
                await service.single_flight.drain(settings.shutdown_timeout_seconds)
            await service.source.fetcher.close()
            logger.info("Eventbrite proxy stopped")

    app = FastAPI(title="Eventbrite Proxy", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "Eventbrite proxy running"

    @app.get("/api/events")
    async def get_events(
        request: Request, month: str | None = None, year: str | None = None
    ):
        result = await request.app.state.service.get_events(month, year)
        return result.to_dict()

    @app.delete("/api/cache")
    @app.post("/api/cache/clear")
    async def clear_cache(request: Request):
        cleared = await request.app.state.service.clear_cache()
        return {"clearedCount": cleared}

    @app.get("/health")
    async def health(request: Request):
        status = request.app.state.service.get_status()
        cache = status["cache"]
        return {
            "status": "ok",
            "configured": status["configured"],
            "cache": {
                "size": cache["size"],
                "keys": cache["keys"],
                "ttlSeconds": cache["ttl_seconds"],
                "sweepIntervalSeconds": cache["sweep_interval_seconds"],
            },
            "cacheStats": status["cache_stats"],
            "inFlight": status["in_flight"],
        }

    return app

"""
Service layer - caching, retries and enrichment for the Eventbrite proxy.

Provides:
- TTLCache: In-memory cache with lazy expiry and a periodic sweep
- RetryingFetcher: HTTP GET with classified, bounded exponential backoff
- EnrichmentAggregator: Concurrent per-event ticket lookups
- EventQueryService: Monthly event listing tying the above together
- SingleFlight: Coalesces concurrent refreshes of the same month
"""

from eventproxy.services.errors import (
    ServiceError,
    ValidationError,
    ConfigurationError,
    FetchError,
    RequestTimeoutError,
    AuthenticationError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamError,
    EnrichmentError,
)
from eventproxy.services.retry import (
    ErrorKind,
    RetryPolicy,
    classify_error,
    retry_with_backoff,
)
from eventproxy.services.cache import TTLCache, CacheEntry
from eventproxy.services.fetcher import RetryingFetcher
from eventproxy.services.singleflight import SingleFlight
from eventproxy.services.enrichment import EnrichmentAggregator
from eventproxy.services.events import EventQueryService, cache_key

__all__ = [
    # Errors
    "ServiceError",
    "ValidationError",
    "ConfigurationError",
    "FetchError",
    "RequestTimeoutError",
    "AuthenticationError",
    "RateLimitError",
    "ServiceUnavailableError",
    "UpstreamError",
    "EnrichmentError",
    # Retry
    "ErrorKind",
    "RetryPolicy",
    "classify_error",
    "retry_with_backoff",
    # Cache
    "TTLCache",
    "CacheEntry",
    # Fetching and enrichment
    "RetryingFetcher",
    "SingleFlight",
    "EnrichmentAggregator",
    # Query
    "EventQueryService",
    "cache_key",
]

"""
EventQueryService - monthly event listing with caching and enrichment.

Per request:
    VALIDATING -> CACHE_CHECK -> CACHE_HIT
                              -> FETCH_PRIMARY -> FILTER -> ENRICH -> STORE_CACHE
Any failure while validating or fetching ends the request with a classified
error; enrichment failures only degrade individual events.
"""

import calendar
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from dateutil import parser as date_parser
from loguru import logger

from eventproxy.models import DateRange, EnrichedEvent, Event, EventsResult
from eventproxy.services.cache import TTLCache
from eventproxy.services.enrichment import EnrichmentAggregator
from eventproxy.services.errors import ValidationError
from eventproxy.services.singleflight import SingleFlight

if TYPE_CHECKING:
    from eventproxy.datasource.eventbrite import EventbriteClient

MIN_YEAR = 2000
MAX_YEAR = 2100
CACHE_KEY_PREFIX = "events"

# ASCII decimal integers only; int() alone would accept "1_2" and non-ASCII digits
_INTEGER = re.compile(r"[+-]?[0-9]+")


def cache_key(year: int, month: int) -> str:
    """Canonical cache key for one calendar month."""
    return f"{CACHE_KEY_PREFIX}_{year}_{month}"


def _parse_int(raw: Any, field: str, low: int, high: int) -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(field, f"Missing required parameter '{field}'")
    if isinstance(raw, bool):
        raise ValidationError(field, f"'{field}' must be an integer")
    text = str(raw).strip()
    if not _INTEGER.fullmatch(text):
        raise ValidationError(field, f"'{field}' must be an integer, got {raw!r}")
    value = int(text)
    if not low <= value <= high:
        raise ValidationError(
            field, f"'{field}' must be between {low} and {high}, got {value}"
        )
    return value


def validate_month_year(month_raw: Any, year_raw: Any) -> tuple[int, int]:
    """
    Parse raw query parameters.

    Returns:
        (year, month)

    Raises:
        ValidationError: Missing, non-integer or out-of-range value
    """
    month = _parse_int(month_raw, "month", 1, 12)
    year = _parse_int(year_raw, "year", MIN_YEAR, MAX_YEAR)
    return year, month


def month_date_range(year: int, month: int) -> DateRange:
    """First instant of the month to 23:59:59 on its last day, UTC."""
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(
        start_utc=datetime(year, month, 1, tzinfo=timezone.utc),
        end_utc=datetime(year, month, last_day, 23, 59, 59, tzinfo=timezone.utc),
    )


def event_start_utc(event: Event) -> datetime | None:
    """UTC start of an event, or None when missing or unparseable."""
    start = event.get("start")
    raw = start.get("utc") if isinstance(start, dict) else start
    if not raw or not isinstance(raw, str):
        return None

    try:
        moment = date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        return None

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def filter_events_to_month(events: list[Event], year: int, month: int) -> list[Event]:
    """Keep events whose UTC start falls in the given year and month."""
    kept = []
    for event in events:
        start = event_start_utc(event)
        if start is None:
            logger.debug(f"Dropping event {event.get('id')} without a start time")
            continue
        if start.year == year and start.month == month:
            kept.append(event)
    return kept


class EventQueryService:
    """
    Serves enriched monthly event lists from cache or upstream.

    The cache instance is injected and owned by the caller (the app
    lifespan), so tests can use a fresh cache per case.
    """

    def __init__(
        self,
        source: "EventbriteClient",
        cache: TTLCache,
        aggregator: EnrichmentAggregator,
        ttl: timedelta | None = None,
        single_flight: SingleFlight | None = None,
    ):
        self.source = source
        self.cache = cache
        self.aggregator = aggregator
        self.ttl = ttl or cache.default_ttl
        self.single_flight = single_flight

    async def get_events(self, month_raw: Any, year_raw: Any) -> EventsResult:
        """
        Enriched events for one month.

        Raises:
            ValidationError: Bad month/year, before any I/O
            ConfigurationError: Upstream credentials missing
            FetchError: Primary upstream query failed
        """
        year, month = validate_month_year(month_raw, year_raw)
        date_range = month_date_range(year, month)
        key = cache_key(year, month)

        entry = await self.cache.get(key)
        if entry is not None:
            now = self.cache.now()
            logger.info(f"Cache hit for {key}")
            return EventsResult(
                data=entry.payload,
                date_range=date_range,
                from_cache=True,
                cache_age_seconds=int(entry.age_seconds(now)),
                expires_in_seconds=int(entry.ttl_remaining_seconds(now)),
            )

        logger.info(f"Cache miss for {key}, fetching from upstream")
        self.source.ensure_configured()

        if self.single_flight is not None:
            data = await self.single_flight.run(
                key, lambda: self._refresh(key, date_range)
            )
        else:
            data = await self._refresh(key, date_range)

        return EventsResult(
            data=data,
            date_range=date_range,
            from_cache=False,
            cache_age_seconds=0,
            expires_in_seconds=int(self.ttl.total_seconds()),
        )

    async def _refresh(self, key: str, date_range: DateRange) -> list[EnrichedEvent]:
        year, month = date_range.start_utc.year, date_range.start_utc.month
        events = await self.source.fetch_events(until=date_range.end_utc)

        in_month = filter_events_to_month(events, year, month)
        logger.info(
            f"{len(in_month)} of {len(events)} upstream events fall in {year}-{month:02d}"
        )

        enriched = await self.aggregator.enrich(in_month)
        await self.cache.put(key, enriched, self.ttl)
        return enriched

    async def clear_cache(self) -> int:
        """Drop every cached month. Returns the number of entries removed."""
        return await self.cache.clear()

    def get_status(self) -> dict[str, Any]:
        """Read-only service status for health checks."""
        return {
            "cache": self.cache.status(),
            "cache_stats": self.cache.get_stats().to_dict(),
            "in_flight": (
                self.single_flight.get_in_flight_keys() if self.single_flight else []
            ),
            "single_flight": (
                self.single_flight.get_stats().to_dict() if self.single_flight else None
            ),
            "configured": self.source.is_configured(),
        }

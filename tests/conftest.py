"""Pytest configuration and shared fixtures."""

import re
from datetime import datetime, timedelta
from typing import Any

import httpx
import pytest

from eventproxy.datasource.eventbrite import EventbriteClient
from eventproxy.services.cache import TTLCache
from eventproxy.services.enrichment import EnrichmentAggregator
from eventproxy.services.events import EventQueryService
from eventproxy.services.fetcher import RetryingFetcher
from eventproxy.services.singleflight import SingleFlight

BASE_URL = "https://eventbrite.test/v3"
ORG_ID = "org-42"

_TICKET_PATH = re.compile(r"/events/([^/]+)/ticket_classes/$")


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 2, 10, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeEventbriteAPI:
    """
    httpx.MockTransport handler serving the two Eventbrite endpoints.

    ``ticket_classes`` maps event ids to either a list of ticket classes or
    an HTTP status code to answer with.
    """

    def __init__(self):
        self.events: list[dict[str, Any]] = []
        self.next_page: list[dict[str, Any]] | None = None
        self.events_status: int | None = None
        self.events_headers: dict[str, str] = {}
        self.ticket_classes: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith(f"/organizations/{ORG_ID}/events/"):
            if self.events_status is not None:
                return httpx.Response(
                    self.events_status,
                    json={"error": "upstream"},
                    headers=self.events_headers,
                )
            if "continuation" in request.url.params:
                return httpx.Response(
                    200,
                    json={"events": self.next_page or [], "pagination": {}},
                )
            pagination = {"has_more_items": False}
            if self.next_page is not None:
                pagination = {"has_more_items": True, "continuation": "page-2"}
            return httpx.Response(
                200, json={"events": self.events, "pagination": pagination}
            )

        match = _TICKET_PATH.search(path)
        if match:
            value = self.ticket_classes.get(match.group(1), [])
            if isinstance(value, int):
                return httpx.Response(value, json={"error": "upstream"})
            return httpx.Response(200, json={"ticket_classes": value})

        return httpx.Response(404, json={"error": "not found"})

    @property
    def event_list_calls(self) -> int:
        return sum(1 for r in self.requests if "/organizations/" in r.url.path)

    def ticket_calls(self, event_id: str) -> int:
        suffix = f"/events/{event_id}/ticket_classes/"
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))


def make_event(event_id: str, start_utc: str | None, **extra: Any) -> dict[str, Any]:
    event: dict[str, Any] = {"id": event_id, "name": {"text": f"Event {event_id}"}}
    if start_utc is not None:
        event["start"] = {"utc": start_utc, "timezone": "America/Mexico_City"}
    event.update(extra)
    return event


def make_ticket_class(**overrides: Any) -> dict[str, Any]:
    ticket_class = {
        "id": "tc-1",
        "name": "General",
        "hidden": False,
        "on_sale_status": "AVAILABLE",
        "free": False,
        "cost": {"display": "$162.17 MXN", "value": 16217, "currency": "MXN"},
        "quantity_total": 100,
        "quantity_sold": 40,
    }
    ticket_class.update(overrides)
    return ticket_class


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def api() -> FakeEventbriteAPI:
    return FakeEventbriteAPI()


@pytest.fixture
def fetcher(api: FakeEventbriteAPI, sleep: RecordingSleep) -> RetryingFetcher:
    return RetryingFetcher(transport=httpx.MockTransport(api.handler), sleep=sleep)


@pytest.fixture
def source(fetcher: RetryingFetcher) -> EventbriteClient:
    return EventbriteClient(
        token="test-token",
        organization_id=ORG_ID,
        fetcher=fetcher,
        base_url=BASE_URL,
    )


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(default_ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def aggregator(source: EventbriteClient) -> EnrichmentAggregator:
    return EnrichmentAggregator(source, default_currency="MXN")


@pytest.fixture
def service(
    source: EventbriteClient, cache: TTLCache, aggregator: EnrichmentAggregator
) -> EventQueryService:
    return EventQueryService(
        source=source,
        cache=cache,
        aggregator=aggregator,
        single_flight=SingleFlight(),
    )

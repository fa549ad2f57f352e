"""
Eventbrite API data source.

API Documentation: https://www.eventbrite.com/platform/api
Authentication: private OAuth token sent as a bearer token.
"""

from datetime import datetime
from typing import Any

from loguru import logger

from eventproxy.services.errors import ConfigurationError, UpstreamError
from eventproxy.services.events import event_start_utc
from eventproxy.services.fetcher import RetryingFetcher
from eventproxy.services.retry import RetryPolicy
from eventproxy.settings import Settings


class EventbriteClient:
    """
    Eventbrite API client for an organization's events and their tickets.

    Two endpoints are used:
    - organization events (primary query, current and future, ascending)
    - ticket classes of one event (enrichment)
    """

    DEFAULT_BASE_URL = "https://www.eventbriteapi.com/v3"
    SERVICE_ID = "eventbrite"

    def __init__(
        self,
        token: str,
        organization_id: str,
        fetcher: RetryingFetcher,
        base_url: str = DEFAULT_BASE_URL,
        events_policy: RetryPolicy | None = None,
        tickets_policy: RetryPolicy | None = None,
        max_pages: int = 5,
    ):
        self.token = token
        self.organization_id = organization_id
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.events_policy = events_policy or RetryPolicy(
            max_attempts=3, initial_delay=1.0, timeout=20.0
        )
        self.tickets_policy = tickets_policy or RetryPolicy(
            max_attempts=2, initial_delay=0.5, timeout=10.0
        )
        self.max_pages = max(1, max_pages)

    @classmethod
    def from_settings(
        cls, settings: Settings, fetcher: RetryingFetcher
    ) -> "EventbriteClient":
        return cls(
            token=settings.eventbrite_token,
            organization_id=settings.eventbrite_organization_id,
            fetcher=fetcher,
            base_url=settings.eventbrite_base_url,
            events_policy=RetryPolicy(
                max_attempts=settings.events_max_retries,
                initial_delay=settings.events_initial_delay,
                timeout=settings.events_timeout,
            ),
            tickets_policy=RetryPolicy(
                max_attempts=settings.tickets_max_retries,
                initial_delay=settings.tickets_initial_delay,
                timeout=settings.tickets_timeout,
            ),
            max_pages=settings.events_max_pages,
        )

    def is_configured(self) -> bool:
        return bool(self.token and self.organization_id)

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when the token or organization is missing."""
        if not self.token:
            raise ConfigurationError(
                "EVENTBRITE_TOKEN is not set", service_id=self.SERVICE_ID
            )
        if not self.organization_id:
            raise ConfigurationError(
                "EVENTBRITE_ORGANIZATION_ID is not set", service_id=self.SERVICE_ID
            )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def fetch_events(
        self, until: datetime | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch live current and future events, ordered by start time.

        Follows continuation pages up to ``max_pages``. With ``until``, paging
        stops once a page ends with an event starting after that instant.

        Returns:
            Raw event objects

        Raises:
            ConfigurationError: Token or organization missing
            FetchError: Upstream failure after retries
        """
        self.ensure_configured()

        url = f"{self.base_url}/organizations/{self.organization_id}/events/"
        params: dict[str, Any] = {
            "order_by": "start_asc",
            "time_filter": "current_future",
            "status": "live",
            "expand": "ticket_availability",
        }

        events: list[dict[str, Any]] = []
        for page in range(1, self.max_pages + 1):
            data = await self.fetcher.fetch(
                url,
                params=params,
                headers=self._headers,
                policy=self.events_policy,
                service_id=self.SERVICE_ID,
            )

            page_events = data.get("events")
            if page_events is None:
                page_events = []
            if not isinstance(page_events, list):
                raise UpstreamError(
                    "Eventbrite events response has no event list",
                    service_id=self.SERVICE_ID,
                )
            events.extend(page_events)

            if until is not None and _ends_after(page_events, until):
                logger.debug(f"Page {page} reaches past {until.isoformat()}, stop paging")
                break

            pagination = data.get("pagination") or {}
            continuation = pagination.get("continuation")
            if not pagination.get("has_more_items") or not continuation:
                break
            if page == self.max_pages:
                logger.warning(
                    f"Stopped paging Eventbrite events after {page} pages"
                )
                break
            params = {**params, "continuation": continuation}

        logger.info(f"Fetched {len(events)} events from Eventbrite")
        return events

    async def fetch_ticket_classes(self, event_id: str) -> list[dict[str, Any]]:
        """
        Fetch ticket classes for one event.

        Raises:
            FetchError: Upstream failure after retries
            UpstreamError: Response without a ticket class list
        """
        self.ensure_configured()

        data = await self.fetcher.fetch(
            f"{self.base_url}/events/{event_id}/ticket_classes/",
            headers=self._headers,
            policy=self.tickets_policy,
            service_id=self.SERVICE_ID,
        )

        ticket_classes = data.get("ticket_classes")
        if not isinstance(ticket_classes, list):
            raise UpstreamError(
                f"Ticket classes response for event {event_id} has no list",
                service_id=self.SERVICE_ID,
            )
        return ticket_classes


def _ends_after(page_events: list[dict[str, Any]], until: datetime) -> bool:
    """Whether the last dated event of an ascending page starts after ``until``."""
    for event in reversed(page_events):
        if not isinstance(event, dict):
            continue
        start = event_start_utc(event)
        if start is not None:
            return start > until
    return False

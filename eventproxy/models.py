"""
Data types shared by the query service, the enrichment layer and the API.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

# Upstream events are passed through as decoded JSON objects
Event = dict[str, Any]
EnrichedEvent = dict[str, Any]


class TicketInfo(BaseModel):
    """Pricing and availability attached to an event as ``ticket_info``.

    All numeric fields set to None together with ``unavailable_reason`` means
    the ticket lookup for that event failed.
    """

    base_price: float | None = None
    currency: str
    available_count: int | None = None
    total_count: int | None = None
    is_free: bool | None = None
    unavailable_reason: str | None = None

    @classmethod
    def unavailable(cls, currency: str, reason: str) -> "TicketInfo":
        return cls(currency=currency, unavailable_reason=reason)

    @classmethod
    def no_tickets(cls, currency: str) -> "TicketInfo":
        """Event without any ticket class."""
        return cls(
            base_price=0,
            currency=currency,
            available_count=0,
            total_count=0,
            is_free=True,
        )


@dataclass(frozen=True)
class DateRange:
    """First to last instant of a calendar month, UTC, inclusive."""

    start_utc: datetime
    end_utc: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "start": self.start_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "end": self.end_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }


@dataclass
class EventsResult:
    """Events for one month plus cache metadata."""

    data: list[EnrichedEvent]
    date_range: DateRange
    from_cache: bool = False
    cache_age_seconds: int | None = None
    expires_in_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Response body for the frontend."""
        return {
            "data": self.data,
            "fromCache": self.from_cache,
            "cacheAgeSeconds": self.cache_age_seconds,
            "expiresInSeconds": self.expires_in_seconds,
            "range": self.date_range.to_dict(),
        }

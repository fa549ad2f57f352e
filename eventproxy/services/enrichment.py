"""
EnrichmentAggregator - attaches ticket pricing and availability to events.

Ticket classes of every event are fetched concurrently. A failed lookup only
degrades that event's ``ticket_info``; the batch always comes back complete
and in input order.
"""

import asyncio
import re
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from loguru import logger

from eventproxy.models import EnrichedEvent, Event, TicketInfo
from eventproxy.services.errors import EnrichmentError, FetchError

if TYPE_CHECKING:
    from eventproxy.datasource.eventbrite import EventbriteClient

ON_SALE_STATUS = "AVAILABLE"

_NON_NUMERIC = re.compile(r"[^\d.]")
_CURRENCY_CODE = re.compile(r"\b([A-Z]{3})\b")


def parse_display_price(display: Any) -> Decimal | None:
    """
    Parse a formatted price such as ``"$1,162.17 MXN"``.

    Returns None for decimal-comma formats (``"1.234,56 EUR"``, ``"12,50"``)
    so the minor-unit value is used instead.
    """
    if display is None:
        return None
    text = str(display)
    if text.rfind(",") > text.rfind("."):
        return None
    cleaned = _NON_NUMERIC.sub("", text).strip(".")
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def _cost(ticket_class: dict[str, Any]) -> dict[str, Any]:
    cost = ticket_class.get("cost")
    if isinstance(cost, dict):
        return cost
    if isinstance(cost, str):
        return {"display": cost}
    return {}


def resolve_price(ticket_class: dict[str, Any]) -> Decimal | None:
    """
    Price of one ticket class in major units.

    Free classes cost 0 whatever their cost fields say. Otherwise the display
    string wins, then the minor-unit ``value`` divided by 100.
    """
    if ticket_class.get("free"):
        return Decimal(0)

    cost = _cost(ticket_class)
    price = parse_display_price(cost.get("display"))
    if price is not None:
        return price

    value = cost.get("value")
    if value is None:
        return None
    try:
        return Decimal(str(value)) / 100
    except InvalidOperation:
        return None


def resolve_currency(ticket_class: dict[str, Any], default: str) -> str:
    cost = _cost(ticket_class)
    if cost.get("currency"):
        return str(cost["currency"])
    match = _CURRENCY_CODE.search(str(cost.get("display") or ""))
    if match:
        return match.group(1)
    return default


def _quantity(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _remaining(ticket_class: dict[str, Any]) -> int:
    total = _quantity(ticket_class.get("quantity_total"))
    sold = _quantity(ticket_class.get("quantity_sold"))
    return max(0, total - sold)


def derive_ticket_info(
    ticket_classes: list[dict[str, Any]], default_currency: str
) -> TicketInfo:
    """
    Summarize an event's ticket classes.

    Price comes from the cheapest on-sale visible class, falling back to all
    visible classes when none is on sale (and to all classes when none is
    visible). Availability counts the on-sale classes, or every class when
    that fallback left nothing available.
    """
    if not ticket_classes:
        return TicketInfo.no_tickets(default_currency)

    visible = [tc for tc in ticket_classes if not tc.get("hidden")]
    if not visible:
        visible = list(ticket_classes)

    on_sale = [tc for tc in visible if tc.get("on_sale_status") == ON_SALE_STATUS]
    used_fallback = not on_sale
    price_pool = on_sale or visible

    priced = sorted(
        ((resolve_price(tc), tc) for tc in price_pool),
        # Unpriced classes sort last
        key=lambda item: (item[0] is None, item[0] if item[0] is not None else 0),
    )
    cheapest_price, cheapest = priced[0]

    available = sum(_remaining(tc) for tc in on_sale)
    if available == 0 and used_fallback:
        available = sum(_remaining(tc) for tc in ticket_classes)

    return TicketInfo(
        base_price=float(cheapest_price) if cheapest_price is not None else None,
        currency=resolve_currency(cheapest, default_currency),
        available_count=available,
        total_count=sum(_quantity(tc.get("quantity_total")) for tc in ticket_classes),
        is_free=bool(cheapest.get("free")) or cheapest_price == 0,
    )


class EnrichmentAggregator:
    """
    Fan-out/fan-in ticket lookups for a batch of events.

    Usage:
        aggregator = EnrichmentAggregator(eventbrite_client, default_currency="MXN")
        enriched = await aggregator.enrich(events)
    """

    LOOKUP_FAILED = "ticket_lookup_failed"
    INVALID_TICKET_DATA = "invalid_ticket_data"
    MISSING_EVENT_ID = "missing_event_id"
    UNEXPECTED_ERROR = "enrichment_error"

    def __init__(
        self,
        source: "EventbriteClient",
        default_currency: str = "MXN",
        max_concurrency: int = 10,
    ):
        self.source = source
        self.default_currency = default_currency
        self.max_concurrency = max(1, max_concurrency)

    async def enrich(self, events: list[Event]) -> list[EnrichedEvent]:
        """
        Attach ``ticket_info`` to every event.

        Never raises for individual lookups; returns one element per input
        element, in the same order. Input events are not modified.
        """
        if not events:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(event: Event) -> EnrichedEvent:
            async with semaphore:
                return await self._enrich_one(event)

        results = await asyncio.gather(
            *(bounded(event) for event in events), return_exceptions=True
        )

        enriched: list[EnrichedEvent] = []
        for event, result in zip(events, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Unexpected error enriching event {event.get('id')}: {result!r}"
                )
                result = self._attach(
                    event,
                    TicketInfo.unavailable(self.default_currency, self.UNEXPECTED_ERROR),
                )
            enriched.append(result)

        degraded = sum(1 for e in enriched if e["ticket_info"]["unavailable_reason"])
        logger.info(
            f"Enriched {len(enriched)} events ({degraded} without ticket data)"
        )
        return enriched

    async def _enrich_one(self, event: Event) -> EnrichedEvent:
        try:
            info = await self.lookup_ticket_info(event)
        except EnrichmentError as e:
            logger.warning(f"Ticket lookup failed for event {e.event_id}: {e}")
            info = TicketInfo.unavailable(self.default_currency, e.reason)
        return self._attach(event, info)

    async def lookup_ticket_info(self, event: Event) -> TicketInfo:
        """
        Fetch and summarize ticket classes for one event.

        Raises:
            EnrichmentError: Lookup failed or returned unusable data
        """
        event_id = event.get("id")
        if not event_id:
            raise EnrichmentError("", self.MISSING_EVENT_ID, "Event has no id")
        event_id = str(event_id)

        try:
            ticket_classes = await self.source.fetch_ticket_classes(event_id)
        except FetchError as e:
            raise EnrichmentError(event_id, self.LOOKUP_FAILED, str(e)) from e

        try:
            return derive_ticket_info(ticket_classes, self.default_currency)
        except (AttributeError, TypeError, ValueError) as e:
            raise EnrichmentError(
                event_id, self.INVALID_TICKET_DATA, f"Malformed ticket classes: {e}"
            ) from e

    @staticmethod
    def _attach(event: Event, info: TicketInfo) -> EnrichedEvent:
        return {**event, "ticket_info": info.model_dump()}

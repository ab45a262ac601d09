"""
Calendar Service
----------------
Business logic for the ICS → JSON proxy.

RESPONSIBILITIES:
- Decide which ICS URL to read (query value or configured default)
- Validate it (https only, bounded length)
- Fetch the feed
- Parse it into normalized events
- Filter by time window, sort, cap

One request = one fetch + one parse. No retries, no shared state
between requests.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlsplit

import httpx

from app.config import settings
from app.models.calendar import CalendarEvent
from app.utils.ics_parser import parse_ics

logger = logging.getLogger(__name__)


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# =============================================================================
# ERRORS
# =============================================================================

class CalendarProxyError(Exception):
    """
    Base error for anything the proxy reports to the client.

    Carries the HTTP status and the JSON body to send back.
    """
    status_code = 500
    error = "ICS proxy failure"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.error)
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class MissingIcsUrlError(CalendarProxyError):
    """No ?ics= given and no default configured"""
    status_code = 400
    error = "Missing ICS URL. Pass ?ics=<url> or set env ICS_URL."


class InvalidIcsUrlError(CalendarProxyError):
    """URL is not https or is too long"""
    status_code = 400
    error = "Invalid ICS URL"


class UpstreamFetchError(CalendarProxyError):
    """The calendar host answered with a non-2xx status"""
    error = "Fetch failed"

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code


# =============================================================================
# HELPERS
# =============================================================================

def parse_time_bound(value: Optional[str]) -> Optional[float]:
    """
    Parse a timeMin/timeMax query value to epoch seconds.

    ACCEPTS:
    - "2024-03-15"
    - "2024-03-15T09:00:00Z"
    - "2024-03-15T09:00:00+09:00"

    Values without an offset are read as UTC. Returns None when the
    value is missing or unparsable, so the bound is simply ignored.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def parse_max_results(value: Optional[str], default: int = 200) -> int:
    """
    Parse maxResults like JavaScript's parseInt(value, 10) || default.

    EXAMPLES:
    "50"   → 50
    "50ab" → 50
    "abc"  → default
    "0"    → default
    None   → default

    Negative numbers also fall back to the default.
    """
    if value is None:
        return default

    match = _LEADING_INT.match(str(value))
    if not match:
        return default

    number = int(match.group(1))
    return number if number > 0 else default


def effective_timestamp(event: CalendarEvent) -> Optional[float]:
    """
    Point in time used for filtering and sorting.

    start.dateTime for timed events, start.date (UTC midnight) for
    all-day events. None when the event has no usable start.
    """
    return parse_time_bound(event.start.date_time or event.start.date)


def filter_sort_cap(
    events: List[CalendarEvent],
    time_min: Optional[float] = None,
    time_max: Optional[float] = None,
    max_results: int = 200
) -> List[CalendarEvent]:
    """
    Keep events inside [time_min, time_max], sort by start, keep the first N.

    - Bounds that are None are ignored
    - Events without a usable start are never filtered out and sort last
    - Sorting is stable: equal starts keep document order
    """
    def in_window(event: CalendarEvent) -> bool:
        ts = effective_timestamp(event)
        if ts is None:
            return True
        if time_min is not None and ts < time_min:
            return False
        if time_max is not None and ts > time_max:
            return False
        return True

    def sort_key(event: CalendarEvent):
        ts = effective_timestamp(event)
        return (ts is None, ts if ts is not None else 0.0)

    kept = sorted(filter(in_window, events), key=sort_key)
    return kept[:max_results]


# =============================================================================
# SERVICE
# =============================================================================

class CalendarService:
    """
    Service for proxying ICS feeds.

    Everything it needs is passed in: it never looks at environment
    variables itself.

    USAGE:
    service = CalendarService(default_ics_url="https://example.com/basic.ics")
    events = await service.get_events(time_min="2024-03-01")

    TESTING:
    Pass an httpx.MockTransport as transport to avoid real network calls.
    """

    def __init__(
        self,
        default_ics_url: Optional[str] = None,
        max_url_length: int = 1000,
        default_max_results: int = 200,
        fetch_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        ARGS:
        - default_ics_url: feed used when the request has no ?ics=
        - max_url_length: longest accepted feed URL
        - default_max_results: cap when maxResults is unusable
        - fetch_timeout: seconds, None disables the timeout
        - transport: custom httpx transport (tests)
        """
        self.default_ics_url = default_ics_url
        self.max_url_length = max_url_length
        self.default_max_results = default_max_results
        self.fetch_timeout = fetch_timeout
        self.transport = transport

        logger.info(
            f"Calendar service initialized "
            f"(default feed configured: {default_ics_url is not None})"
        )

    def resolve_ics_url(self, ics: Optional[str] = None) -> str:
        """
        Pick and validate the feed URL.

        RAISES:
        - MissingIcsUrlError if neither ics nor the default is set
        - InvalidIcsUrlError if the URL is not https or is too long
        """
        url = ics or self.default_ics_url
        if not url:
            raise MissingIcsUrlError()

        if not url.lower().startswith("https://") or len(url) > self.max_url_length:
            raise InvalidIcsUrlError()

        return url

    async def fetch_ics(self, url: str) -> str:
        """
        Download the feed body.

        RAISES:
        - UpstreamFetchError on a non-2xx answer (status is kept)
        - httpx.HTTPError on network failure
        """
        host = urlsplit(url).hostname
        logger.info(f"Fetching ICS feed from {host}")

        async with httpx.AsyncClient(
            timeout=self.fetch_timeout,
            follow_redirects=True,
            transport=self.transport
        ) as client:
            response = await client.get(url, headers={"Accept": "text/calendar"})

        if not response.is_success:
            logger.warning(f"ICS fetch from {host} failed with HTTP {response.status_code}")
            raise UpstreamFetchError(response.status_code, response.text)

        return response.text

    async def get_events(
        self,
        ics: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        max_results: Optional[str] = None
    ) -> List[CalendarEvent]:
        """
        Full pipeline: resolve → fetch → parse → filter → sort → cap.

        ARGS (raw query strings):
        - ics: feed URL override
        - time_min / time_max: ISO-8601 bounds, inclusive
        - max_results: result cap

        EXAMPLE:
        events = await service.get_events(
            time_min="2024-03-01T00:00:00Z",
            max_results="10"
        )
        """
        url = self.resolve_ics_url(ics)
        text = await self.fetch_ics(url)

        events = parse_ics(text)
        items = filter_sort_cap(
            events,
            time_min=parse_time_bound(time_min),
            time_max=parse_time_bound(time_max),
            max_results=parse_max_results(max_results, self.default_max_results)
        )

        logger.info(f"Returning {len(items)} of {len(events)} events")
        return items


# =============================================================================
# GLOBAL SERVICE INSTANCE
# =============================================================================
_service: Optional[CalendarService] = None


def get_calendar_service() -> CalendarService:
    """
    Get the global calendar service instance.

    Built once from settings. Also used as a FastAPI dependency, so tests
    can swap it with app.dependency_overrides.

    USAGE:
    from app.services.calendar_service import get_calendar_service

    service = get_calendar_service()
    events = await service.get_events(ics="https://...")
    """
    global _service
    if _service is None:
        _service = CalendarService(
            default_ics_url=settings.ICS_URL,
            max_url_length=settings.ICS_URL_MAX_LENGTH,
            default_max_results=settings.DEFAULT_MAX_RESULTS,
            fetch_timeout=settings.ICS_FETCH_TIMEOUT
        )
    return _service

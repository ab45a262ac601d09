#!/usr/bin/env python3
"""
Calendar Proxy Tests
--------------------
Service helpers (time window, sorting, capping) and the GET /api/ics
endpoint. The upstream calendar host is replaced by httpx.MockTransport,
so no network is needed.

USAGE:
cd backend
pytest test_calendar_api.py
"""

import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).parent))

from app.main import app
from app.models.calendar import CalendarEvent, EventDateTime
from app.services.calendar_service import (
    CalendarProxyError,
    CalendarService,
    InvalidIcsUrlError,
    MissingIcsUrlError,
    UpstreamFetchError,
    effective_timestamp,
    filter_sort_cap,
    get_calendar_service,
    parse_max_results,
    parse_time_bound,
)

FEED_URL = "https://calendar.example.com/basic.ics"

SAMPLE_ICS = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "BEGIN:VEVENT",
    "SUMMARY:Third",
    "DTSTART:20240320T090000Z",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "SUMMARY:First",
    "DTSTART;VALUE=DATE:20240301",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "SUMMARY:Second",
    "DTSTART:20240310T120000Z",
    "DTEND:20240310T130000Z",
    "LOCATION:Room 1",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def timed(summary, stamp):
    return CalendarEvent(
        summary=summary,
        start=EventDateTime(date_time=stamp),
        end=EventDateTime(date_time=stamp),
    )


def all_day(summary, day):
    return CalendarEvent(summary=summary, start=EventDateTime(date=day), end=EventDateTime(date=day))


def make_service(handler, **kwargs):
    return CalendarService(transport=httpx.MockTransport(handler), **kwargs)


def serve(text, status_code=200, seen=None):
    """Upstream handler returning a fixed body; records requests in seen"""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, text=text)
    return handler


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def use_service(service):
    app.dependency_overrides[get_calendar_service] = lambda: service


# =============================================================================
# QUERY VALUE PARSING
# =============================================================================

@pytest.mark.parametrize("value, expected", [
    (None, 200),
    ("", 200),
    ("abc", 200),
    ("0", 200),
    ("-5", 200),
    ("50", 50),
    ("7abc", 7),
    (" 12", 12),
])
def test_parse_max_results(value, expected):
    assert parse_max_results(value, 200) == expected


def test_parse_time_bound():
    assert parse_time_bound("2024-03-15T00:00:00Z") == parse_time_bound("2024-03-15")
    assert parse_time_bound("2024-03-15T09:00:00+09:00") == parse_time_bound("2024-03-15T00:00:00Z")
    assert parse_time_bound("2024-03-15T09:00:00.000Z") is not None


def test_parse_time_bound_ignores_bad_values():
    assert parse_time_bound(None) is None
    assert parse_time_bound("") is None
    assert parse_time_bound("next tuesday") is None


def test_effective_timestamp_uses_date_or_datetime():
    assert effective_timestamp(all_day("a", "2024-03-15")) == parse_time_bound("2024-03-15T00:00:00Z")
    assert effective_timestamp(timed("b", "2024-03-15T09:00:00.000Z")) == parse_time_bound("2024-03-15T09:00:00Z")
    assert effective_timestamp(all_day("c", None)) is None


# =============================================================================
# FILTER / SORT / CAP
# =============================================================================

def test_sorts_ascending():
    events = [
        timed("T2", "2024-03-15T10:00:00.000Z"),
        timed("T1", "2024-03-15T09:00:00.000Z"),
        timed("T3", "2024-03-15T11:00:00.000Z"),
    ]
    assert [e.summary for e in filter_sort_cap(events)] == ["T1", "T2", "T3"]


def test_no_bounds_returns_everything_sorted():
    events = [all_day("b", "2024-03-02"), all_day("a", "2024-03-01"), all_day("c", "2024-03-03")]
    result = filter_sort_cap(events, None, None, 200)
    assert [e.summary for e in result] == ["a", "b", "c"]


def test_max_results_one_returns_earliest():
    events = [timed(f"E{d}", f"2024-03-{d:02d}T09:00:00.000Z") for d in (5, 3, 1, 4, 2)]
    result = filter_sort_cap(events, max_results=1)
    assert [e.summary for e in result] == ["E1"]


def test_window_is_inclusive():
    events = [all_day(f"D{d}", f"2024-03-{d:02d}") for d in range(1, 6)]
    result = filter_sort_cap(
        events,
        time_min=parse_time_bound("2024-03-02"),
        time_max=parse_time_bound("2024-03-04"),
    )
    assert [e.summary for e in result] == ["D2", "D3", "D4"]


def test_events_without_start_are_kept_last():
    events = [all_day("undated", None), all_day("dated", "2024-03-01")]
    result = filter_sort_cap(events, time_min=parse_time_bound("2024-01-01"))
    assert [e.summary for e in result] == ["dated", "undated"]


# =============================================================================
# SERVICE
# =============================================================================

def test_resolve_prefers_query_over_default():
    service = CalendarService(default_ics_url=FEED_URL)
    assert service.resolve_ics_url("https://other.example.com/x.ics") == "https://other.example.com/x.ics"
    assert service.resolve_ics_url(None) == FEED_URL


def test_resolve_rejects_bad_urls():
    service = CalendarService(max_url_length=50)

    with pytest.raises(MissingIcsUrlError):
        service.resolve_ics_url(None)
    with pytest.raises(InvalidIcsUrlError):
        service.resolve_ics_url("http://calendar.example.com/basic.ics")
    with pytest.raises(InvalidIcsUrlError):
        service.resolve_ics_url("https://calendar.example.com/" + "a" * 50)

    assert service.resolve_ics_url("HTTPS://calendar.example.com/a.ics")


def test_error_bodies():
    assert MissingIcsUrlError().to_dict() == {
        "error": "Missing ICS URL. Pass ?ics=<url> or set env ICS_URL."
    }
    assert InvalidIcsUrlError().to_dict() == {"error": "Invalid ICS URL"}
    assert CalendarProxyError("boom").to_dict() == {"error": "ICS proxy failure", "detail": "boom"}
    assert CalendarProxyError("boom").status_code == 500


@pytest.mark.asyncio
async def test_fetch_sends_accept_header():
    seen = []
    service = make_service(serve(SAMPLE_ICS, seen=seen))

    text = await service.fetch_ics(FEED_URL)

    assert text == SAMPLE_ICS
    assert seen[0].headers["accept"] == "text/calendar"
    assert str(seen[0].url) == FEED_URL


@pytest.mark.asyncio
async def test_fetch_raises_on_upstream_error():
    service = make_service(serve("Forbidden", status_code=403))

    with pytest.raises(UpstreamFetchError) as exc_info:
        await service.fetch_ics(FEED_URL)

    assert exc_info.value.status_code == 403
    assert exc_info.value.to_dict() == {"error": "Fetch failed", "detail": "Forbidden"}


@pytest.mark.asyncio
async def test_get_events_pipeline():
    service = make_service(serve(SAMPLE_ICS), default_ics_url=FEED_URL)

    events = await service.get_events(time_min="2024-03-05", max_results="10")

    assert [e.summary for e in events] == ["Second", "Third"]


# =============================================================================
# HTTP ENDPOINT
# =============================================================================

def test_endpoint_returns_items(client):
    use_service(make_service(serve(SAMPLE_ICS), default_ics_url=FEED_URL))

    response = client.get("/api/ics")

    assert response.status_code == 200
    items = response.json()["items"]
    assert [i["summary"] for i in items] == ["First", "Second", "Third"]
    assert items[0]["start"] == {"date": "2024-03-01"}
    assert items[1] == {
        "summary": "Second",
        "location": "Room 1",
        "description": "",
        "htmlLink": "",
        "start": {"dateTime": "2024-03-10T12:00:00.000Z"},
        "end": {"dateTime": "2024-03-10T13:00:00.000Z"},
    }


def test_endpoint_sets_cors_and_cache_headers(client):
    use_service(make_service(serve(SAMPLE_ICS), default_ics_url=FEED_URL))

    response = client.get("/api/ics")

    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["cache-control"] == "s-maxage=120, stale-while-revalidate=600"


def test_endpoint_query_parameters(client):
    seen = []
    use_service(make_service(serve(SAMPLE_ICS, seen=seen)))

    response = client.get("/api/ics", params={
        "ics": FEED_URL,
        "timeMin": "2024-03-02T00:00:00Z",
        "timeMax": "2024-03-31T00:00:00Z",
        "maxResults": "1",
    })

    assert response.status_code == 200
    assert [i["summary"] for i in response.json()["items"]] == ["Second"]
    assert str(seen[0].url) == FEED_URL


def test_endpoint_missing_url(client):
    use_service(make_service(serve(SAMPLE_ICS)))

    response = client.get("/api/ics")

    assert response.status_code == 400
    assert response.json()["error"].startswith("Missing ICS URL")


def test_endpoint_rejects_plain_http(client):
    use_service(make_service(serve(SAMPLE_ICS)))

    response = client.get("/api/ics", params={"ics": "http://calendar.example.com/basic.ics"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid ICS URL"}


def test_endpoint_propagates_upstream_status(client):
    use_service(make_service(serve("Not Found", status_code=404), default_ics_url=FEED_URL))

    response = client.get("/api/ics")

    assert response.status_code == 404
    assert response.json() == {"error": "Fetch failed", "detail": "Not Found"}


def test_endpoint_network_failure_is_500(client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    use_service(make_service(handler, default_ics_url=FEED_URL))

    response = client.get("/api/ics")

    assert response.status_code == 500
    assert response.json() == {"error": "ICS proxy failure", "detail": "connection refused"}


def test_endpoint_empty_calendar(client):
    use_service(make_service(serve("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"), default_ics_url=FEED_URL))

    response = client.get("/api/ics")

    assert response.status_code == 200
    assert response.json() == {"items": []}


def test_calendar_health(client):
    use_service(CalendarService(default_ics_url=FEED_URL, default_max_results=50))

    response = client.get("/api/ics/health")

    assert response.json()["default_feed_configured"] is True
    assert response.json()["default_max_results"] == 50


def test_app_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

"""
Calendar API Routes
-------------------
ICS → JSON proxy endpoint.

ENDPOINTS:
- GET /api/ics              - Fetch an ICS feed and return its events
- GET /api/ics/health       - Proxy status
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.config import settings
from app.models.calendar import CalendarEventsResponse, ErrorResponse
from app.services.calendar_service import (
    CalendarProxyError,
    CalendarService,
    get_calendar_service,
)

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


def _error_response(error: CalendarProxyError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# =============================================================================
# GET EVENTS
# =============================================================================

@router.get(
    "/ics",
    response_model=CalendarEventsResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def get_ics_events(
    ics: Optional[str] = Query(None, description="ICS feed URL (https only)"),
    time_min: Optional[str] = Query(None, alias="timeMin", description="Inclusive lower bound (ISO-8601)"),
    time_max: Optional[str] = Query(None, alias="timeMax", description="Inclusive upper bound (ISO-8601)"),
    max_results: Optional[str] = Query(None, alias="maxResults", description="Result cap (default 200)"),
    service: CalendarService = Depends(get_calendar_service)
):
    """
    Fetch an ICS feed and return its events as Google Calendar-like JSON.

    FEED URL:
    ?ics=<url> if given, otherwise the ICS_URL setting.
    Prefer the setting: a private feed URL is a secret.

    RESPONSE:
    {"items": [{"summary": ..., "start": {...}, "end": {...}, ...}]}

    ERRORS:
    - 400 {"error": "Missing ICS URL..."} or {"error": "Invalid ICS URL"}
    - <upstream status> {"error": "Fetch failed", "detail": <upstream body>}
    - 500 {"error": "ICS proxy failure", "detail": <error>}

    EXAMPLE:
    ```bash
    curl "http://localhost:8000/api/ics?timeMin=2024-03-01T00:00:00Z&maxResults=20"
    ```
    """
    try:
        items = await service.get_events(
            ics=ics,
            time_min=time_min,
            time_max=time_max,
            max_results=max_results
        )
    except CalendarProxyError as e:
        return _error_response(e)
    except Exception as e:
        logger.error(f"ICS proxy failure: {e}", exc_info=True)
        return _error_response(CalendarProxyError(str(e)))

    body = CalendarEventsResponse(items=items)
    return JSONResponse(
        status_code=200,
        content=body.to_json(),
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": settings.cache_control_header,
        }
    )


# =============================================================================
# HEALTH CHECK
# =============================================================================

@router.get("/ics/health")
async def calendar_health(service: CalendarService = Depends(get_calendar_service)):
    """
    Health check for the calendar proxy.
    """
    return {
        "status": "healthy",
        "service": "calendar",
        "default_feed_configured": service.default_ics_url is not None,
        "default_max_results": service.default_max_results
    }

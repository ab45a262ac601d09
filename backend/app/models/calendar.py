"""
Calendar Pydantic Models
------------------------
Request/response schemas for the ICS proxy endpoint.

These define the structure of:
- A normalized calendar event (Google Calendar-like)
- The {"items": [...]} success body
- The {"error": ..., "detail": ...} error body
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


# Placeholder used when an event has no SUMMARY ("untitled")
UNTITLED_SUMMARY = "(제목 없음)"


# =============================================================================
# EVENT DATA STRUCTURES
# =============================================================================

class EventDateTime(BaseModel):
    """
    Start or end of an event.

    Exactly one of the two fields is set, depending on whether the event
    is all-day. Build it with only that field so that serializing with
    exclude_unset=True drops the other one.

    EXAMPLES:
    {"date": "2024-03-15"}                      # all-day
    {"dateTime": "2024-03-15T09:00:00.000Z"}    # timed

    A missing DTSTART gives {"date": null}: no date is invented.
    """
    model_config = ConfigDict(populate_by_name=True)

    date: Optional[str] = Field(None, description="Calendar date (YYYY-MM-DD)")
    date_time: Optional[str] = Field(
        None,
        alias="dateTime",
        description="UTC timestamp (YYYY-MM-DDTHH:MM:SS.mmmZ)"
    )

    @property
    def is_all_day(self) -> bool:
        return "date" in self.model_fields_set


class CalendarEvent(BaseModel):
    """
    A single normalized event.

    DEFAULTS:
    - summary: "(제목 없음)" when SUMMARY is missing or empty
    - location, description, htmlLink: "" when missing

    EXAMPLE:
    {
        "summary": "Team Sync",
        "location": "Room 4",
        "description": "",
        "htmlLink": "https://example.com/e/1",
        "start": {"dateTime": "2024-03-15T09:00:00.000Z"},
        "end": {"dateTime": "2024-03-15T10:00:00.000Z"}
    }
    """
    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(UNTITLED_SUMMARY, description="Event title")
    location: str = Field("", description="Event location")
    description: str = Field("", description="Event description")
    html_link: str = Field("", alias="htmlLink", description="Raw URL property")
    start: EventDateTime
    end: EventDateTime


# =============================================================================
# API RESPONSE MODELS
# =============================================================================

class CalendarEventsResponse(BaseModel):
    """
    Success body.

    RETURNED BY: GET /api/ics
    """
    items: List[CalendarEvent] = Field(default_factory=list)

    def to_json(self) -> dict:
        """Serialize with wire names and without the unused date variant."""
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class ErrorResponse(BaseModel):
    """
    Error body.

    EXAMPLES:
    {"error": "Invalid ICS URL"}
    {"error": "Fetch failed", "detail": "Not Found"}
    """
    error: str
    detail: Optional[str] = None

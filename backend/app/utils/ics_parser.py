"""
ICS Parser
----------
Turn iCalendar (ICS) text into normalized calendar events.

WHAT IS SUPPORTED:
- Line unfolding (continuation lines start with a space or tab)
- VEVENT blocks only
- One value per property (a repeated property overwrites the earlier one)
- All-day (YYYYMMDD) and timed (YYYYMMDDTHHMMSS[Z]) dates

WHAT IS NOT:
- Recurrence rules, VTIMEZONE / TZID resolution, escaped text,
  nested components. Timed values are always read as UTC.

WHY SEPARATE THIS?
- It is pure text processing: no I/O, no network
- It never raises, so a bad feed degrades to empty fields instead of
  failing the whole request
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import reduce
from typing import Dict, List, Optional, Tuple

from app.models.calendar import CalendarEvent, EventDateTime, UNTITLED_SUMMARY

logger = logging.getLogger(__name__)


BEGIN_EVENT = "BEGIN:VEVENT"
END_EVENT = "END:VEVENT"

FOLD_CHARS = (" ", "\t")

_DATE_ONLY = re.compile(r"^\d{8}$")

# Basic-format timestamps seen in real feeds, most specific first
_BASIC_FORMATS = ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M")

# Property record of one VEVENT: uppercased key -> raw value
Properties = Dict[str, str]


# =============================================================================
# STEP 1: LINES
# =============================================================================

def unfold_lines(text: str) -> List[str]:
    """
    Split text into logical lines.

    CRLF and LF are treated the same. A line (other than the first)
    starting with a space or tab is a continuation: its first character
    is dropped and the rest is appended to the previous logical line.

    EXAMPLE:
    unfold_lines("DESCRIPTION:Hello\\r\\n  world\\r\\n")
    → ["DESCRIPTION:Hello world", ""]
    """
    lines: List[str] = []
    for line in text.replace("\r\n", "\n").split("\n"):
        if lines and line[:1] in FOLD_CHARS:
            lines[-1] += line[1:]
        else:
            lines.append(line)
    return lines


def parse_property_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Split "NAME;PARAM=x:value" into ("NAME", "value").

    Parameters are dropped. Only the first colon splits, so
    "URL:https://x" keeps its value intact. Returns None when the
    line has no colon.
    """
    key_and_params, sep, value = line.partition(":")
    if not sep:
        return None
    key = key_and_params.split(";", 1)[0].upper()
    return key, value


# =============================================================================
# STEP 2: BLOCK SCANNING
# =============================================================================

@dataclass(frozen=True)
class ScanState:
    """
    State of the VEVENT scan.

    current is None while idle, and the property record being filled
    while inside an event. Finished records are appended to events,
    which is the same list for the whole scan.
    """
    events: List[Properties] = field(default_factory=list)
    current: Optional[Properties] = None

    @property
    def in_event(self) -> bool:
        return self.current is not None


def _step(state: ScanState, line: str) -> ScanState:
    if line == BEGIN_EVENT:
        # An unfinished block is dropped without being emitted
        return ScanState(events=state.events, current={})

    if not state.in_event:
        return state

    if line == END_EVENT:
        state.events.append(state.current)
        return ScanState(events=state.events)

    prop = parse_property_line(line)
    if prop is not None:
        key, value = prop
        state.current[key] = value
    return state


def scan_events(lines: List[str]) -> List[Properties]:
    """
    Collect the property record of every complete VEVENT block.

    STATES:
    - idle: everything but BEGIN:VEVENT is ignored
      (calendar headers, VTIMEZONE blocks, a stray END:VEVENT)
    - in-event: property lines fill the record, END:VEVENT emits it
    """
    return reduce(_step, lines, ScanState()).events


# =============================================================================
# STEP 3: NORMALIZATION
# =============================================================================

def _format_utc(dt: datetime) -> str:
    """Format like JavaScript's toISOString(): 2024-03-15T09:00:00.000Z"""
    dt = dt.astimezone(timezone.utc)
    return f"{dt.year:04d}-" + dt.strftime("%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _parse_timestamp(value: str) -> Optional[datetime]:
    for fmt in _BASIC_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    try:
        dt = datetime.fromisoformat(value)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def to_iso(value: Optional[str]) -> Optional[str]:
    """
    Convert an ICS date value to a full UTC timestamp string.

    RULES:
    - None or ""        → None
    - "20240315"        → "2024-03-15T00:00:00.000Z"
    - "20240315T090000Z"→ "2024-03-15T09:00:00.000Z"
    - "20240315T090000" → same; a missing Z is assumed, TZID is ignored
    - anything unparsable → None
    """
    if not value:
        return None

    if _DATE_ONLY.match(value):
        try:
            day = datetime.strptime(value, "%Y%m%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return None
        return _format_utc(day)

    stamp = value[:-1] if value.endswith("Z") else value
    parsed = _parse_timestamp(stamp)
    return _format_utc(parsed) if parsed else None


def is_all_day(props: Properties) -> bool:
    """True when DTSTART is missing or is a bare YYYYMMDD date."""
    start = props.get("DTSTART")
    return start is None or bool(_DATE_ONLY.match(start))


def _when(iso: Optional[str], all_day: bool) -> EventDateTime:
    if all_day:
        return EventDateTime(date=iso[:10] if iso else None)
    return EventDateTime(date_time=iso)


def normalize_event(props: Properties) -> CalendarEvent:
    """
    Build a CalendarEvent from one VEVENT property record.

    DEFAULTS:
    - end falls back to start when DTEND is missing or unparsable
    - start and end share the same shape ({date} or {dateTime})
    - end before start is passed through as-is
    """
    all_day = is_all_day(props)
    start_iso = to_iso(props.get("DTSTART"))
    end_iso = to_iso(props.get("DTEND")) or start_iso

    return CalendarEvent(
        summary=props.get("SUMMARY") or UNTITLED_SUMMARY,
        location=props.get("LOCATION") or "",
        description=props.get("DESCRIPTION") or "",
        html_link=props.get("URL") or "",
        start=_when(start_iso, all_day),
        end=_when(end_iso, all_day),
    )


def parse_ics(text: str) -> List[CalendarEvent]:
    """
    Parse ICS text into normalized events, in document order.

    Never raises on malformed input: unknown lines are skipped and
    missing values fall back to the defaults of normalize_event().

    EXAMPLE:
    events = parse_ics(response.text)
    print(events[0].summary)
    """
    records = scan_events(unfold_lines(text))
    events = [normalize_event(props) for props in records]
    logger.debug(f"Parsed {len(events)} events from {len(text)} characters of ICS")
    return events

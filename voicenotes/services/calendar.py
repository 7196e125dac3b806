from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional, Tuple
from urllib.parse import quote

from ..errors import CalendarLinkError
from ..models.notes import Event


log = logging.getLogger("app.pipeline")

GOOGLE_EVENTEDIT_URL = "https://calendar.google.com/calendar/r/eventedit"


def _stamp(day: str, time: Optional[str]) -> str:
    try:
        if time:
            return datetime.strptime(f"{day} {time}", "%Y-%m-%d %H:%M").strftime("%Y%m%dT%H%M%S")
        return date.fromisoformat(day).strftime("%Y%m%d")
    except (TypeError, ValueError) as e:
        raise CalendarLinkError(f"invalid event date/time {day!r} {time!r}: {e}") from e


def build_calendar_link(title: str, day: str, time: Optional[str] = None, description: Optional[str] = None) -> str:
    """Google Calendar deep link; start and end are the same instant."""
    if not title or not title.strip():
        raise CalendarLinkError("event title is required")
    stamp = _stamp(day, time)
    url = f"{GOOGLE_EVENTEDIT_URL}?text={quote(title, safe='')}&dates={stamp}/{stamp}"
    if description:
        url += f"&details={quote(description, safe='')}"
    return url


def attach_calendar_links(events: List[Event]) -> Tuple[List[str], List[Tuple[str, str]]]:
    """Set calendar_link on each event; returns (links, [(title, error)]).

    A failure on one event does not stop the others.
    """
    links: List[str] = []
    failures: List[Tuple[str, str]] = []
    for ev in events:
        try:
            ev.calendar_link = build_calendar_link(ev.title, ev.date, ev.time, ev.description)
        except CalendarLinkError as e:
            log.warning(f"calendar link failed for {ev.title!r}: {e.message}")
            failures.append((ev.title, e.message))
            continue
        links.append(ev.calendar_link)
    return links, failures

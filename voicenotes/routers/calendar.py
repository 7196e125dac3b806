from __future__ import annotations

from fastapi import APIRouter

from ..models.process import CalendarLinkRequest, CalendarLinkResponse
from ..services.calendar import build_calendar_link

router = APIRouter(tags=["calendar"])


@router.post("/calendar_link", response_model=CalendarLinkResponse)
def v1_calendar_link(payload: CalendarLinkRequest) -> CalendarLinkResponse:
    link = build_calendar_link(payload.title, payload.date, payload.time, payload.description)
    return CalendarLinkResponse(calendar_link=link)

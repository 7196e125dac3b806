from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .notes import Event, Note, Task
from .process import CalendarLinkFailure
from .storage import StorageResult


class SessionInfo(BaseModel):
    session_id: str
    mode: str
    phase: str
    recordings: int
    transcripts: List[str] = []
    last_error: Optional[str] = None
    tasks: Optional[List[Task]] = None
    events: Optional[List[Event]] = None
    notes: Optional[List[Note]] = None
    markdown: Optional[str] = None


class SwitchModeRequest(BaseModel):
    mode: str = Field(description="structured|document")


class RecordingResponse(BaseModel):
    ok: bool = True
    request_id: Optional[str] = None
    session: SessionInfo
    transcript: str
    storage_info: StorageResult
    used_fallback: bool = False
    calendar_links: List[str] = []
    calendar_errors: List[CalendarLinkFailure] = []

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .notes import Event, Note, PreviousState, Task
from .storage import StorageResult


class ProcessAudioRequest(BaseModel):
    audio_data: str = Field(description="Base64 encoded audio or an http(s) URL")
    mime_type: Optional[str] = Field(None, description="e.g. audio/webm, audio/wav")
    file_name: Optional[str] = None
    previous_state: Optional[PreviousState] = None
    context: Optional[str] = None


class ExtractRequest(BaseModel):
    transcript: str = Field(description="Text that is already transcribed")
    previous_state: Optional[PreviousState] = None
    context: Optional[str] = None


class TranscriptRequest(BaseModel):
    transcript: str
    context: Optional[str] = None


class ProcessAudioMarkdownRequest(BaseModel):
    audio_data: str = Field(description="Base64 encoded audio or an http(s) URL")
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    current_markdown: Optional[str] = None
    context: Optional[str] = None


class CalendarLinkFailure(BaseModel):
    title: str
    error: str


class ProcessAudioResponse(BaseModel):
    ok: bool = True
    request_id: Optional[str] = None
    transcript: str
    tasks: List[Task]
    events: List[Event]
    notes: List[Note]
    storage_info: StorageResult
    calendar_links: List[str] = []
    calendar_errors: List[CalendarLinkFailure] = []
    used_fallback: bool = False


class ProcessAudioMarkdownResponse(BaseModel):
    ok: bool = True
    request_id: Optional[str] = None
    transcript: str
    markdown: str
    storage_info: StorageResult
    used_fallback: bool = False


class CalendarLinkRequest(BaseModel):
    title: str = Field(min_length=1)
    date: str
    time: Optional[str] = None
    description: Optional[str] = None


class CalendarLinkResponse(BaseModel):
    ok: bool = True
    calendar_link: str

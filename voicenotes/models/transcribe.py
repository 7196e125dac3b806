from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


class Transcription(BaseModel):
    transcript: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    duration: float = Field(0.0, ge=0.0, description="Seconds")
    provider: Optional[str] = None


class TranscribeUploadResponse(BaseModel):
    ok: bool
    filename: str
    transcript: str
    confidence: float
    duration: float
    provider: Optional[str] = None

from __future__ import annotations

from fastapi import APIRouter, UploadFile, File, Depends

from ..models.transcribe import TranscribeUploadResponse
from ..state import get_state, State

router = APIRouter(tags=["transcribe"])


@router.post("/transcribe", response_model=TranscribeUploadResponse)
def v1_transcribe_upload(
    file: UploadFile = File(...),
    state: State = Depends(get_state),
) -> TranscribeUploadResponse:
    res = state.services.transcriber.transcribe(file.file.read(), mime_type=file.content_type)
    return TranscribeUploadResponse(
        ok=True,
        filename=file.filename or "upload",
        transcript=res.transcript,
        confidence=res.confidence,
        duration=res.duration,
        provider=res.provider,
    )

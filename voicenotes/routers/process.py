from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Depends, Request

from ..errors import ExtractionError, InputError
from ..models.process import (
    CalendarLinkFailure,
    ExtractRequest,
    ProcessAudioMarkdownRequest,
    ProcessAudioMarkdownResponse,
    ProcessAudioRequest,
    ProcessAudioResponse,
)
from ..services.session import RecordingOutcome, SessionController, SessionMode
from ..services.transcriber import AudioInput, is_audio_url
from ..state import State, get_state

router = APIRouter(tags=["process"])


def decode_audio(audio_data: str) -> AudioInput:
    """Return the URL unchanged, or the decoded bytes of base64 audio (data: URIs allowed)."""
    if not audio_data or not audio_data.strip():
        raise InputError("No audio data provided")
    if is_audio_url(audio_data):
        return audio_data.strip()
    payload = audio_data.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InputError("audio_data must be base64 encoded audio or an http(s) URL")
    if not raw:
        raise InputError("No audio data provided")
    return raw


def _structured_response(outcome: RecordingOutcome, request: Request) -> ProcessAudioResponse:
    next_state = outcome.state
    if next_state is None:
        raise ExtractionError("structured merge produced no state")
    return ProcessAudioResponse(
        request_id=getattr(request.state, "request_id", None),
        transcript=outcome.transcript,
        tasks=next_state.tasks,
        events=next_state.events,
        notes=next_state.notes,
        storage_info=outcome.storage,
        calendar_links=outcome.calendar_links,
        calendar_errors=[CalendarLinkFailure(title=t, error=e) for t, e in outcome.calendar_errors],
        used_fallback=outcome.used_fallback,
    )


@router.post("/process-audio", response_model=ProcessAudioResponse)
def v1_process_audio(
    payload: ProcessAudioRequest,
    request: Request,
    state: State = Depends(get_state),
) -> ProcessAudioResponse:
    audio = decode_audio(payload.audio_data)
    ctl = SessionController(state.services, mode=SessionMode.structured)
    if payload.previous_state is not None:
        ctl.seed(state=payload.previous_state)
    outcome = ctl.process(
        audio,
        mime_type=payload.mime_type,
        context=payload.context,
        audio_url=audio if isinstance(audio, str) else None,
    )
    return _structured_response(outcome, request)


@router.post("/extract", response_model=ProcessAudioResponse)
def v1_extract(
    payload: ExtractRequest,
    request: Request,
    state: State = Depends(get_state),
) -> ProcessAudioResponse:
    """Same as /process-audio for text that is already transcribed."""
    ctl = SessionController(state.services, mode=SessionMode.structured)
    if payload.previous_state is not None:
        ctl.seed(state=payload.previous_state)
    outcome = ctl.process_transcript(payload.transcript, context=payload.context)
    return _structured_response(outcome, request)


@router.post("/process-audio-markdown", response_model=ProcessAudioMarkdownResponse)
def v1_process_audio_markdown(
    payload: ProcessAudioMarkdownRequest,
    request: Request,
    state: State = Depends(get_state),
) -> ProcessAudioMarkdownResponse:
    audio = decode_audio(payload.audio_data)
    ctl = SessionController(state.services, mode=SessionMode.document)
    if payload.current_markdown:
        ctl.seed(markdown=payload.current_markdown)
    outcome = ctl.process(
        audio,
        mime_type=payload.mime_type,
        context=payload.context,
        audio_url=audio if isinstance(audio, str) else None,
    )
    return ProcessAudioMarkdownResponse(
        request_id=getattr(request.state, "request_id", None),
        transcript=outcome.transcript,
        markdown=outcome.markdown or "",
        storage_info=outcome.storage,
        used_fallback=outcome.used_fallback,
    )

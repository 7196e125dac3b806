from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import PlainTextResponse

from ..errors import InputError, SessionNotFound
from ..models.process import CalendarLinkFailure, TranscriptRequest
from ..models.session import RecordingResponse, SessionInfo, SwitchModeRequest
from ..services.markdown import structured_to_markdown
from ..services.session import RecordingOutcome, SessionController, SessionMode
from ..state import State, get_state

router = APIRouter(tags=["sessions"])


def _mode(value: str) -> SessionMode:
    try:
        return SessionMode(value.strip().lower())
    except ValueError:
        raise InputError(f"Invalid mode {value!r}; expected structured|document")


def _session(state: State, session_id: str) -> SessionController:
    ctl = state.sessions.get(session_id)
    if ctl is None:
        raise SessionNotFound(f"Session {session_id} not found")
    return ctl


def _info(ctl: SessionController) -> SessionInfo:
    return SessionInfo(**ctl.snapshot())


def _recording_response(ctl: SessionController, outcome: RecordingOutcome, request: Request) -> RecordingResponse:
    return RecordingResponse(
        request_id=getattr(request.state, "request_id", None),
        session=_info(ctl),
        transcript=outcome.transcript,
        storage_info=outcome.storage,
        used_fallback=outcome.used_fallback,
        calendar_links=outcome.calendar_links,
        calendar_errors=[CalendarLinkFailure(title=t, error=e) for t, e in outcome.calendar_errors],
    )


@router.post("/session/new", response_model=SessionInfo)
def v1_session_new(
    mode: str = Query("structured", description="structured|document"),
    state: State = Depends(get_state),
) -> SessionInfo:
    ctl = state.sessions.create(_mode(mode))
    return _info(ctl)


@router.get("/session/{session_id}", response_model=SessionInfo)
def v1_session_get(session_id: str, state: State = Depends(get_state)) -> SessionInfo:
    return _info(_session(state, session_id))


@router.delete("/session/{session_id}")
def v1_session_delete(session_id: str, state: State = Depends(get_state)) -> Dict[str, Any]:
    if not state.sessions.remove(session_id):
        raise SessionNotFound(f"Session {session_id} not found")
    return {"ok": True, "session_id": session_id}


@router.post("/session/{session_id}/recording", response_model=RecordingResponse)
def v1_session_recording(
    session_id: str,
    request: Request,
    file: UploadFile = File(...),
    context: Optional[str] = None,
    state: State = Depends(get_state),
) -> RecordingResponse:
    ctl = _session(state, session_id)
    audio = file.file.read()
    outcome = ctl.process(audio, mime_type=file.content_type, context=context)
    return _recording_response(ctl, outcome, request)


@router.post("/session/{session_id}/transcript", response_model=RecordingResponse)
def v1_session_transcript(
    session_id: str,
    payload: TranscriptRequest,
    request: Request,
    state: State = Depends(get_state),
) -> RecordingResponse:
    ctl = _session(state, session_id)
    outcome = ctl.process_transcript(payload.transcript, context=payload.context)
    return _recording_response(ctl, outcome, request)


@router.post("/session/{session_id}/continue", response_model=SessionInfo)
def v1_session_continue(session_id: str, state: State = Depends(get_state)) -> SessionInfo:
    ctl = _session(state, session_id)
    ctl.continue_session()
    return _info(ctl)


@router.post("/session/{session_id}/reset", response_model=SessionInfo)
def v1_session_reset(session_id: str, state: State = Depends(get_state)) -> SessionInfo:
    ctl = _session(state, session_id)
    ctl.reset()
    return _info(ctl)


@router.post("/session/{session_id}/mode", response_model=SessionInfo)
def v1_session_mode(session_id: str, payload: SwitchModeRequest, state: State = Depends(get_state)) -> SessionInfo:
    ctl = _session(state, session_id)
    ctl.switch_mode(_mode(payload.mode))
    return _info(ctl)


@router.get("/session/{session_id}/export.json")
def v1_session_export_json(session_id: str, state: State = Depends(get_state)) -> Dict[str, Any]:
    return _session(state, session_id).snapshot()


@router.get("/session/{session_id}/export.md", response_class=PlainTextResponse)
def v1_session_export_markdown(session_id: str, state: State = Depends(get_state)) -> str:
    ctl = _session(state, session_id)
    if ctl.mode == SessionMode.document:
        return ctl.markdown
    return structured_to_markdown(ctl.state)

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class VoiceNotesError(Exception):
    """Base class for pipeline failures surfaced to the caller."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(VoiceNotesError):
    status_code = 400


class TranscriptionError(VoiceNotesError):
    status_code = 502


class ExtractionError(VoiceNotesError):
    status_code = 502


class ExtractionUnavailableError(ExtractionError):
    """Credentials missing or credit/rate limit hit; callers switch to fallback."""

    status_code = 503


class StorageError(VoiceNotesError):
    status_code = 500


class CalendarLinkError(VoiceNotesError):
    status_code = 422


class SessionNotFound(VoiceNotesError):
    status_code = 404


class SessionStateError(VoiceNotesError):
    status_code = 409


class SessionModeError(SessionStateError):
    pass


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    request_id: Optional[str] = None


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(VoiceNotesError)
    async def _handle_pipeline_error(request: Request, exc: VoiceNotesError):  # type: ignore[unused-variable]
        logging.getLogger("app").warning(
            f"{type(exc).__name__} on {request.url.path}: {exc.message} (request_id={_request_id(request)})"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, request_id=_request_id(request)).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):  # type: ignore[unused-variable]
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail), request_id=_request_id(request)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):  # type: ignore[unused-variable]
        logging.getLogger("app").exception("unhandled error", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="internal error", request_id=_request_id(request)).model_dump(),
        )

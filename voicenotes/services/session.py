from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import InputError, SessionModeError, SessionStateError, VoiceNotesError
from ..models.notes import Event, PreviousState
from ..models.storage import StorageResult
from ..models.transcribe import Transcription
from .calendar import attach_calendar_links
from .extraction import Extractor
from .merge import merge_document, merge_structured, new_events
from .storage import NoteStore
from .transcriber import AudioInput, Transcriber


log = logging.getLogger("app.pipeline")


class SessionMode(str, Enum):
    structured = "structured"
    document = "document"


class Phase(str, Enum):
    idle = "idle"
    capturing = "capturing"
    processing = "processing"
    complete = "complete"
    error = "error"


@dataclass
class Services:
    transcriber: Transcriber
    extractor: Extractor
    store: NoteStore


@dataclass
class RecordingOutcome:
    transcript: str
    storage: StorageResult
    used_fallback: bool = False
    transcription: Optional[Transcription] = None
    state: Optional[PreviousState] = None
    markdown: Optional[str] = None
    calendar_links: List[str] = field(default_factory=list)
    calendar_errors: List[Tuple[str, str]] = field(default_factory=list)
    durations_ms: Dict[str, int] = field(default_factory=dict)


def _ms_since(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class SessionController:
    """Owns one session's accumulated state and runs recordings through the pipeline.

    A recording runs transcribe -> merge -> persist -> calendar links strictly in
    order. The next state is committed only after persistence succeeds, so a
    failure at any stage leaves the session exactly as it was.
    """

    def __init__(
        self,
        services: Services,
        mode: SessionMode = SessionMode.structured,
        session_id: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ):
        self.services = services
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.mode = SessionMode(mode)
        self.phase = Phase.idle
        self.state = PreviousState()
        self.markdown = ""
        self.transcripts: List[str] = []
        self.recordings = 0
        self.last_error: Optional[str] = None
        self._today = today
        self._busy = threading.Lock()

    # ----------------------------- lifecycle --------------------------------
    def seed(self, state: Optional[PreviousState] = None, markdown: Optional[str] = None) -> None:
        """Load state carried by a client (stateless API) into a fresh session."""
        if self.recordings or self.phase == Phase.processing:
            raise SessionStateError("only a fresh session can be seeded")
        if state is not None:
            if self.mode != SessionMode.structured:
                raise SessionModeError("structured state given to a document session")
            self.state = state.model_copy(deep=True)
        if markdown is not None:
            if self.mode != SessionMode.document:
                raise SessionModeError("markdown given to a structured session")
            self.markdown = markdown

    def begin_capture(self) -> None:
        if self.phase == Phase.processing:
            raise SessionStateError("a recording is still being processed")
        self.phase = Phase.capturing

    def continue_session(self) -> None:
        if self.phase != Phase.complete:
            raise SessionStateError(f"cannot continue from {self.phase.value}")
        self.begin_capture()

    def reset(self) -> None:
        if not self._busy.acquire(blocking=False):
            raise SessionStateError("cannot reset while a recording is being processed")
        try:
            self.state = PreviousState()
            self.markdown = ""
            self.transcripts = []
            self.recordings = 0
            self.last_error = None
            self.phase = Phase.idle
        finally:
            self._busy.release()

    def is_cleared(self) -> bool:
        return self.recordings == 0 and self.state.is_empty() and not self.markdown and not self.transcripts

    def switch_mode(self, mode: SessionMode) -> None:
        mode = SessionMode(mode)
        if mode == self.mode:
            return
        if not self._busy.acquire(blocking=False):
            raise SessionStateError("cannot switch mode while a recording is being processed")
        try:
            if not self.is_cleared():
                raise SessionModeError("mode can only be switched on a cleared session; reset it first")
            self.mode = mode
        finally:
            self._busy.release()

    # ------------------------------ pipeline --------------------------------
    def process(
        self,
        audio: Optional[AudioInput],
        mime_type: Optional[str] = None,
        context: Optional[str] = None,
        audio_url: Optional[str] = None,
    ) -> RecordingOutcome:
        if audio is None or len(audio) == 0:
            raise InputError("No audio data provided")
        return self._run(lambda: self.services.transcriber.transcribe(audio, mime_type), context, audio_url)

    def process_transcript(
        self,
        transcript: str,
        context: Optional[str] = None,
        audio_url: Optional[str] = None,
    ) -> RecordingOutcome:
        """Run the pipeline from an already transcribed recording."""
        if not transcript or not transcript.strip():
            raise InputError("transcript is empty")
        return self._run(lambda: Transcription(transcript=transcript.strip()), context, audio_url)

    def _run(
        self,
        transcribe: Callable[[], Transcription],
        context: Optional[str],
        audio_url: Optional[str],
    ) -> RecordingOutcome:
        if not self._busy.acquire(blocking=False):
            raise SessionStateError("a recording is already being processed for this session")
        try:
            if self.phase != Phase.capturing:
                self.begin_capture()
            self.phase = Phase.processing
            try:
                outcome = self._pipeline(transcribe, context, audio_url)
            except VoiceNotesError as e:
                self.phase = Phase.error
                self.last_error = e.message
                log.warning(f"session {self.session_id}: recording failed: {e.message}")
                raise
            except Exception as e:
                self.phase = Phase.error
                self.last_error = str(e)
                log.exception(f"session {self.session_id}: recording failed")
                raise
            self.phase = Phase.complete
            self.last_error = None
            return outcome
        finally:
            self._busy.release()

    def _pipeline(
        self,
        transcribe: Callable[[], Transcription],
        context: Optional[str],
        audio_url: Optional[str],
    ) -> RecordingOutcome:
        durations: Dict[str, int] = {}
        today = self._today()

        t0 = time.perf_counter()
        transcription = transcribe()
        transcript = transcription.transcript
        durations["transcription"] = _ms_since(t0)
        log.info(
            f"session {self.session_id}: transcribed {len(transcript)} chars "
            f"(confidence={transcription.confidence:.2f}, {durations['transcription']}ms)"
        )

        if self.mode == SessionMode.document:
            t1 = time.perf_counter()
            merged = merge_document(self.services.extractor, self.markdown, transcript, context=context, today=today)
            durations["merge"] = _ms_since(t1)

            t2 = time.perf_counter()
            storage = self.services.store.persist_document(merged.markdown, transcript, audio_url=audio_url)
            durations["storage"] = _ms_since(t2)

            self.markdown = merged.markdown
            self._commit(transcript)
            log.info(f"session {self.session_id}: document merge done fallback={merged.fallback} timings={durations}")
            return RecordingOutcome(
                transcript=transcript,
                storage=storage,
                used_fallback=merged.fallback,
                transcription=transcription,
                markdown=merged.markdown,
                durations_ms=durations,
            )

        previous = self.state
        t1 = time.perf_counter()
        result = merge_structured(self.services.extractor, previous, transcript, context=context, today=today)
        durations["merge"] = _ms_since(t1)

        t2 = time.perf_counter()
        storage = self.services.store.persist_structured(
            transcript, result.tasks, result.events, result.notes, audio_url=audio_url
        )
        durations["storage"] = _ms_since(t2)

        t3 = time.perf_counter()
        fresh: List[Event] = new_events(previous, result)
        links, failures = attach_calendar_links(fresh)
        durations["calendar"] = _ms_since(t3)

        self.state = PreviousState(tasks=result.tasks, events=result.events, notes=result.notes)
        self._commit(transcript)
        log.info(
            f"session {self.session_id}: structured merge done fallback={result.fallback} "
            f"tasks={len(result.tasks)} events={len(result.events)} notes={len(result.notes)} timings={durations}"
        )
        return RecordingOutcome(
            transcript=transcript,
            storage=storage,
            used_fallback=result.fallback,
            transcription=transcription,
            state=self.state,
            calendar_links=links,
            calendar_errors=failures,
            durations_ms=durations,
        )

    def _commit(self, transcript: str) -> None:
        self.transcripts.append(transcript)
        self.recordings += 1

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "phase": self.phase.value,
            "recordings": self.recordings,
            "transcripts": list(self.transcripts),
            "last_error": self.last_error,
        }
        if self.mode == SessionMode.structured:
            data.update(self.state.model_dump(mode="json"))
        else:
            data["markdown"] = self.markdown
        return data


class SessionRegistry:
    """In-process sessions keyed by id. Sessions share no state with each other."""

    def __init__(self, services: Services):
        self.services = services
        self._sessions: Dict[str, SessionController] = {}
        self._lock = threading.Lock()

    def create(self, mode: SessionMode = SessionMode.structured) -> SessionController:
        ctl = SessionController(self.services, mode=mode)
        with self._lock:
            self._sessions[ctl.session_id] = ctl
        return ctl

    def get(self, session_id: str) -> Optional[SessionController]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

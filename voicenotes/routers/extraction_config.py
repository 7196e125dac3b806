from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..services.markdown import migrate_json_notes
from ..state import State, get_state


router = APIRouter(tags=["extraction-config"])


@router.get("/extraction_config")
def v1_extraction_config(state: State = Depends(get_state)) -> Dict[str, Any]:
    svc = state.services
    return {
        "ok": True,
        "extraction": svc.extractor.diagnostics(),
        "transcription": svc.transcriber.diagnostics(),
        "storage": svc.store.describe(),
        "sessions": len(state.sessions),
    }


@router.post("/notes/migrate_markdown")
def v1_migrate_markdown(state: State = Depends(get_state)) -> Dict[str, Any]:
    notes_dir = state.services.store.notes_dir
    if not notes_dir.is_dir():
        return {"ok": True, "converted": []}
    written = migrate_json_notes(notes_dir)
    return {"ok": True, "converted": [p.name for p in written]}

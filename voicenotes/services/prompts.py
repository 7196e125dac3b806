from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from ..models.notes import PreviousState


@dataclass
class ExtractionRequest:
    system: str
    messages: List[Dict[str, str]] = field(default_factory=list)
    expects_json: bool = True


_JSON_SHAPE = """{
  "tasks": [
    {
      "title": "string",
      "description": "string",
      "due_date": "YYYY-MM-DD or null",
      "priority": "low|medium|high",
      "subtasks": [{"title": "string", "completed": false}]
    }
  ],
  "events": [
    {
      "title": "string",
      "date": "YYYY-MM-DD",
      "time": "HH:MM or null",
      "description": "string"
    }
  ],
  "notes": [
    {"content": "string", "category": "string or null"}
  ]
}"""

_DOCUMENT_LAYOUT = """# My Notes

## Tasks
- [ ] Task title (due: YYYY-MM-DD) [priority: high/medium/low]
  - Additional details
  - [ ] Subtask

## Events
- **Event title**: YYYY-MM-DD @ HH:MM
  - Event details

## Notes
- General note or idea"""


def _today(today: Optional[date]) -> str:
    return (today or date.today()).isoformat()


def build_structured_request(
    transcript: str,
    previous: Optional[PreviousState] = None,
    context: Optional[str] = None,
    today: Optional[date] = None,
) -> ExtractionRequest:
    """Instruction + transcript for extracting (or merging) tasks, events and notes."""
    has_previous = previous is not None and not previous.is_empty()
    parts: List[str] = [
        "You extract actionable items from voice note transcripts.",
        "The user records several segments in one session; each new transcript must be merged "
        "into the state accumulated so far.",
        "",
    ]
    if has_previous:
        parts += [
            "PREVIOUS STATE (tasks, events and notes from earlier recordings):",
            json.dumps(previous.contract_dict(), indent=2, ensure_ascii=False),  # type: ignore[union-attr]
            "",
            "Merge rules:",
            "1. When the transcript refers to an existing item (even vaguely, e.g. 'the meeting'), update that item in place.",
            "2. Add new items after the existing ones.",
            "3. When an item is cancelled or completed, remove it or mark it (and its subtasks) completed.",
            "4. Keep every item the transcript does not mention exactly as it is.",
            "5. Return the COMPLETE merged state, not only the changes.",
            "",
        ]
    else:
        parts += ["This is the first recording of the session. Extract every task, event and note.", ""]
    parts += [
        "Categories:",
        "- tasks: action items with optional due date, priority and subtasks (break complex tasks into specific steps).",
        "- events: calendar events with a date and optional 24h time.",
        "- notes: general information or ideas.",
        "",
        "Return ONLY valid JSON in exactly this shape:",
        _JSON_SHAPE,
        "",
        f"Resolve relative dates ('tomorrow', 'next Friday') against today's date: {_today(today)}.",
    ]
    if context:
        parts += ["", f"Additional context: {context}"]
    return ExtractionRequest(
        system="\n".join(parts),
        messages=[{"role": "user", "content": f"Transcript: {transcript}"}],
        expects_json=True,
    )


def build_document_request(
    transcript: str,
    current: Optional[str] = None,
    context: Optional[str] = None,
    today: Optional[date] = None,
) -> ExtractionRequest:
    """Instruction + transcript for rewriting the running Markdown document."""
    has_document = bool(current and current.strip())
    parts: List[str] = [
        "You maintain a Markdown document from a sequence of voice note transcripts.",
        "",
    ]
    if has_document:
        parts += [
            "CURRENT DOCUMENT:",
            "```markdown",
            current or "",
            "```",
            "",
            "Update it for the new transcript:",
            "- Append new items to the relevant section.",
            "- Update existing items in place, keeping their position.",
            "- Mark completed tasks by changing '- [ ]' to '- [x]'. Do not duplicate the line.",
            "- Delete cancelled or removed items together with their nested sub-bullets.",
            "- Match vague references ('the dentist thing') to existing item titles.",
            "- Keep everything the transcript does not mention unchanged.",
        ]
    else:
        parts += [
            "There is no document yet. Create a new one from scratch using this layout "
            "(adapt sections to the content):",
            _DOCUMENT_LAYOUT,
        ]
    parts += [
        "",
        f"Resolve relative dates against today's date: {_today(today)}.",
        "Return ONLY the complete replacement Markdown document: no JSON, no surrounding code fence, "
        "no commentary.",
    ]
    if context:
        parts += ["", f"Additional context: {context}"]
    return ExtractionRequest(
        system="\n".join(parts),
        messages=[{"role": "user", "content": f"Transcript: {transcript}"}],
        expects_json=False,
    )

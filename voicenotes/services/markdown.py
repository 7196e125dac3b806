from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ..models.notes import Event, Note, PreviousState, Task


def _tasks_md(tasks: Sequence[Task]) -> List[str]:
    lines = ["## Tasks", ""]
    for task in tasks:
        due = f" (due: {task.due_date})" if task.due_date else ""
        lines.append(f"- [ ] {task.title}{due} [priority: {task.priority.value}]")
        if task.description:
            lines.append(f"  {task.description}")
        for sub in task.subtasks:
            lines.append(f"  - [{'x' if sub.completed else ' '}] {sub.title}")
        lines.append("")
    return lines


def _events_md(events: Sequence[Event]) -> List[str]:
    lines = ["## Events", ""]
    for ev in events:
        at = f" @ {ev.time}" if ev.time else ""
        lines.append(f"- **{ev.title}**: {ev.date}{at}")
        if ev.description:
            lines.append(f"  {ev.description}")
        lines.append("")
    return lines


def _notes_md(notes: Sequence[Note]) -> List[str]:
    lines = ["## Notes", ""]
    for note in notes:
        if note.category and note.category != "general":
            lines.append(f"- **[{note.category}]** {note.content}")
        else:
            lines.append(f"- {note.content}")
    lines.append("")
    return lines


def structured_to_markdown(state: PreviousState, transcript: Optional[str] = None) -> str:
    lines = ["# My Notes", ""]
    if state.tasks:
        lines += _tasks_md(state.tasks)
    if state.events:
        lines += _events_md(state.events)
    if state.notes:
        lines += _notes_md(state.notes)
    if transcript:
        lines += ["---", "", f'_Original transcript: "{transcript}"_']
    return "\n".join(lines).strip()


def migrate_json_notes(notes_dir: Path) -> List[Path]:
    """Write a .md next to every stored structured .json note; returns new files.

    Sidecar .meta.json files and records that fail validation are skipped.
    """
    log = logging.getLogger("app")
    written: List[Path] = []
    for path in sorted(notes_dir.glob("*.json")):
        if path.name.endswith(".meta.json"):
            continue
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(record, dict):
                raise ValueError("top-level value is not an object")
            state = PreviousState.model_validate(
                {k: record.get(k) or [] for k in ("tasks", "events", "notes")}
            )
        except (OSError, ValueError, ValidationError) as e:
            log.warning(f"skipping {path.name}: {e}")
            continue
        out = path.with_suffix(".md")
        out.write_text(structured_to_markdown(state, record.get("transcript")), encoding="utf-8")
        written.append(out)
    return written

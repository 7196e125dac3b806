"""Rule-based extraction used when the generative step is unavailable.

Both extractors are deterministic: the same transcript, previous state and
date always produce the same output.
"""

from __future__ import annotations

import re
from datetime import date
from typing import List, Optional, Set, Tuple

from ..errors import InputError
from ..models.notes import Event, ExtractionResult, Note, PreviousState, Priority, Task


TASK_CUES = ("remind", "todo", "need to", "have to", "don't forget", "make sure")
EVENT_CUES = ("schedule", "meeting", "appointment", "call", "sync")
NOTE_MIN_CHARS = 10

_COMPLETION_RE = re.compile(
    r"\b(finished|done|completed|complete|bought|paid|sent|called|picked up|took care of|checked off)\b"
)
# Phrases that cancel an existing item.
_REMOVAL_RE = re.compile(
    r"\b(cancel|cancelled|canceled|call off|called off|scratch that|never mind|forget about|no longer need|"
    r"remove the|delete the|take off)\b"
)
_REMOVAL_MIN_OVERLAP = 0.8
_CHECKBOX_RE = re.compile(r"^(\s*)- \[( |x|X)\] (.*)$")
_BULLET_RE = re.compile(r"^(\s*)[-*] (.*)$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*$")

_STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "to", "of", "in", "on", "for", "with", "is", "are", "was", "were", "be",
    "that", "this", "it", "as", "at", "by", "from", "we", "i", "you", "they", "he", "she", "them", "us", "our",
    "your", "my", "me", "do", "did", "will", "would", "should", "could", "can", "have", "has", "had", "just",
    "already", "today", "now", "ok", "okay", "yeah", "yes", "so", "about", "up", "off", "all", "due", "priority",
    "low", "medium", "high", "need", "remind", "remember", "todo", "don", "forget", "make", "sure",
}


def split_clauses(transcript: str) -> List[str]:
    return [c.strip() for c in re.split(r"[.!?]+", transcript) if c.strip()]


def _has_cue(clause: str, cues: Tuple[str, ...]) -> bool:
    low = clause.lower()
    return any(cue in low for cue in cues)


def classify_clause(clause: str) -> Optional[str]:
    """Return 'task', 'event', 'note' or None (dropped). Task cues win."""
    if _has_cue(clause, TASK_CUES):
        return "task"
    if _has_cue(clause, EVENT_CUES):
        return "event"
    if len(clause) > NOTE_MIN_CHARS:
        return "note"
    return None


def extract_fallback(
    transcript: str,
    previous: Optional[PreviousState] = None,
    today: Optional[date] = None,
) -> ExtractionResult:
    today_iso = (today or date.today()).isoformat()
    tasks: List[Task] = []
    events: List[Event] = []
    notes: List[Note] = []
    if previous is not None:
        tasks.extend(t.model_copy(deep=True) for t in previous.tasks)
        events.extend(e.model_copy(deep=True) for e in previous.events)
        notes.extend(n.model_copy(deep=True) for n in previous.notes)

    for clause in split_clauses(transcript):
        kind = classify_clause(clause)
        if kind == "task":
            tasks.append(Task(title=clause, description="", due_date=None, priority=Priority.medium))
        elif kind == "event":
            events.append(Event(title=clause, date=today_iso, time=None, description=""))
        elif kind == "note":
            notes.append(Note(content=clause, category="general"))

    if not (tasks or events or notes):
        if not transcript.strip():
            raise InputError("transcript is empty")
        notes.append(Note(content=transcript.strip(), category="general"))

    return ExtractionResult(tasks=tasks, events=events, notes=notes, fallback=True)


# ----------------------------- Document mode -------------------------------
def _norm_tokens(s: str) -> Set[str]:
    s = re.sub(r"\(due:[^)]*\)|\[priority:[^\]]*\]", " ", s.lower())
    s = re.sub(r"[^a-z0-9\s]", " ", s)
    out: Set[str] = set()
    for t in s.split():
        if t in _STOPWORDS or t.isdigit() or len(t) < 3:
            continue
        if len(t) > 3 and t.endswith("s") and not t.endswith("ss"):
            t = t[:-1]
        out.add(t)
    return out


def _overlap(clause_toks: Set[str], item_toks: Set[str]) -> float:
    if not clause_toks or not item_toks:
        return 0.0
    return len(clause_toks & item_toks) / len(item_toks)


def _best_match(lines: List[str], clause: str, unchecked_only: bool, min_score: float = 0.5) -> Optional[int]:
    clause_toks = _norm_tokens(clause)
    best: Optional[int] = None
    best_score = 0.0
    for idx, line in enumerate(lines):
        m = _CHECKBOX_RE.match(line)
        if unchecked_only:
            if not m or m.group(2) != " ":
                continue
            text = m.group(3)
        else:
            b = _BULLET_RE.match(line)
            if not b:
                continue
            text = m.group(3) if m else b.group(2)
        score = _overlap(clause_toks, _norm_tokens(text))
        if score >= min_score and score > best_score:
            best, best_score = idx, score
    return best


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _item_span(lines: List[str], idx: int) -> int:
    """Index one past the last line belonging to the item at idx (sub-bullets, details)."""
    base = _indent(lines[idx])
    end = idx + 1
    while end < len(lines):
        line = lines[end]
        if not line.strip() or _HEADING_RE.match(line) or _indent(line) <= base:
            break
        end += 1
    return end


def _section_bounds(lines: List[str], name: str) -> Optional[Tuple[int, int]]:
    start = None
    for idx, line in enumerate(lines):
        m = _HEADING_RE.match(line)
        if not m:
            continue
        if start is not None and len(m.group(1)) <= 2:
            return start, idx
        if start is None and len(m.group(1)) == 2 and m.group(2).strip().lower() == name.lower():
            start = idx
    if start is None:
        return None
    return start, len(lines)


def _append_to_section(lines: List[str], name: str, item: str) -> None:
    bounds = _section_bounds(lines, name)
    if bounds is None:
        if not any(l.strip() for l in lines):
            lines[:] = ["# My Notes", "", f"## {name}", item]
            return
        while lines and not lines[-1].strip():
            lines.pop()
        lines.extend(["", f"## {name}", item])
        return
    start, end = bounds
    insert_at = start + 1
    for idx in range(start + 1, end):
        if lines[idx].strip():
            insert_at = idx + 1
    lines.insert(insert_at, item)


def merge_document_fallback(document: Optional[str], transcript: str, today: Optional[date] = None) -> str:
    today_iso = (today or date.today()).isoformat()
    original = document or ""
    lines = original.split("\n") if original else []
    trailing_newline = original.endswith("\n")
    if trailing_newline:
        lines = lines[:-1]
    before = list(lines)

    for clause in split_clauses(transcript):
        low = clause.lower()
        if _has_cue(clause, TASK_CUES):
            _append_to_section(lines, "Tasks", f"- [ ] {clause}")
            continue
        if _COMPLETION_RE.search(low):
            idx = _best_match(lines, clause, unchecked_only=True)
            if idx is not None:
                m = _CHECKBOX_RE.match(lines[idx])
                lines[idx] = f"{m.group(1)}- [x] {m.group(3)}"  # type: ignore[union-attr]
                continue
        if _REMOVAL_RE.search(low):
            idx = _best_match(lines, clause, unchecked_only=False, min_score=_REMOVAL_MIN_OVERLAP)
            if idx is not None:
                del lines[idx:_item_span(lines, idx)]
                continue
        if _has_cue(clause, EVENT_CUES):
            _append_to_section(lines, "Events", f"- **{clause}**: {today_iso}")
        elif len(clause) > NOTE_MIN_CHARS:
            _append_to_section(lines, "Notes", f"- {clause}")

    if lines == before and transcript.strip():
        _append_to_section(lines, "Notes", f"- {transcript.strip()}")

    out = "\n".join(lines)
    return out + "\n" if trailing_newline else out

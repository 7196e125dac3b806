from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_iso_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() in {"null", "none"}:
        return None
    date.fromisoformat(value)
    return value


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Subtask(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    completed: bool = False


class Task(BaseModel):
    """An action item. Identity is positional; there is no task id."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    description: str = ""
    due_date: Optional[str] = Field(None, description="YYYY-MM-DD or absent")
    priority: Priority = Priority.medium
    subtasks: List[Subtask] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, v):
        return "" if v is None else v

    @field_validator("subtasks", mode="before")
    @classmethod
    def _null_subtasks(cls, v):
        return [] if v is None else v

    @field_validator("due_date")
    @classmethod
    def _due_date_iso(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso_date(v)


class Event(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    date: str = Field(description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM, 24h")
    description: str = ""
    calendar_link: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _date_iso(cls, v: str) -> str:
        checked = _check_iso_date(v)
        if checked is None:
            raise ValueError("date is required")
        return checked

    @field_validator("time")
    @classmethod
    def _time_hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v or v.lower() in {"null", "none"}:
            return None
        if not _TIME_RE.match(v):
            raise ValueError(f"time must be HH:MM (24h), got {v!r}")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, v):
        return "" if v is None else v

    def same_slot(self, other: "Event") -> bool:
        return (self.title, self.date, self.time) == (other.title, other.date, other.time)


class Note(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str = Field(min_length=1)
    category: Optional[str] = None


class ExtractionResult(BaseModel):
    """Complete next state produced by one extraction/merge call."""

    tasks: List[Task] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)
    fallback: bool = False

    def is_empty(self) -> bool:
        return not (self.tasks or self.events or self.notes)


class PreviousState(BaseModel):
    """Accumulated structured state handed back into a merge."""

    tasks: List[Task] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.tasks or self.events or self.notes)

    def contract_dict(self) -> dict:
        """Serialized form sent to the generative step (no calendar links)."""
        return self.model_dump(mode="json", exclude={"events": {"__all__": {"calendar_link"}}})

"""Merge policies: (previous state, new transcript) -> complete next state.

Matching of items across recordings is semantic and belongs to the generative
step; these policies only decide which extractor runs and reconcile fields
that are outside the extraction contract (calendar links).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from ..errors import ExtractionUnavailableError
from ..models.notes import Event, ExtractionResult, PreviousState
from .extraction import Extractor
from .fallback import extract_fallback, merge_document_fallback


log = logging.getLogger("app.pipeline")


@dataclass
class DocumentMerge:
    markdown: str
    fallback: bool = False


def carry_calendar_links(previous: Optional[PreviousState], result: ExtractionResult) -> ExtractionResult:
    if previous is None or not previous.events:
        return result
    for ev in result.events:
        if ev.calendar_link:
            continue
        for old in previous.events:
            if old.calendar_link and ev.same_slot(old):
                ev.calendar_link = old.calendar_link
                break
    return result


def new_events(previous: Optional[PreviousState], result: ExtractionResult) -> List[Event]:
    """Events in result with no identical (title, date, time) event in previous."""
    old = previous.events if previous is not None else []
    return [ev for ev in result.events if not any(ev.same_slot(o) for o in old)]


def merge_structured(
    extractor: Extractor,
    previous: Optional[PreviousState],
    transcript: str,
    context: Optional[str] = None,
    today: Optional[date] = None,
) -> ExtractionResult:
    if extractor.available:
        try:
            result = extractor.extract(transcript, previous=previous, context=context, today=today)
        except ExtractionUnavailableError as e:
            log.warning(f"generative extraction unavailable, using fallback: {e}")
            result = extract_fallback(transcript, previous=previous, today=today)
    else:
        log.info("no extraction provider configured, using fallback")
        result = extract_fallback(transcript, previous=previous, today=today)
    return carry_calendar_links(previous, result)


def merge_document(
    extractor: Extractor,
    current: Optional[str],
    transcript: str,
    context: Optional[str] = None,
    today: Optional[date] = None,
) -> DocumentMerge:
    if extractor.available:
        try:
            return DocumentMerge(
                markdown=extractor.rewrite_document(transcript, current=current, context=context, today=today)
            )
        except ExtractionUnavailableError as e:
            log.warning(f"generative document merge unavailable, using fallback: {e}")
    else:
        log.info("no extraction provider configured, using document fallback")
    return DocumentMerge(markdown=merge_document_fallback(current, transcript, today=today), fallback=True)

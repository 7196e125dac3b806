import json

import pytest
from conftest import FIXED_DAY, SCENARIO, fixed_chat

from voicenotes.config import ExtractorConfig
from voicenotes.errors import ExtractionError
from voicenotes.models.notes import Event, ExtractionResult, PreviousState, Task
from voicenotes.services.extraction import Extractor
from voicenotes.services.http import ProviderHTTPError
from voicenotes.services.merge import carry_calendar_links, merge_document, merge_structured, new_events


def _failing_chat(exc):
    def chat(req):
        raise exc

    return chat


def test_no_provider_uses_fallback():
    res = merge_structured(Extractor(ExtractorConfig()), None, SCENARIO, today=FIXED_DAY)
    assert res.fallback is True
    assert len(res.tasks) == 1 and len(res.events) == 1 and len(res.notes) == 1


def test_quota_exhausted_switches_to_fallback():
    ex = Extractor(ExtractorConfig(), chat=_failing_chat(ProviderHTTPError(429, "rate_limit_error")))
    prev = PreviousState(tasks=[Task(title="Pay rent")])
    res = merge_structured(ex, prev, "Remind me to buy stamps", today=FIXED_DAY)
    assert res.fallback is True
    assert [t.title for t in res.tasks] == ["Pay rent", "Remind me to buy stamps"]


def test_non_quota_provider_failure_propagates():
    ex = Extractor(ExtractorConfig(), chat=_failing_chat(ProviderHTTPError(500, "internal")))
    with pytest.raises(ExtractionError):
        merge_structured(ex, None, SCENARIO, today=FIXED_DAY)


def test_invalid_model_output_propagates():
    ex = Extractor(ExtractorConfig(), chat=fixed_chat('{"tasks": "nope"}'))
    with pytest.raises(ExtractionError):
        merge_structured(ex, None, SCENARIO, today=FIXED_DAY)


def test_generative_result_replaces_state_and_keeps_links():
    prev = PreviousState(
        events=[Event(title="Dentist", date="2026-10-21", time="09:30", calendar_link="https://cal/dentist")]
    )
    body = {
        "tasks": [],
        "events": [
            {"title": "Dentist", "date": "2026-10-21", "time": "09:30", "description": ""},
            {"title": "Team sync", "date": "2026-10-23", "time": "15:00", "description": ""},
        ],
        "notes": [],
    }
    ex = Extractor(ExtractorConfig(), chat=fixed_chat(json.dumps(body)))
    res = merge_structured(ex, prev, "team sync friday at three", today=FIXED_DAY)
    assert res.fallback is False
    assert res.events[0].calendar_link == "https://cal/dentist"
    assert res.events[1].calendar_link is None
    assert [e.title for e in new_events(prev, res)] == ["Team sync"]


def test_moved_event_counts_as_new():
    prev = PreviousState(events=[Event(title="Dentist", date="2026-10-21", time="09:30", calendar_link="x")])
    res = ExtractionResult(events=[Event(title="Dentist", date="2026-10-22", time="09:30")])
    carry_calendar_links(prev, res)
    assert res.events[0].calendar_link is None
    assert [e.date for e in new_events(prev, res)] == ["2026-10-22"]


def test_document_merge_prefers_generative_output():
    ex = Extractor(ExtractorConfig(), chat=fixed_chat("```markdown\n# My Notes\n\n## Tasks\n- [x] Buy milk\n```"))
    merged = merge_document(ex, "## Tasks\n- [ ] Buy milk", "bought the milk", today=FIXED_DAY)
    assert merged.fallback is False
    assert merged.markdown == "# My Notes\n\n## Tasks\n- [x] Buy milk"


def test_document_merge_falls_back_when_unavailable():
    ex = Extractor(ExtractorConfig(), chat=_failing_chat(ProviderHTTPError(402, "billing")))
    merged = merge_document(ex, "## Tasks\n- [ ] Buy milk", "I bought the milk", today=FIXED_DAY)
    assert merged.fallback is True
    assert merged.markdown == "## Tasks\n- [x] Buy milk"

import json

from voicenotes.models.notes import Event, Note, PreviousState, Subtask, Task
from voicenotes.services.markdown import migrate_json_notes, structured_to_markdown


STATE = PreviousState(
    tasks=[
        Task(
            title="Finish the report",
            description="Numbers from finance first",
            due_date="2026-10-24",
            priority="high",
            subtasks=[Subtask(title="Collect numbers", completed=True), Subtask(title="Draft")],
        )
    ],
    events=[Event(title="Team sync", date="2026-10-23", time="15:00")],
    notes=[Note(content="Office view", category="general"), Note(content="Try the new cafe", category="food")],
)


def test_structured_state_renders_document_layout():
    md = structured_to_markdown(STATE)
    assert md.startswith("# My Notes\n\n## Tasks\n")
    assert "- [ ] Finish the report (due: 2026-10-24) [priority: high]" in md
    assert "  - [x] Collect numbers" in md
    assert "  - [ ] Draft" in md
    assert "- **Team sync**: 2026-10-23 @ 15:00" in md
    assert "- Office view" in md
    assert "- **[food]** Try the new cafe" in md
    assert md.index("## Tasks") < md.index("## Events") < md.index("## Notes")


def test_empty_sections_are_omitted_and_transcript_appended():
    md = structured_to_markdown(PreviousState(notes=[Note(content="Just a note")]), transcript="just a note")
    assert "## Tasks" not in md and "## Events" not in md
    assert md.endswith('_Original transcript: "just a note"_')


def test_migrate_writes_markdown_next_to_json(tmp_path):
    (tmp_path / "note_1_aaaaaaaaa.json").write_text(
        json.dumps({"id": "note_1_aaaaaaaaa", "transcript": "x", "tasks": [{"title": "Buy milk"}]}),
        encoding="utf-8",
    )
    (tmp_path / "note_2_bbbbbbbbb.meta.json").write_text(json.dumps({"format": "markdown"}), encoding="utf-8")
    (tmp_path / "note_3_ccccccccc.json").write_text("{broken", encoding="utf-8")
    (tmp_path / "note_4_ddddddddd.json").write_text("[]", encoding="utf-8")
    (tmp_path / "note_5_eeeeeeeee.json").write_text('"just a string"', encoding="utf-8")

    written = migrate_json_notes(tmp_path)

    assert [p.name for p in written] == ["note_1_aaaaaaaaa.md"]
    assert "- [ ] Buy milk [priority: medium]" in (tmp_path / "note_1_aaaaaaaaa.md").read_text(encoding="utf-8")
    assert not (tmp_path / "note_2_bbbbbbbbb.meta.md").exists()

from conftest import SCENARIO


def _upload(client, sid, data=b"RIFFdata", context=None):
    params = {"context": context} if context else None
    return client.post(
        f"/v1/session/{sid}/recording",
        files={"file": ("rec.webm", data, "audio/webm")},
        params=params,
    )


def test_session_lifecycle(client):
    r = client.post("/v1/session/new")
    assert r.status_code == 200
    info = r.json()
    sid = info["session_id"]
    assert info["mode"] == "structured" and info["phase"] == "idle" and info["recordings"] == 0

    r = _upload(client, sid)
    assert r.status_code == 200
    body = r.json()
    assert body["transcript"] == SCENARIO
    assert body["session"]["phase"] == "complete"
    assert body["session"]["recordings"] == 1
    assert len(body["session"]["tasks"]) == 1
    assert len(body["calendar_links"]) == 1

    r = client.post(f"/v1/session/{sid}/continue")
    assert r.json()["phase"] == "capturing"

    r = _upload(client, sid)
    assert r.json()["session"]["recordings"] == 2

    r = client.get(f"/v1/session/{sid}")
    assert r.json()["transcripts"] == [SCENARIO, SCENARIO]

    r = client.get(f"/v1/session/{sid}/export.md")
    assert r.status_code == 200
    assert r.text.startswith("# My Notes")
    assert "## Tasks" in r.text

    r = client.get(f"/v1/session/{sid}/export.json")
    assert r.json()["session_id"] == sid

    r = client.post(f"/v1/session/{sid}/reset")
    assert r.json()["recordings"] == 0 and r.json()["tasks"] == []

    r = client.delete(f"/v1/session/{sid}")
    assert r.json() == {"ok": True, "session_id": sid}
    assert client.get(f"/v1/session/{sid}").status_code == 404


def test_unknown_session_is_404(client):
    r = client.get("/v1/session/nope")
    assert r.status_code == 404
    assert r.json()["ok"] is False
    assert _upload(client, "nope").status_code == 404


def test_invalid_mode_is_400(client):
    assert client.post("/v1/session/new", params={"mode": "spreadsheet"}).status_code == 400


def test_mode_switch_requires_reset(client):
    sid = client.post("/v1/session/new").json()["session_id"]
    _upload(client, sid)
    r = client.post(f"/v1/session/{sid}/mode", json={"mode": "document"})
    assert r.status_code == 409
    client.post(f"/v1/session/{sid}/reset")
    r = client.post(f"/v1/session/{sid}/mode", json={"mode": "document"})
    assert r.status_code == 200
    assert r.json()["mode"] == "document"
    assert r.json()["markdown"] == ""


def test_continue_before_any_recording_is_409(client):
    sid = client.post("/v1/session/new").json()["session_id"]
    assert client.post(f"/v1/session/{sid}/continue").status_code == 409


def test_document_session_export(client):
    sid = client.post("/v1/session/new", params={"mode": "document"}).json()["session_id"]
    body = _upload(client, sid, context="personal").json()
    assert body["storage_info"]["format"] == "markdown"
    md = body["session"]["markdown"]
    assert "## Tasks" in md
    r = client.get(f"/v1/session/{sid}/export.md")
    assert r.text == md


def test_empty_upload_is_400_and_keeps_session_usable(client):
    sid = client.post("/v1/session/new").json()["session_id"]
    r = _upload(client, sid, data=b"")
    assert r.status_code == 400
    info = client.get(f"/v1/session/{sid}").json()
    assert info["recordings"] == 0
    assert _upload(client, sid).status_code == 200


def test_transcript_recording(client, services):
    sid = client.post("/v1/session/new").json()["session_id"]
    r = client.post(f"/v1/session/{sid}/transcript", json={"transcript": "Need to call the bank"})
    assert r.status_code == 200
    body = r.json()
    assert body["session"]["recordings"] == 1
    assert [t["title"] for t in body["session"]["tasks"]] == ["Need to call the bank"]
    assert services.transcriber.calls == []
    assert client.post(f"/v1/session/{sid}/transcript", json={"transcript": ""}).status_code == 400
    assert client.post("/v1/session/nope/transcript", json={"transcript": "x"}).status_code == 404

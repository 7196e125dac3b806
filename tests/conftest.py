from datetime import date
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from voicenotes.app import create_app
from voicenotes.config import ExtractorConfig, RemoteCredentials, Settings, StorageConfig
from voicenotes.errors import InputError
from voicenotes.models.transcribe import Transcription
from voicenotes.services.extraction import Extractor
from voicenotes.services.session import Services
from voicenotes.services.storage import NoteStore


SCENARIO = (
    "Remind me to call the dentist tomorrow. Team sync at 3pm on Friday. "
    "The office view is beautiful today."
)
FIXED_DAY = date(2026, 10, 19)
CREDS = RemoteCredentials(access_key_id="AKIA", secret_access_key="secret", bucket="voice-bucket")


class FakeTranscriber:
    provider = "fake"

    def __init__(self, transcript: str = SCENARIO):
        self.transcript = transcript
        self.calls: List[Any] = []

    def transcribe(self, audio, mime_type: Optional[str] = None) -> Transcription:
        if not audio:
            raise InputError("No audio data provided")
        self.calls.append((audio, mime_type))
        return Transcription(transcript=self.transcript, confidence=0.92, duration=3.5, provider="fake")

    def diagnostics(self) -> Dict[str, Any]:
        return {"provider": "fake"}


class UnreachableS3:
    def put_object(self, **kwargs):
        raise ConnectionError("could not connect to the endpoint URL")


class MemoryS3:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[f"{Bucket}/{Key}"] = Body


def fixed_chat(*responses: str):
    """Chat callable returning canned responses in order; records requests."""
    queue = list(responses)
    seen: List[Any] = []

    def chat(req):
        seen.append(req)
        return queue.pop(0)

    chat.requests = seen  # type: ignore[attr-defined]
    return chat


@pytest.fixture
def local_store(tmp_path):
    return NoteStore(StorageConfig(data_dir=str(tmp_path)))


@pytest.fixture
def services(local_store):
    return Services(
        transcriber=FakeTranscriber(),
        extractor=Extractor(ExtractorConfig()),
        store=local_store,
    )


@pytest.fixture
def client(services):
    app = create_app(Settings(cors_allow_origins="*"), services=services)
    return TestClient(app)

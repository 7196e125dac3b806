import numpy as np
import pytest

from voicenotes.config import TranscriberConfig
from voicenotes.errors import InputError, TranscriptionError
from voicenotes.services import transcriber as transcriber_mod
from voicenotes.services.http import ProviderHTTPError
from voicenotes.services.transcriber import Transcriber, _confidence_from_logprobs, _resample_mono_f32, is_audio_url


DEEPGRAM_RESPONSE = {
    "metadata": {"duration": 4.25},
    "results": {"channels": [{"alternatives": [{"transcript": " Buy milk. ", "confidence": 0.97}]}]},
}


def test_provider_selection():
    assert Transcriber(TranscriberConfig()).provider == "whisper"
    assert Transcriber(TranscriberConfig(deepgram_api_key="k")).provider == "deepgram"
    assert Transcriber(TranscriberConfig(provider="whisper", deepgram_api_key="k")).provider == "whisper"


def test_audio_url_detection():
    assert is_audio_url("https://cdn.example/a.webm")
    assert is_audio_url(" HTTP://cdn.example/a.webm")
    assert not is_audio_url("data:audio/webm;base64,AAAA")
    assert not is_audio_url(b"https://not-a-str")


def test_missing_audio_is_input_error():
    t = Transcriber(TranscriberConfig(deepgram_api_key="k"))
    with pytest.raises(InputError):
        t.transcribe(b"")
    with pytest.raises(InputError):
        t.transcribe(None)


def test_deepgram_binary_upload(monkeypatch):
    seen = {}

    def fake_post(url, headers, body, timeout):
        seen.update(url=url, headers=headers, body=body, timeout=timeout)
        return DEEPGRAM_RESPONSE

    monkeypatch.setattr(transcriber_mod, "http_post", fake_post)
    res = Transcriber(TranscriberConfig(deepgram_api_key="k", timeout_s=12)).transcribe(b"\x1aE", "audio/webm")
    assert (res.transcript, res.confidence, res.duration, res.provider) == ("Buy milk.", 0.97, 4.25, "deepgram")
    assert "model=nova-2" in seen["url"] and "smart_format=true" in seen["url"]
    assert seen["headers"]["Authorization"] == "Token k"
    assert seen["headers"]["Content-Type"] == "audio/webm"
    assert seen["body"] == b"\x1aE"
    assert seen["timeout"] == 12


def test_deepgram_url_body(monkeypatch):
    seen = {}

    def fake_post(url, headers, body, timeout):
        seen.update(headers=headers, body=body)
        return DEEPGRAM_RESPONSE

    monkeypatch.setattr(transcriber_mod, "http_post", fake_post)
    Transcriber(TranscriberConfig(deepgram_api_key="k")).transcribe("https://cdn.example/a.webm")
    assert seen["headers"]["Content-Type"] == "application/json"
    assert seen["body"] == b'{"url": "https://cdn.example/a.webm"}'


def test_deepgram_failures_and_empty_transcript(monkeypatch):
    def rejected(url, headers, body, timeout):
        raise ProviderHTTPError(400, "corrupt or unsupported data")

    monkeypatch.setattr(transcriber_mod, "http_post", rejected)
    with pytest.raises(TranscriptionError):
        Transcriber(TranscriberConfig(deepgram_api_key="k")).transcribe(b"x")

    monkeypatch.setattr(transcriber_mod, "http_post", lambda url, headers, body, timeout: {"results": {}})
    with pytest.raises(TranscriptionError, match="No text produced"):
        Transcriber(TranscriberConfig(deepgram_api_key="k")).transcribe(b"x")


def test_explicit_deepgram_without_key():
    with pytest.raises(TranscriptionError):
        Transcriber(TranscriberConfig(provider="deepgram")).transcribe(b"x")


def test_whisper_rejects_urls():
    with pytest.raises(TranscriptionError):
        Transcriber(TranscriberConfig()).transcribe("https://cdn.example/a.webm")


def test_confidence_and_resampling_helpers():
    assert _confidence_from_logprobs([]) == 0.0
    assert _confidence_from_logprobs([-0.25, -0.75]) == pytest.approx(0.5)
    assert _confidence_from_logprobs([-3.0]) == 0.0
    y = _resample_mono_f32(np.ones(48000, dtype=np.float32), 48000, 16000)
    assert y.dtype == np.float32 and y.shape == (16000,)

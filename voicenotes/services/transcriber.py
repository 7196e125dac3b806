from __future__ import annotations

import io
import json
import logging
import socket
from pathlib import Path
from typing import Any, List, Optional, Union
from urllib import error
from urllib.parse import urlencode

import numpy as np

from ..config import TranscriberConfig
from ..errors import InputError, TranscriptionError
from ..models.transcribe import Transcription
from .http import ProviderHTTPError, http_post


log = logging.getLogger("app")

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"
WHISPER_SAMPLERATE = 16000

AudioInput = Union[bytes, str]


def is_audio_url(audio: AudioInput) -> bool:
    return isinstance(audio, str) and audio.strip().lower().startswith(("http://", "https://"))


def _resample_mono_f32(x: np.ndarray, src_hz: int, dst_hz: int) -> np.ndarray:
    if x.size == 0 or src_hz == dst_hz:
        return x.astype(np.float32, copy=False)
    t_src = np.arange(x.shape[0], dtype=np.float32) / float(src_hz)
    n_dst = int(round(x.shape[0] * (dst_hz / float(src_hz))))
    if n_dst <= 1:
        return np.zeros(0, dtype=np.float32)
    t_dst = np.arange(n_dst, dtype=np.float32) / float(dst_hz)
    y = np.interp(t_dst, t_src, x).astype(np.float32)
    return y


def _confidence_from_logprobs(logprobs: List[float]) -> float:
    if not logprobs:
        return 0.0
    avg_lp = sum(logprobs) / len(logprobs)
    return max(0.0, min(1.0, 1.0 + avg_lp))


class Transcriber:
    """Transcription Service: audio bytes or URL -> transcript, confidence, duration.

    Backends are Deepgram's prerecorded REST API and a local faster-whisper
    model. With provider "auto", Deepgram is used when a key is configured.
    """

    def __init__(self, config: TranscriberConfig):
        self.config = config
        self._whisper_model: Any = None

    @property
    def provider(self) -> str:
        p = self.config.provider
        if p in ("deepgram", "whisper"):
            return p
        return "deepgram" if self.config.deepgram_api_key else "whisper"

    def transcribe(self, audio: Optional[AudioInput], mime_type: Optional[str] = None) -> Transcription:
        if audio is None or (isinstance(audio, (bytes, str)) and len(audio) == 0):
            raise InputError("No audio data provided")
        if self.provider == "deepgram":
            result = self._transcribe_deepgram(audio, mime_type)
        else:
            result = self._transcribe_whisper(audio)
        if not result.transcript.strip():
            raise TranscriptionError("No text produced")
        return result

    # ------------------------------- Deepgram -------------------------------
    def _transcribe_deepgram(self, audio: AudioInput, mime_type: Optional[str]) -> Transcription:
        cfg = self.config
        if not cfg.deepgram_api_key:
            raise TranscriptionError("Deepgram API key not configured")
        query = urlencode({"model": cfg.deepgram_model, "smart_format": "true"})
        headers = {"Authorization": f"Token {cfg.deepgram_api_key}"}
        if is_audio_url(audio):
            headers["Content-Type"] = "application/json"
            body = json.dumps({"url": str(audio).strip()}).encode("utf-8")
        elif isinstance(audio, bytes):
            headers["Content-Type"] = mime_type or "application/octet-stream"
            body = audio
        else:
            raise InputError("audio must be raw bytes or an http(s) URL")
        try:
            res = http_post(f"{DEEPGRAM_LISTEN_URL}?{query}", headers=headers, body=body, timeout=cfg.timeout_s)
        except ProviderHTTPError as e:
            raise TranscriptionError(f"Transcription error: HTTP {e.status}: {e.payload[:300]}") from e
        except (socket.timeout, TimeoutError) as e:
            raise TranscriptionError("Transcription error: timed out") from e
        except (error.URLError, ValueError) as e:
            raise TranscriptionError(f"Transcription error: {e}") from e

        alt = (
            ((res.get("results") or {}).get("channels") or [{}])[0].get("alternatives") or [{}]
        )[0]
        return Transcription(
            transcript=(alt.get("transcript") or "").strip(),
            confidence=float(alt.get("confidence") or 0.0),
            duration=float((res.get("metadata") or {}).get("duration") or 0.0),
            provider="deepgram",
        )

    # -------------------------------- Whisper -------------------------------
    def _get_or_load_model(self) -> Any:
        if self._whisper_model is not None:
            return self._whisper_model
        from faster_whisper import WhisperModel  # lazy import to avoid test env dependency

        cfg = self.config
        target: str = cfg.whisper_model_size
        if cfg.whisper_model_dir:
            p = Path(cfg.whisper_model_dir)
            if p.is_dir() and (p / "model.bin").exists() and (p / "config.json").exists():
                target = str(p)
            else:
                log.warning(
                    f"Ignoring whisper_model_dir={cfg.whisper_model_dir} (missing model.bin/config.json); "
                    f"falling back to '{cfg.whisper_model_size}'"
                )
        self._whisper_model = WhisperModel(target, device=cfg.whisper_device, compute_type="int8")
        return self._whisper_model

    def _load_audio(self, audio: bytes) -> np.ndarray:
        import soundfile as sf  # lazy import to avoid CI system lib issues

        try:
            y, sr = sf.read(io.BytesIO(audio), dtype="float32", always_2d=False)
        except Exception as e:
            raise InputError(f"audio read failed: {e}") from e
        if isinstance(y, np.ndarray) and y.ndim == 2:
            y = y.mean(axis=1).astype(np.float32, copy=False)
        elif not isinstance(y, np.ndarray):
            y = np.asarray(y, dtype=np.float32)
        if y.size == 0:
            raise InputError("empty audio")
        if sr != WHISPER_SAMPLERATE:
            y = _resample_mono_f32(y, sr, WHISPER_SAMPLERATE)
        return y

    def _transcribe_whisper(self, audio: AudioInput) -> Transcription:
        if not isinstance(audio, bytes):
            raise TranscriptionError("local whisper backend only accepts uploaded audio, not URLs")
        samples = self._load_audio(audio)
        try:
            model = self._get_or_load_model()
        except Exception as e:
            log.exception("whisper init failed")
            raise TranscriptionError(f"whisper init failed: {e}") from e
        try:
            segments, info = model.transcribe(
                samples,
                beam_size=5,
                temperature=[0.0, 0.2, 0.4],
                vad_filter=True,
                vad_parameters=dict(min_silence_duration_ms=300),
                condition_on_previous_text=True,
                no_speech_threshold=0.6,
            )
            texts: List[str] = []
            logprobs: List[float] = []
            for seg in segments:
                text = seg.text.strip()
                if text:
                    texts.append(text)
                lp = getattr(seg, "avg_logprob", None)
                if lp is not None:
                    logprobs.append(float(lp))
        except Exception as e:
            log.exception("whisper transcription failed")
            raise TranscriptionError(f"Transcription error: {e}") from e
        return Transcription(
            transcript=" ".join(texts).strip(),
            confidence=_confidence_from_logprobs(logprobs),
            duration=float(getattr(info, "duration", 0.0) or len(samples) / WHISPER_SAMPLERATE),
            provider="whisper",
        )

    def diagnostics(self) -> dict:
        return {
            "provider_setting": self.config.provider,
            "provider": self.provider,
            "deepgram_key": bool(self.config.deepgram_api_key),
            "whisper_model": self.config.whisper_model_dir or self.config.whisper_model_size,
        }

from __future__ import annotations

import json
import logging
import socket
from datetime import date
from typing import Any, Callable, Dict, Optional
from urllib import error

from pydantic import ValidationError

from ..config import ExtractorConfig
from ..errors import ExtractionError, ExtractionUnavailableError
from ..models.notes import ExtractionResult, PreviousState
from .http import ProviderHTTPError, http_post_json
from .prompts import ExtractionRequest, build_document_request, build_structured_request


log = logging.getLogger("app.pipeline")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

# Status codes and body fragments that mean "no usable credentials or budget".
_UNAVAILABLE_STATUS = {401, 402, 403, 429}
_UNAVAILABLE_MARKERS = ("credit balance", "insufficient_quota", "rate_limit", "billing", "authentication_error")


ChatFn = Callable[[ExtractionRequest], str]


def classify_provider_error(exc: Exception) -> ExtractionError:
    """Map a provider failure to the unavailable (fallback) or fatal class."""
    if isinstance(exc, ExtractionError):
        return exc
    if isinstance(exc, ProviderHTTPError):
        low = exc.payload.lower()
        if exc.status in _UNAVAILABLE_STATUS or any(m in low for m in _UNAVAILABLE_MARKERS):
            return ExtractionUnavailableError(f"extraction provider unavailable: HTTP {exc.status}")
        return ExtractionError(f"extraction failed: HTTP {exc.status}: {exc.payload[:300]}")
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return ExtractionError("extraction timed out")
    if isinstance(exc, error.URLError):
        return ExtractionError(f"extraction request failed: {exc.reason}")
    return ExtractionError(f"extraction failed: {exc}")


def _try_parse_json(s: str) -> Optional[Dict[str, Any]]:
    """Parse the whole string as a JSON object, else the first {...} block."""
    s = s.strip()
    try:
        obj = json.loads(s)
        if isinstance(obj, dict):
            return obj
    except ValueError:
        pass
    start = s.find("{")
    end = s.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            obj = json.loads(s[start : end + 1])
        except ValueError:
            return None
        if isinstance(obj, dict):
            return obj
    return None


def parse_extraction(text: str) -> ExtractionResult:
    obj = _try_parse_json(text or "")
    if obj is None:
        raise ExtractionError("extraction response is not a JSON object")
    for key in ("tasks", "events", "notes"):
        val = obj.get(key)
        if val is None:
            obj[key] = []
        elif not isinstance(val, list):
            raise ExtractionError(f"extraction response field '{key}' must be a list")
    try:
        return ExtractionResult.model_validate(
            {"tasks": obj["tasks"], "events": obj["events"], "notes": obj["notes"], "fallback": False}
        )
    except ValidationError as e:
        raise ExtractionError(f"extraction response violates the schema: {e.errors()[0].get('msg')}") from e


def parse_document(text: str) -> str:
    doc = (text or "").strip()
    if doc.startswith("```") and doc.endswith("```") and doc.count("\n") >= 1:
        doc = doc.split("\n", 1)[1].rsplit("```", 1)[0].strip()
    if not doc:
        raise ExtractionError("document merge returned an empty document")
    return doc


class Extractor:
    """Generative extraction/merge step.

    `available` is the capability flag the session layer uses to decide between
    this step and the deterministic fallback. A `chat` callable can be injected
    in place of the HTTP providers.
    """

    def __init__(self, config: ExtractorConfig, chat: Optional[ChatFn] = None):
        self.config = config
        self._chat = chat

    @property
    def provider(self) -> Optional[str]:
        if self._chat is not None:
            return "custom"
        cfg = self.config
        if cfg.provider == "anthropic":
            return "anthropic" if cfg.anthropic_api_key else None
        if cfg.provider == "openai":
            return "openai" if cfg.openai_api_key else None
        if cfg.anthropic_api_key:
            return "anthropic"
        if cfg.openai_api_key:
            return "openai"
        return None

    @property
    def available(self) -> bool:
        return self.provider is not None

    def _anthropic_call(self, req: ExtractionRequest) -> str:
        cfg = self.config
        payload = {
            "model": cfg.anthropic_model,
            "max_tokens": cfg.anthropic_max_tokens,
            "system": req.system,
            "messages": req.messages,
            "temperature": 0.2,
        }
        res = http_post_json(
            ANTHROPIC_URL,
            headers={"x-api-key": cfg.anthropic_api_key or "", "anthropic-version": ANTHROPIC_VERSION},
            data=payload,
            timeout=cfg.timeout_s,
        )
        blocks = res.get("content") or []
        return "".join(b.get("text", "") for b in blocks if b.get("type") == "text").strip()

    def _openai_call(self, req: ExtractionRequest) -> str:
        cfg = self.config
        payload: Dict[str, Any] = {
            "model": cfg.openai_model,
            "messages": [{"role": "system", "content": req.system}, *req.messages],
            "temperature": 0.2,
        }
        if req.expects_json:
            payload["response_format"] = {"type": "json_object"}
        res = http_post_json(
            f"{cfg.openai_api_base.rstrip('/')}/chat/completions",
            headers={"Authorization": f"Bearer {cfg.openai_api_key}"},
            data=payload,
            timeout=cfg.timeout_s,
        )
        return (
            res.get("choices", [{}])[0]
            .get("message", {})
            .get("content", "")
            .strip()
        )

    def complete(self, req: ExtractionRequest) -> str:
        provider = self.provider
        if provider is None:
            raise ExtractionUnavailableError("no extraction provider credentials configured")
        try:
            if self._chat is not None:
                return self._chat(req)
            if provider == "anthropic":
                return self._anthropic_call(req)
            return self._openai_call(req)
        except ExtractionError:
            raise
        except Exception as e:
            raise classify_provider_error(e) from e

    def extract(
        self,
        transcript: str,
        previous: Optional[PreviousState] = None,
        context: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ExtractionResult:
        req = build_structured_request(transcript, previous=previous, context=context, today=today)
        return parse_extraction(self.complete(req))

    def rewrite_document(
        self,
        transcript: str,
        current: Optional[str] = None,
        context: Optional[str] = None,
        today: Optional[date] = None,
    ) -> str:
        req = build_document_request(transcript, current=current, context=context, today=today)
        return parse_document(self.complete(req))

    def diagnostics(self) -> Dict[str, Any]:
        cfg = self.config
        model = None
        if self.provider == "anthropic":
            model = cfg.anthropic_model
        elif self.provider == "openai":
            model = cfg.openai_model
        return {
            "provider_setting": cfg.provider,
            "provider": self.provider,
            "model": model,
            "available": self.available,
            "anthropic_key": bool(cfg.anthropic_api_key),
            "openai_key": bool(cfg.openai_api_key),
        }

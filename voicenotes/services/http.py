from __future__ import annotations

import json
import os
import ssl
from typing import Any, Dict
from urllib import error, request


class ProviderHTTPError(RuntimeError):
    def __init__(self, status: int, payload: str):
        super().__init__(f"HTTP {status}: {payload}")
        self.status = status
        self.payload = payload


def _ssl_context() -> ssl.SSLContext:
    # Allow opt-out verify for environments with intercepting proxies
    if os.getenv("VOICENOTES_SSL_NO_VERIFY"):
        return ssl._create_unverified_context()  # type: ignore[attr-defined]
    return ssl.create_default_context()


def http_post(url: str, headers: Dict[str, str], body: bytes, timeout: float = 300) -> Dict[str, Any]:
    hdrs = {"User-Agent": "voicenotes/1.0 python-urllib", **headers}
    req = request.Request(url, data=body, headers=hdrs, method="POST")
    try:
        with request.urlopen(req, context=_ssl_context(), timeout=timeout) as resp:
            raw = resp.read()
            return json.loads(raw.decode("utf-8"))
    except error.HTTPError as e:
        try:
            payload = e.read().decode("utf-8")
        except Exception:
            payload = str(e)
        raise ProviderHTTPError(e.code, payload)


def http_post_json(url: str, headers: Dict[str, str], data: Dict[str, Any], timeout: float = 300) -> Dict[str, Any]:
    return http_post(
        url,
        headers={"Content-Type": "application/json", **headers},
        body=json.dumps(data).encode("utf-8"),
        timeout=timeout,
    )

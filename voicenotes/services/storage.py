from __future__ import annotations

import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..config import RemoteCredentials, StorageConfig
from ..errors import StorageError
from ..models.notes import Event, Note, Task
from ..models.storage import StorageResult, StorageType


log = logging.getLogger("app.pipeline")

S3ClientFactory = Callable[[RemoteCredentials], Any]

# (file suffix, body, content type); the first entry is the primary object.
_Blob = Tuple[str, bytes, str]


def new_note_id(now_ms: Optional[int] = None) -> str:
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    tail = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"note_{ms}_{tail}"


def _default_s3_client(creds: RemoteCredentials) -> Any:
    import boto3  # lazy import keeps local-only installs light

    return boto3.client(
        "s3",
        region_name=creds.region,
        aws_access_key_id=creds.access_key_id,
        aws_secret_access_key=creds.secret_access_key,
    )


class NoteStore:
    """Durable store for processed notes.

    Backend policy: prefer_local wins; otherwise S3 when credentials and a
    bucket are configured, falling back to local disk unless force_remote is
    set; otherwise local disk.
    """

    def __init__(self, config: StorageConfig, s3_client_factory: Optional[S3ClientFactory] = None):
        self.config = config
        self._s3_factory = s3_client_factory or _default_s3_client
        self._s3_client: Any = None

    @property
    def notes_dir(self) -> Path:
        return Path(self.config.data_dir).resolve() / "notes"

    def backend(self) -> str:
        if self.config.prefer_local or self.config.remote is None:
            return StorageType.local.value
        return StorageType.s3.value

    def persist_structured(
        self,
        transcript: str,
        tasks: Sequence[Task],
        events: Sequence[Event],
        notes: Sequence[Note],
        audio_url: Optional[str] = None,
    ) -> StorageResult:
        note_id = new_note_id()
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        record = {
            "id": note_id,
            "timestamp": timestamp,
            "transcript": transcript,
            "tasks": [t.model_dump(mode="json") for t in tasks],
            "events": [e.model_dump(mode="json") for e in events],
            "notes": [n.model_dump(mode="json") for n in notes],
        }
        if audio_url:
            record["audio_url"] = audio_url
        body = json.dumps(record, indent=2, ensure_ascii=False).encode("utf-8")
        return self._persist(note_id, timestamp, [(".json", body, "application/json")], fmt="json")

    def persist_document(self, markdown: str, transcript: str, audio_url: Optional[str] = None) -> StorageResult:
        note_id = new_note_id()
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        meta = {"id": note_id, "timestamp": timestamp, "transcript": transcript, "format": "markdown"}
        if audio_url:
            meta["audio_url"] = audio_url
        blobs: List[_Blob] = [
            (".md", markdown.encode("utf-8"), "text/markdown"),
            (".meta.json", json.dumps(meta, indent=2, ensure_ascii=False).encode("utf-8"), "application/json"),
        ]
        return self._persist(note_id, timestamp, blobs, fmt="markdown")

    def _persist(self, note_id: str, timestamp: str, blobs: List[_Blob], fmt: str) -> StorageResult:
        if self.backend() == StorageType.s3.value:
            try:
                url = self._write_s3(note_id, blobs)
                log.info(f"saved note {note_id} to {url}")
                return StorageResult(
                    note_id=note_id, storage_url=url, created_at=timestamp, storage_type=StorageType.s3, format=fmt
                )
            except Exception as e:
                if self.config.force_remote:
                    raise StorageError(f"S3 upload failed and local fallback is disabled: {e}") from e
                log.warning(f"S3 upload failed for {note_id}, falling back to local storage: {e}")
        url = self._write_local(note_id, blobs)
        log.info(f"saved note {note_id} to {url}")
        return StorageResult(
            note_id=note_id, storage_url=url, created_at=timestamp, storage_type=StorageType.local, format=fmt
        )

    def _client(self) -> Any:
        if self._s3_client is None:
            self._s3_client = self._s3_factory(self.config.remote)  # type: ignore[arg-type]
        return self._s3_client

    def _write_s3(self, note_id: str, blobs: List[_Blob]) -> str:
        creds = self.config.remote
        if creds is None:
            raise StorageError("S3 credentials are not configured")
        client = self._client()
        # Sidecars go up before the primary object, so a partial upload never
        # leaves a primary object without its metadata.
        for suffix, body, content_type in reversed(blobs):
            key = f"notes/{note_id}{suffix}"
            client.put_object(Bucket=creds.bucket, Key=key, Body=body, ContentType=content_type)
        return f"s3://{creds.bucket}/notes/{note_id}{blobs[0][0]}"

    def _write_local(self, note_id: str, blobs: List[_Blob]) -> str:
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            paths = []
            for suffix, body, _ in blobs:
                path = self.notes_dir / f"{note_id}{suffix}"
                path.write_bytes(body)
                paths.append(path)
        except OSError as e:
            raise StorageError(f"local note write failed: {e}") from e
        return f"file://{paths[0]}"

    def describe(self) -> dict:
        cfg = self.config
        return {
            "backend": self.backend(),
            "prefer_local": cfg.prefer_local,
            "force_remote": cfg.force_remote,
            "bucket": cfg.remote.bucket if cfg.remote else None,
            "data_dir": str(Path(cfg.data_dir).resolve()),
        }

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class StorageType(str, Enum):
    s3 = "s3"
    local = "local"


class StorageResult(BaseModel):
    note_id: str
    storage_url: str = Field(description="s3://bucket/key or file://path")
    created_at: str = Field(description="ISO timestamp (UTC)")
    storage_type: StorageType
    format: str = Field("json", description="json|markdown")

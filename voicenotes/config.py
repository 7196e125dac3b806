from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values may be provided via environment variables. The provider keys and the
    AWS variables also accept their conventional unprefixed names so existing
    `.env` files keep working.
    """

    model_config = SettingsConfigDict(
        env_prefix="VOICENOTES_", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # HTTP
    cors_allow_origins: str = Field("*", description="Comma-separated origins")

    # Generative extraction
    extraction_provider: str = Field("auto", description="auto|anthropic|openai")
    anthropic_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY")
    )
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    anthropic_max_tokens: int = 4096
    openai_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_OPENAI_API_KEY", "OPENAI_API_KEY")
    )
    openai_model: str = "gpt-4o-mini"
    openai_api_base: str = "https://api.openai.com/v1"
    upstream_timeout_s: float = Field(300.0, description="Ceiling for transcription/extraction calls")

    # Transcription
    transcription_provider: str = Field("auto", description="auto|deepgram|whisper")
    deepgram_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_DEEPGRAM_API_KEY", "DEEPGRAM_API_KEY")
    )
    deepgram_model: str = "nova-2"
    whisper_model_size: str = Field("base", description="e.g. tiny|base|small|medium|large-v2")
    whisper_model_dir: Optional[str] = None
    whisper_device: str = Field("cpu", description="cpu|cuda|auto")

    # Storage
    use_local_storage: bool = Field(
        False, validation_alias=AliasChoices("VOICENOTES_USE_LOCAL_STORAGE", "USE_LOCAL_STORAGE")
    )
    force_s3: bool = Field(False, validation_alias=AliasChoices("VOICENOTES_FORCE_S3", "FORCE_S3"))
    aws_access_key_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID")
    )
    aws_secret_access_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_AWS_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY")
    )
    aws_region: str = Field("us-east-1", validation_alias=AliasChoices("VOICENOTES_AWS_REGION", "AWS_REGION"))
    aws_s3_bucket: Optional[str] = Field(
        None, validation_alias=AliasChoices("VOICENOTES_AWS_S3_BUCKET", "AWS_S3_BUCKET")
    )

    # Paths
    data_dir: str = Field("data", description="Root for local note storage")


@dataclass(frozen=True)
class RemoteCredentials:
    access_key_id: str
    secret_access_key: str
    bucket: str
    region: str = "us-east-1"


@dataclass(frozen=True)
class StorageConfig:
    data_dir: str = "data"
    prefer_local: bool = False
    force_remote: bool = False
    remote: Optional[RemoteCredentials] = None


@dataclass(frozen=True)
class ExtractorConfig:
    provider: str = "auto"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    anthropic_max_tokens: int = 4096
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_api_base: str = "https://api.openai.com/v1"
    timeout_s: float = 300.0


@dataclass(frozen=True)
class TranscriberConfig:
    provider: str = "auto"
    deepgram_api_key: Optional[str] = None
    deepgram_model: str = "nova-2"
    whisper_model_size: str = "base"
    whisper_model_dir: Optional[str] = None
    whisper_device: str = "cpu"
    timeout_s: float = 300.0


def load_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def storage_config(settings: Settings) -> StorageConfig:
    remote = None
    if settings.aws_access_key_id and settings.aws_secret_access_key and settings.aws_s3_bucket:
        remote = RemoteCredentials(
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            bucket=settings.aws_s3_bucket,
            region=settings.aws_region,
        )
    return StorageConfig(
        data_dir=settings.data_dir,
        prefer_local=settings.use_local_storage,
        force_remote=settings.force_s3,
        remote=remote,
    )


def extractor_config(settings: Settings) -> ExtractorConfig:
    return ExtractorConfig(
        provider=(settings.extraction_provider or "auto").strip().lower(),
        anthropic_api_key=settings.anthropic_api_key or None,
        anthropic_model=settings.anthropic_model,
        anthropic_max_tokens=settings.anthropic_max_tokens,
        openai_api_key=settings.openai_api_key or None,
        openai_model=settings.openai_model,
        openai_api_base=settings.openai_api_base,
        timeout_s=settings.upstream_timeout_s,
    )


def transcriber_config(settings: Settings) -> TranscriberConfig:
    return TranscriberConfig(
        provider=(settings.transcription_provider or "auto").strip().lower(),
        deepgram_api_key=settings.deepgram_api_key or None,
        deepgram_model=settings.deepgram_model,
        whisper_model_size=settings.whisper_model_size,
        whisper_model_dir=settings.whisper_model_dir,
        whisper_device=settings.whisper_device,
        timeout_s=settings.upstream_timeout_s,
    )

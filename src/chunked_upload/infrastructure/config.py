"""Configuration management for the upload engine using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Chunk and artifact storage configuration."""

    chunk_dir: Path = Field(
        default=Path("/var/lib/chunked_upload/chunks"),
        description="Root of the per-session chunk namespaces",
    )
    artifact_dir: Path = Field(
        default=Path("/var/lib/chunked_upload/uploads"),
        description="Directory merged artifacts are written to",
    )
    artifact_base_url: str = Field(
        default="/uploads", description="URL prefix artifacts are served under"
    )
    fsync: bool = Field(default=True, description="fsync chunks and artifacts before rename")


class SessionConfig(BaseModel):
    """Session registry configuration."""

    max_age_seconds: int = Field(
        default=86400, ge=1, description="Idle time after which a session is swept"
    )
    sweep_interval_seconds: int = Field(
        default=300, ge=1, description="Interval between expiry sweeps"
    )
    registry_shards: int = Field(
        default=16, ge=1, le=1024, description="Lock stripes for the session map"
    )
    max_total_chunks: int = Field(
        default=100_000, ge=1, description="Largest chunk count a session may declare"
    )
    max_chunk_bytes: int = Field(
        default=64 * 1024 * 1024, ge=1, description="Largest accepted chunk payload"
    )


class ClientConfig(BaseModel):
    """Upload client protocol configuration."""

    base_url: str = Field(default="http://localhost:8000", description="Upload server URL")
    chunk_size: int = Field(
        default=2 * 1024 * 1024, ge=1, description="Chunk size in bytes (default 2MB)"
    )
    max_retries: int = Field(default=3, ge=1, description="Attempts per request")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base retry delay")
    backoff: bool = Field(default=True, description="Double the delay after each attempt")
    max_workers: int = Field(default=1, ge=1, le=64, description="Parallel chunk senders")
    max_merge_rounds: int = Field(
        default=3, ge=1, description="Merge attempts that may re-send missing chunks"
    )
    timeout_seconds: float = Field(default=60.0, gt=0, description="HTTP request timeout")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    metrics_port: int = Field(
        default=0, ge=0, le=65535, description="Prometheus metrics port (0 disables)"
    )
    otlp_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    environment: str = Field(default="development", description="Deployment environment")


class Config(BaseSettings):
    """Root configuration for the upload engine."""

    model_config = SettingsConfigDict(
        env_prefix="CHUNKED_UPLOAD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure chunk and artifact directories exist."""
        self.storage.chunk_dir.mkdir(parents=True, exist_ok=True)
        self.storage.artifact_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config()

"""Pytest configuration and shared fixtures for upload engine tests."""

import shutil
import tempfile
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from chunked_upload.adapters.outbound.file_artifact_sink import FileArtifactSink
from chunked_upload.adapters.outbound.file_chunk_store import FileChunkStore
from chunked_upload.adapters.outbound.memory_chunk_store import InMemoryChunkStore
from chunked_upload.application.upload_service import UploadService
from chunked_upload.infrastructure.config import Config, get_config
from chunked_upload.infrastructure.container import Container
from chunked_upload.infrastructure.metrics import UploadMetrics


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_container():
    """Reset the DI container and cached config before each test."""
    Container.reset()
    get_config.cache_clear()
    yield
    Container.reset()
    get_config.cache_clear()


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration."""
    return Config()


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="chunked_upload_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def chunk_store(temp_data_dir: Path) -> FileChunkStore:
    """Provide a filesystem chunk store."""
    return FileChunkStore(temp_data_dir / "chunks", fsync=False)


@pytest.fixture
def memory_store() -> InMemoryChunkStore:
    """Provide an in-memory chunk store."""
    return InMemoryChunkStore()


@pytest.fixture
def artifact_sink(temp_data_dir: Path) -> FileArtifactSink:
    """Provide a filesystem artifact sink."""
    return FileArtifactSink(temp_data_dir / "uploads", base_url="/uploads", fsync=False)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def metrics() -> UploadMetrics:
    """Provide metrics bound to a private registry."""
    return UploadMetrics(registry=CollectorRegistry())


@pytest.fixture
def upload_service(chunk_store, artifact_sink, metrics, fake_clock) -> UploadService:
    """Provide an upload service over temporary storage."""
    return UploadService(
        chunk_store=chunk_store,
        artifact_sink=artifact_sink,
        metrics=metrics,
        max_age_ms=60_000,
        clock=fake_clock,
    )


@pytest.fixture
def sample_file_data() -> bytes:
    """Provide sample file data spanning several small chunks."""
    return b"".join(bytes([i]) * 10 for i in range(25))  # 250 bytes


# Pytest markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")

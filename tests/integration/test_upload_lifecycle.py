"""Integration tests for the full client/server upload lifecycle over HTTP."""

import hashlib
import threading
import pytest
from fastapi.testclient import TestClient

from chunked_upload.adapters.inbound.rest_api import create_app
from chunked_upload.adapters.outbound.http_upload_transport import HttpUploadTransport
from chunked_upload.application.upload_client import ChunkedUploadClient
from chunked_upload.application.upload_service import UploadService
from chunked_upload.adapters.outbound.file_chunk_store import FileChunkStore
from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ChunkUploadFailedError,
    IncompleteUploadError,
    SessionConflictError,
    SessionNotFoundError,
)
from chunked_upload.domain.services.retry import RetryPolicy
from chunked_upload.ports.outbound.upload_transport import ChunkWriteRequest


@pytest.fixture
def http_transport(upload_service) -> HttpUploadTransport:
    """Provide an HTTP transport backed by the ASGI app."""
    return HttpUploadTransport(client=TestClient(create_app(upload_service)))


def make_client(transport, **kwargs) -> ChunkedUploadClient:
    """Build a client with small chunks and instant retries."""
    kwargs.setdefault("chunk_size", 16)
    kwargs.setdefault("retry_policy", RetryPolicy(max_retries=3, retry_delay_ms=1))
    kwargs.setdefault("sleep", lambda seconds: None)
    return ChunkedUploadClient(transport, **kwargs)


class InterruptingTransport:
    """Stops the upload after a number of chunk writes."""

    def __init__(self, inner, stop_after: int):
        self.inner = inner
        self.stop_after = stop_after
        self.sent = 0

    def query_uploaded(self, session_id):
        return self.inner.query_uploaded(session_id)

    def write_chunk(self, request):
        if self.sent >= self.stop_after:
            raise ConnectionError("network down")
        self.sent += 1
        return self.inner.write_chunk(request)

    def merge(self, session_id, file_name, file_type):
        return self.inner.merge(session_id, file_name, file_type)


@pytest.mark.integration
class TestHttpTransport:
    """Test error mapping of the HTTP transport."""

    def test_round_trip_errors(self, http_transport):
        """Test server errors come back as engine exceptions."""
        request = ChunkWriteRequest("s1", 0, 3, b"a", "f.bin")
        assert http_transport.write_chunk(request) == [0]
        assert http_transport.query_uploaded("s1") == [0]

        with pytest.raises(IncompleteUploadError) as exc_info:
            http_transport.merge("s1", "f.bin", "")
        assert exc_info.value.missing_chunks == [1, 2]

        with pytest.raises(SessionConflictError):
            http_transport.write_chunk(ChunkWriteRequest("s1", 1, 5, b"b", "f.bin"))

        with pytest.raises(SessionNotFoundError):
            http_transport.merge("ghost", "f.bin", "")

    def test_already_merged_carries_url(self, http_transport):
        """Test the artifact URL survives the round trip."""
        http_transport.write_chunk(ChunkWriteRequest("s1", 0, 1, b"a", "f.bin"))
        result = http_transport.merge("s1", "f.bin", "")
        with pytest.raises(AlreadyMergedError) as exc_info:
            http_transport.merge("s1", "f.bin", "")
        assert exc_info.value.artifact_url == result.artifact_url

    def test_requires_target(self):
        """Test a transport needs a URL or a client."""
        with pytest.raises(ValueError):
            HttpUploadTransport()


@pytest.mark.integration
class TestUploadLifecycle:
    """End-to-end uploads through HTTP."""

    def test_upload_file(self, http_transport, artifact_sink, temp_data_dir):
        """Test a multi-chunk file arrives byte-for-byte."""
        source = temp_data_dir / "archive.tar"
        payload = bytes(range(256)) * 4
        source.write_bytes(payload)

        result = make_client(http_transport).upload(source, file_type="application/x-tar")

        assert result.total_chunks == 64
        assert result.checksum == hashlib.sha256(payload).hexdigest()
        assert result.size == len(payload)
        name = result.artifact_url.rsplit("/", 1)[-1]
        assert artifact_sink.path_for(name).read_bytes() == payload

    def test_parallel_upload(self, http_transport, artifact_sink):
        """Test concurrent chunk sends over HTTP."""
        payload = b"".join(str(i).encode().rjust(8, b"0") for i in range(200))
        result = make_client(http_transport, max_workers=8).upload(payload, file_name="n.txt")
        name = result.artifact_url.rsplit("/", 1)[-1]
        assert artifact_sink.path_for(name).read_bytes() == payload

    def test_interrupted_upload_resumes(self, http_transport, artifact_sink, upload_service):
        """Test a dropped connection followed by a resumed upload."""
        payload = b"r" * 160  # 10 chunks
        interrupted = InterruptingTransport(http_transport, stop_after=4)

        with pytest.raises(ChunkUploadFailedError) as exc_info:
            make_client(interrupted).upload(payload, session_id="resumable")
        assert exc_info.value.chunk_index == 4
        assert upload_service.query_uploaded("resumable") == [0, 1, 2, 3]

        result = make_client(http_transport).upload(payload, session_id="resumable")

        assert result.chunks_skipped == 4
        assert result.chunks_sent == 6
        name = result.artifact_url.rsplit("/", 1)[-1]
        assert artifact_sink.path_for(name).read_bytes() == payload

    def test_restart_keeps_chunks(self, chunk_store, artifact_sink, fake_clock):
        """Test chunks written before a restart are not sent again."""
        payload = b"s" * 64  # 4 chunks
        first = UploadService(chunk_store, artifact_sink, clock=fake_clock)
        first_transport = HttpUploadTransport(client=TestClient(create_app(first)))
        with pytest.raises(ChunkUploadFailedError):
            make_client(InterruptingTransport(first_transport, stop_after=2)).upload(
                payload, session_id="survivor"
            )

        restarted = UploadService(FileChunkStore(chunk_store.root), artifact_sink, clock=fake_clock)
        transport = HttpUploadTransport(client=TestClient(create_app(restarted)))
        result = make_client(transport).upload(payload, session_id="survivor")

        assert result.chunks_skipped == 2
        assert result.chunks_sent == 2
        assert restarted.get_stats().merges_completed == 1

    def test_concurrent_clients_merge_once(self, http_transport, upload_service):
        """Test two clients finishing the same session share one artifact."""
        payload = b"c" * 48
        results = []
        errors = []
        barrier = threading.Barrier(2)

        def run() -> None:
            barrier.wait()
            try:
                results.append(make_client(http_transport).upload(payload, session_id="shared"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len({r.artifact_url for r in results}) == 1
        assert upload_service.get_stats().merges_completed == 1

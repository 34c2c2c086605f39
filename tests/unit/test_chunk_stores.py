"""Unit tests for the chunk store and artifact sink adapters."""

import os
import pytest

from chunked_upload.adapters.outbound.file_artifact_sink import FileArtifactSink
from chunked_upload.adapters.outbound.file_chunk_store import FileChunkStore
from chunked_upload.adapters.outbound.memory_chunk_store import InMemoryChunkStore
from chunked_upload.domain.exceptions import MissingChunkError, TransientStorageError
from chunked_upload.ports.outbound.chunk_store import ChunkStore


@pytest.fixture(params=["file", "memory"])
def any_store(request, chunk_store, memory_store):
    """Run a test against every ChunkStore implementation."""
    return chunk_store if request.param == "file" else memory_store


@pytest.mark.unit
class TestChunkStoreContract:
    """Behaviour shared by every ChunkStore."""

    def test_implements_protocol(self, any_store):
        """Test adapters satisfy the port."""
        assert isinstance(any_store, ChunkStore)

    def test_put_and_list(self, any_store):
        """Test committed chunks are listed ascending."""
        any_store.put("s1", 2, b"c")
        any_store.put("s1", 0, b"a")
        assert any_store.list_chunks("s1") == [0, 2]

    def test_unknown_session_is_empty(self, any_store):
        """Test listing an unknown session."""
        assert any_store.list_chunks("nobody") == []

    def test_overwrite_is_idempotent(self, any_store):
        """Test re-writing a chunk replaces its payload."""
        any_store.put("s1", 0, b"first")
        any_store.put("s1", 0, b"second")
        assert any_store.list_chunks("s1") == [0]
        assert list(any_store.read_in_order("s1", 1)) == [b"second"]

    def test_read_in_order(self, any_store):
        """Test payloads come back in index order regardless of write order."""
        for index in (2, 0, 1):
            any_store.put("s1", index, bytes([index]) * 3)
        assert b"".join(any_store.read_in_order("s1", 3)) == b"\x00\x00\x00\x01\x01\x01\x02\x02\x02"

    def test_read_with_gap_fails_before_yielding(self, any_store):
        """Test a gap is reported up front."""
        any_store.put("s1", 0, b"a")
        any_store.put("s1", 2, b"c")
        with pytest.raises(MissingChunkError) as exc_info:
            any_store.read_in_order("s1", 3)
        assert exc_info.value.chunk_index == 1

    def test_discard(self, any_store):
        """Test discarding a session removes its chunks."""
        any_store.put("s1", 0, b"a")
        any_store.discard("s1")
        assert any_store.list_chunks("s1") == []
        any_store.discard("s1")

    def test_sessions_are_isolated(self, any_store):
        """Test chunks of different sessions never mix."""
        any_store.put("s1", 0, b"a")
        any_store.put("s2", 1, b"b")
        assert any_store.list_chunks("s1") == [0]
        assert any_store.list_chunks("s2") == [1]


@pytest.mark.unit
class TestFileChunkStore:
    """Filesystem specifics."""

    def test_layout(self, chunk_store):
        """Test chunks land in a per-session directory."""
        chunk_store.put("s1", 3, b"data")
        assert (chunk_store.root / "s1" / "chunk-3").read_bytes() == b"data"

    def test_no_temp_files_left(self, chunk_store):
        """Test atomic writes leave only committed chunk files."""
        for index in range(5):
            chunk_store.put("s1", index, b"x" * 100)
        assert sorted(os.listdir(chunk_store.root / "s1")) == [f"chunk-{i}" for i in range(5)]

    def test_temp_files_are_not_listed(self, chunk_store):
        """Test in-flight temp files are invisible."""
        chunk_store.put("s1", 0, b"a")
        (chunk_store.root / "s1" / ".chunk-1.abc.tmp").write_bytes(b"partial")
        (chunk_store.root / "s1" / "notes.txt").write_bytes(b"junk")
        assert chunk_store.list_chunks("s1") == [0]

    def test_write_failure_is_transient(self, chunk_store, monkeypatch):
        """Test I/O failures surface as retryable storage errors."""

        def failing_replace(src, dst):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(os, "replace", failing_replace)
        with pytest.raises(TransientStorageError) as exc_info:
            chunk_store.put("s1", 4, b"data")
        assert exc_info.value.chunk_index == 4
        assert exc_info.value.session_id == "s1"
        assert exc_info.value.retryable
        monkeypatch.undo()
        assert os.listdir(chunk_store.root / "s1") == []

    def test_unsafe_session_id_rejected(self, chunk_store):
        """Test ids that would escape the root are refused."""
        with pytest.raises(ValueError):
            chunk_store.put("../escape", 0, b"x")

    def test_survives_new_instance(self, chunk_store):
        """Test chunks are durable across store instances."""
        chunk_store.put("s1", 0, b"a")
        reopened = FileChunkStore(chunk_store.root)
        assert reopened.list_chunks("s1") == [0]


@pytest.mark.unit
class TestInMemoryChunkStore:
    """In-memory specifics."""

    def test_len_counts_sessions(self, memory_store):
        """Test session counting."""
        memory_store.put("s1", 0, b"a")
        memory_store.put("s2", 0, b"a")
        assert len(memory_store) == 2


@pytest.mark.unit
class TestFileArtifactSink:
    """Test artifact writes."""

    def test_write_artifact(self, artifact_sink):
        """Test chunks are concatenated with size and checksum."""
        artifact = artifact_sink.write("s1", "123-abc-file.txt", iter([b"hello ", b"world"]), "text/plain")
        assert artifact.url == "/uploads/123-abc-file.txt"
        assert artifact.size == 11
        assert artifact.content_type == "text/plain"
        assert artifact_sink.path_for(artifact.name).read_bytes() == b"hello world"

    def test_refuses_overwrite(self, artifact_sink):
        """Test an existing artifact is never replaced."""
        artifact_sink.write("s1", "same.bin", [b"one"])
        with pytest.raises(TransientStorageError):
            artifact_sink.write("s2", "same.bin", [b"two"])
        assert artifact_sink.path_for("same.bin").read_bytes() == b"one"

    def test_failed_stream_leaves_nothing(self, artifact_sink):
        """Test a failing chunk stream leaves no artifact or temp file."""

        def broken():
            yield b"part"
            raise MissingChunkError("s1", 1)

        with pytest.raises(MissingChunkError):
            artifact_sink.write("s1", "broken.bin", broken())
        assert os.listdir(artifact_sink.root) == []

    def test_base_url_trailing_slash(self, temp_data_dir):
        """Test URL joining."""
        sink = FileArtifactSink(temp_data_dir / "out", base_url="https://cdn.example.com/files/", fsync=False)
        artifact = sink.write("s1", "a.bin", [b"x"])
        assert artifact.url == "https://cdn.example.com/files/a.bin"

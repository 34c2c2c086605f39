"""Outbound adapters - implementations of the outbound ports."""

from chunked_upload.adapters.outbound.file_artifact_sink import FileArtifactSink
from chunked_upload.adapters.outbound.file_chunk_store import FileChunkStore
from chunked_upload.adapters.outbound.http_upload_transport import HttpUploadTransport
from chunked_upload.adapters.outbound.local_upload_transport import LocalUploadTransport
from chunked_upload.adapters.outbound.memory_chunk_store import InMemoryChunkStore

__all__ = [
    "FileChunkStore",
    "InMemoryChunkStore",
    "FileArtifactSink",
    "HttpUploadTransport",
    "LocalUploadTransport",
]

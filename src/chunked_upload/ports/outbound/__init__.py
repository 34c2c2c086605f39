"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for the systems the upload engine depends
on: chunk persistence, the final artifact destination, and (for the
client protocol) the transport that reaches the server.
"""

from chunked_upload.ports.outbound.artifact_sink import ArtifactSink
from chunked_upload.ports.outbound.chunk_store import ChunkStore
from chunked_upload.ports.outbound.upload_transport import (
    ChunkWriteRequest,
    MergeResult,
    UploadTransport,
)

__all__ = [
    "ChunkStore",
    "ArtifactSink",
    "UploadTransport",
    "ChunkWriteRequest",
    "MergeResult",
]

"""Ports layer - interfaces for adapters.

Ports define contracts that adapters implement:
- Inbound ports: interfaces for external callers (REST API, clients)
- Outbound ports: interfaces for external dependencies (storage, transport)
"""

from chunked_upload.ports.inbound import UploadServicePort, UploadServiceStats
from chunked_upload.ports.outbound import ArtifactSink, ChunkStore, UploadTransport

__all__ = [
    "UploadServicePort",
    "UploadServiceStats",
    "ChunkStore",
    "ArtifactSink",
    "UploadTransport",
]

"""In-process transport that calls an upload service directly."""

from __future__ import annotations

from chunked_upload.ports.inbound import UploadServicePort
from chunked_upload.ports.outbound.upload_transport import ChunkWriteRequest, MergeResult


class LocalUploadTransport:
    """UploadTransport bound to an in-process UploadServicePort.

    Used for embedding the engine without HTTP and for exercising the client
    protocol in tests.
    """

    def __init__(self, service: UploadServicePort) -> None:
        self._service = service

    def query_uploaded(self, session_id: str) -> list[int]:
        return self._service.query_uploaded(session_id)

    def write_chunk(self, request: ChunkWriteRequest) -> list[int]:
        return self._service.write_chunk(
            session_id=request.session_id,
            chunk_index=request.chunk_index,
            total_chunks=request.total_chunks,
            data=request.data,
            file_name=request.file_name,
            file_type=request.file_type,
            checksum=request.checksum,
        )

    def merge(self, session_id: str, file_name: str, file_type: str) -> MergeResult:
        artifact = self._service.merge(session_id, file_name or None, file_type or None)
        return MergeResult(artifact_url=artifact.url, size=artifact.size, checksum=artifact.checksum)

"""HTTP transport for the upload client.

Speaks the REST API exposed by ``adapters.inbound.rest_api`` using httpx.
Error responses carry ``{"detail": {"error": <code>, ...}}`` and are raised
again as the matching ``UploadError`` subclass, so the client protocol
handles a remote failure exactly like a local one.

Usage:
    with HttpUploadTransport("http://localhost:8000") as transport:
        client = ChunkedUploadClient(transport)
        client.upload(Path("video.mp4"))
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ChecksumMismatchError,
    ClientInputError,
    IncompleteUploadError,
    SessionConflictError,
    SessionNotFoundError,
    TransientStorageError,
    UploadError,
)
from chunked_upload.ports.outbound.upload_transport import ChunkWriteRequest, MergeResult

# Statuses worth another attempt even without a typed error body
_RETRYABLE_STATUSES = {408, 429}


def error_from_response(response: httpx.Response) -> UploadError:
    """Rebuild the engine error carried by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail: Any = body.get("detail") if isinstance(body, dict) else None
    if not isinstance(detail, dict):
        detail = {"message": str(detail or response.text or response.reason_phrase)}

    code = detail.get("error")
    message = detail.get("message", f"HTTP {response.status_code}")
    session_id = detail.get("sessionId", "")

    if code == "checksum_mismatch":
        return ChecksumMismatchError(
            session_id,
            detail.get("chunkIndex", -1),
            detail.get("expected", ""),
            detail.get("actual", ""),
        )
    if code == "session_conflict":
        return SessionConflictError(
            session_id,
            detail.get("expectedTotalChunks", 0),
            detail.get("declaredTotalChunks", 0),
        )
    if code == "session_not_found":
        return SessionNotFoundError(session_id)
    if code == "incomplete_upload":
        return IncompleteUploadError(session_id, detail.get("missingChunks", []))
    if code == "already_merged":
        return AlreadyMergedError(session_id, detail.get("artifactUrl", ""))
    if code == "storage_error":
        return TransientStorageError(message, detail.get("sessionId"), detail.get("chunkIndex"))

    if response.status_code >= 500 or response.status_code in _RETRYABLE_STATUSES:
        return TransientStorageError(message, detail.get("sessionId"), detail.get("chunkIndex"))
    extra = {k: v for k, v in detail.items() if k not in ("error", "message")}
    return ClientInputError(message, extra)


class HttpUploadTransport:
    """UploadTransport over HTTP.

    Connection-level failures (``httpx.TransportError``) propagate unchanged;
    the client's retry policy treats them as transient.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Server URL. Ignored when ``client`` is given.
            client: Pre-configured httpx client (e.g. a FastAPI TestClient).
            timeout: Request timeout in seconds for an owned client.
        """
        if client is None and base_url is None:
            raise ValueError("base_url or client is required")
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def __enter__(self) -> "HttpUploadTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self._client.close()

    def _check(self, response: httpx.Response) -> dict[str, Any]:
        if response.is_error:
            raise error_from_response(response)
        return response.json()

    def query_uploaded(self, session_id: str) -> list[int]:
        response = self._client.post("/uploads/check-chunks", json={"sessionId": session_id})
        return list(self._check(response)["uploadedChunks"])

    def write_chunk(self, request: ChunkWriteRequest) -> list[int]:
        form = {
            "sessionId": request.session_id,
            "chunkIndex": str(request.chunk_index),
            "totalChunks": str(request.total_chunks),
            "fileName": request.file_name,
            "fileType": request.file_type,
        }
        if request.checksum:
            form["checksum"] = request.checksum
        files = {"chunk": (f"chunk-{request.chunk_index}", request.data, "application/octet-stream")}
        response = self._client.post("/uploads/chunk", data=form, files=files)
        return list(self._check(response)["uploadedChunks"])

    def merge(self, session_id: str, file_name: str, file_type: str) -> MergeResult:
        response = self._client.post(
            "/uploads/merge",
            json={"sessionId": session_id, "fileName": file_name, "fileType": file_type},
        )
        body = self._check(response)
        return MergeResult(
            artifact_url=body["artifactUrl"],
            size=body.get("size", 0),
            checksum=body.get("checksum", ""),
        )

"""Upload engine exceptions.

Every error carries a machine-readable code, the HTTP status class the REST
adapter maps it to, and whether the client protocol may retry it. Errors that
concern a specific session or chunk name them in ``details`` so a caller can
target a precise retry.
"""

from __future__ import annotations

from typing import Any, Optional


class UploadError(Exception):
    """Base exception for the upload engine.

    Attributes:
        message: Human-readable error message.
        details: Additional error context (session id, chunk index, ...).
    """

    code = "upload_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error": self.code, "message": self.message, **self.details}


class ClientInputError(UploadError):
    """Missing or invalid request fields. Rejected immediately, never retried."""

    code = "invalid_request"
    status_code = 400


class ChecksumMismatchError(ClientInputError):
    """Chunk payload does not match the checksum the client declared."""

    code = "checksum_mismatch"

    def __init__(self, session_id: str, chunk_index: int, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for chunk {chunk_index} of session {session_id}",
            {
                "sessionId": session_id,
                "chunkIndex": chunk_index,
                "expected": expected,
                "actual": actual,
            },
        )
        self.session_id = session_id
        self.chunk_index = chunk_index


class SessionConflictError(UploadError):
    """Session re-opened with metadata inconsistent with its first open."""

    code = "session_conflict"
    status_code = 409

    def __init__(self, session_id: str, expected_total: int, declared_total: int) -> None:
        super().__init__(
            f"Session {session_id} expects {expected_total} chunks, "
            f"request declared {declared_total}",
            {
                "sessionId": session_id,
                "expectedTotalChunks": expected_total,
                "declaredTotalChunks": declared_total,
            },
        )
        self.session_id = session_id


class SessionNotFoundError(UploadError):
    """No live session with the given id."""

    code = "session_not_found"
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload session {session_id} not found", {"sessionId": session_id})
        self.session_id = session_id


class IncompleteUploadError(UploadError):
    """Merge requested before every chunk arrived.

    An expected outcome of a premature merge, not an engine failure.
    """

    code = "incomplete_upload"
    status_code = 409

    def __init__(self, session_id: str, missing_chunks: list[int]) -> None:
        missing = sorted(missing_chunks)
        super().__init__(
            f"Session {session_id} is missing {len(missing)} chunk(s)",
            {"sessionId": session_id, "missingChunks": missing},
        )
        self.session_id = session_id
        self.missing_chunks = missing


class AlreadyMergedError(UploadError):
    """The session was merged by an earlier or concurrent call."""

    code = "already_merged"
    status_code = 409

    def __init__(self, session_id: str, artifact_url: str) -> None:
        super().__init__(
            f"Session {session_id} was already merged",
            {"sessionId": session_id, "artifactUrl": artifact_url},
        )
        self.session_id = session_id
        self.artifact_url = artifact_url


class TransientStorageError(UploadError):
    """I/O failure writing or reading a chunk or artifact."""

    code = "storage_error"
    status_code = 500
    retryable = True

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        chunk_index: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if session_id is not None:
            details["sessionId"] = session_id
        if chunk_index is not None:
            details["chunkIndex"] = chunk_index
        super().__init__(message, details)
        self.session_id = session_id
        self.chunk_index = chunk_index


class MissingChunkError(UploadError):
    """The chunk store has no payload for an index it was asked to read."""

    code = "missing_chunk"
    status_code = 500

    def __init__(self, session_id: str, chunk_index: int) -> None:
        super().__init__(
            f"Chunk {chunk_index} of session {session_id} is not in the store",
            {"sessionId": session_id, "chunkIndex": chunk_index},
        )
        self.session_id = session_id
        self.chunk_index = chunk_index


class ChunkUploadFailedError(UploadError):
    """Client gave up on a chunk after exhausting its retry budget."""

    code = "chunk_upload_failed"

    def __init__(self, session_id: str, chunk_index: int, attempts: int) -> None:
        super().__init__(
            f"Chunk {chunk_index} of session {session_id} failed after {attempts} attempt(s)",
            {"sessionId": session_id, "chunkIndex": chunk_index, "attempts": attempts},
        )
        self.session_id = session_id
        self.chunk_index = chunk_index
        self.attempts = attempts

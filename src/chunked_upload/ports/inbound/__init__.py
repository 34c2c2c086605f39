"""Inbound ports - API contracts for the upload engine.

Inbound ports define the interfaces that transports (REST, in-process
clients) use to drive chunk ingestion, resume queries and merges.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.entities.session import UploadSession


# =============================================================================
# Upload Service Port
# =============================================================================


@dataclass
class UploadServiceStats:
    """Statistics for upload service monitoring."""

    active_sessions: int
    merged_sessions: int
    chunks_written: int
    bytes_written: int
    merges_completed: int
    sessions_expired: int


class UploadServicePort(Protocol):
    """Protocol for chunked, resumable upload operations.

    Thread Safety:
        All methods must be thread-safe. Chunk writes for one session may
        arrive concurrently and in any order.

    Exactly-once merge:
        A session is merged at most once; later or concurrent merge
        attempts raise AlreadyMergedError carrying the artifact URL.

    Example:
        session = service.open_session(total_chunks=3, file_name="a.bin")
        for i, part in enumerate(parts):
            service.write_chunk(session.session_id, i, 3, part, "a.bin")
        artifact = service.merge(session.session_id)
    """

    @abstractmethod
    def open_session(
        self,
        total_chunks: int,
        file_name: str,
        file_type: str = "",
        session_id: Optional[str] = None,
    ) -> UploadSession:
        """Open (or re-open) an upload session.

        Args:
            total_chunks: Expected chunk count.
            file_name: Declared file name.
            file_type: Declared MIME type.
            session_id: Client-chosen id; a new one is issued if omitted.

        Returns:
            Snapshot of the session.

        Raises:
            ClientInputError: If arguments are invalid.
            SessionConflictError: If re-opened with a different chunk count.
        """
        ...

    @abstractmethod
    def write_chunk(
        self,
        session_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        file_name: str,
        file_type: str = "",
        checksum: Optional[str] = None,
    ) -> list[int]:
        """Persist one chunk and record its arrival.

        Args:
            session_id: Owning session.
            chunk_index: 0-based chunk index.
            total_chunks: Declared chunk count.
            data: Chunk payload.
            file_name: Declared file name.
            file_type: Declared MIME type.
            checksum: Optional SHA256 hex digest of ``data``.

        Returns:
            Received chunk indices after this write, ascending.

        Raises:
            ClientInputError: If fields are missing or invalid.
            SessionConflictError: If ``total_chunks`` disagrees with the session.
            TransientStorageError: If the chunk could not be persisted.
        """
        ...

    @abstractmethod
    def query_uploaded(self, session_id: str) -> list[int]:
        """Get received chunk indices for resume.

        Args:
            session_id: Session to query.

        Returns:
            Ascending indices; empty for an unknown session.
        """
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[UploadSession]:
        """Get a snapshot of a live session.

        Args:
            session_id: Session to look up.

        Returns:
            Session snapshot or None if not found.
        """
        ...

    @abstractmethod
    def merge(
        self,
        session_id: str,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
    ) -> MergedArtifact:
        """Merge a completed session into its final artifact.

        Args:
            session_id: Session to merge.
            file_name: File name override for the artifact.
            file_type: MIME type override for the artifact.

        Returns:
            The merged artifact.

        Raises:
            SessionNotFoundError: If the session is unknown.
            IncompleteUploadError: If chunks are missing.
            AlreadyMergedError: If the session was merged already.
            TransientStorageError: If the artifact write failed.
        """
        ...

    @abstractmethod
    def sweep_expired(self, max_age_ms: Optional[int] = None) -> list[str]:
        """Discard sessions idle for longer than ``max_age_ms``.

        Args:
            max_age_ms: Idle threshold; configured default if omitted.

        Returns:
            Ids of the discarded sessions.
        """
        ...

    @abstractmethod
    def get_stats(self) -> UploadServiceStats:
        """Get upload service statistics.

        Returns:
            Upload service statistics.
        """
        ...


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "UploadServicePort",
    "UploadServiceStats",
]

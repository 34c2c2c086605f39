"""Upload Transport port used by the client protocol.

The client reaches the server-side engine only through this contract: a
resume query, a chunk write and a merge request. Server-side failures are
raised as the matching ``UploadError`` subclass so the client can decide
between retrying, re-sending and giving up.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ChunkWriteRequest:
    """One chunk-write request on the wire."""

    session_id: str
    chunk_index: int
    total_chunks: int
    data: bytes
    file_name: str
    file_type: str = ""
    checksum: Optional[str] = None


@dataclass(frozen=True)
class MergeResult:
    """Successful merge response."""

    artifact_url: str
    size: int = 0
    checksum: str = ""


@runtime_checkable
class UploadTransport(Protocol):
    """Protocol for delivering upload requests to the server."""

    @abstractmethod
    def query_uploaded(self, session_id: str) -> list[int]:
        """Ask which chunks the server already holds.

        Args:
            session_id: Session to query.

        Returns:
            Sorted chunk indices, empty for an unknown session.
        """
        ...

    @abstractmethod
    def write_chunk(self, request: ChunkWriteRequest) -> list[int]:
        """Send one chunk.

        Args:
            request: Chunk write request.

        Returns:
            Received chunk indices after this write.
        """
        ...

    @abstractmethod
    def merge(self, session_id: str, file_name: str, file_type: str) -> MergeResult:
        """Ask the server to merge a completed session.

        Args:
            session_id: Session to merge.
            file_name: Declared file name.
            file_type: Declared MIME type.

        Returns:
            Merge result with the artifact URL.

        Raises:
            IncompleteUploadError: If chunks are missing.
            AlreadyMergedError: If the session was merged already.
        """
        ...

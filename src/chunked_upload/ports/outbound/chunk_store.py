"""Chunk Store port for durable chunk persistence.

This outbound port defines the contract for storing the payload of each
chunk under a per-session namespace. Implementations may use a local
filesystem, an object store or memory.

The chunk store is responsible for:
- Persisting chunk payloads atomically
- Enumerating committed chunks of a session
- Streaming a complete session back in index order
- Reclaiming a session's storage wholesale
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Iterator, Protocol, runtime_checkable


@runtime_checkable
class ChunkStore(Protocol):
    """Protocol for per-session chunk storage.

    Thread Safety:
        Writes to different indices of the same session may run fully in
        parallel. Concurrent writes to the same index are last-writer-wins.

    Atomicity:
        A chunk is either fully committed or invisible. A crash mid-write
        must never leave a truncated chunk that ``list_chunks`` reports.
    """

    @abstractmethod
    def put(self, session_id: str, chunk_index: int, data: bytes) -> None:
        """Persist a chunk, overwriting any earlier payload for the index.

        Args:
            session_id: Owning session.
            chunk_index: 0-based chunk index.
            data: Chunk payload.

        Raises:
            TransientStorageError: If the write fails.
        """
        ...

    @abstractmethod
    def list_chunks(self, session_id: str) -> list[int]:
        """List committed chunk indices of a session.

        Args:
            session_id: Session to enumerate.

        Returns:
            Ascending chunk indices; empty if the session has no storage.
        """
        ...

    @abstractmethod
    def read_in_order(self, session_id: str, total_chunks: int) -> Iterator[bytes]:
        """Stream chunks ``0..total_chunks-1`` in ascending index order.

        Presence of every chunk is checked before the first payload is
        yielded.

        Args:
            session_id: Session to read.
            total_chunks: Number of chunks to stream.

        Returns:
            Iterator over chunk payloads.

        Raises:
            MissingChunkError: At the first absent index.
            TransientStorageError: If reading a payload fails.
        """
        ...

    @abstractmethod
    def discard(self, session_id: str) -> None:
        """Delete all storage of a session.

        Best effort: failures are logged by the implementation, not raised.

        Args:
            session_id: Session to reclaim.
        """
        ...

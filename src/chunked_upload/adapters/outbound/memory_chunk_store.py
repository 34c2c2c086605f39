"""In-memory chunk store adapter.

A simple in-memory implementation of ChunkStore for testing and
development. Data is not persisted across restarts.

Usage:
    store = InMemoryChunkStore()
    store.put("session-1", 0, b"hello")
    store.list_chunks("session-1")  # [0]
"""

from __future__ import annotations

import threading
from typing import Iterator

from chunked_upload.domain.exceptions import MissingChunkError


class InMemoryChunkStore:
    """In-memory implementation of the ChunkStore protocol."""

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._sessions: dict[str, dict[int, bytes]] = {}
        self._lock = threading.Lock()

    def put(self, session_id: str, chunk_index: int, data: bytes) -> None:
        if chunk_index < 0:
            raise ValueError(f"chunk_index must be non-negative, got {chunk_index}")
        with self._lock:
            self._sessions.setdefault(session_id, {})[chunk_index] = bytes(data)

    def list_chunks(self, session_id: str) -> list[int]:
        with self._lock:
            return sorted(self._sessions.get(session_id, {}))

    def read_in_order(self, session_id: str, total_chunks: int) -> Iterator[bytes]:
        with self._lock:
            chunks = dict(self._sessions.get(session_id, {}))
        payloads = []
        for index in range(total_chunks):
            if index not in chunks:
                raise MissingChunkError(session_id, index)
            payloads.append(chunks[index])
        return iter(payloads)

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        """Number of sessions with stored chunks."""
        with self._lock:
            return len(self._sessions)

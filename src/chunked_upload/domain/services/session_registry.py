"""Session Registry for tracking received chunks per upload session.

The registry is the source of truth for which chunks of a session are
durably persisted and therefore for when a session is complete. Chunk
writes for the same session arrive concurrently, so every session carries
its own lock; the session map itself is split into lock stripes so that
unrelated uploads never contend on a single global lock.

Lock Ordering:
    shard lock -> session state lock. A merge holds the merge lock while
    taking shard and state locks; the sweep holds a shard lock and only
    tries the merge lock without blocking. A session is closed only by a
    holder of its merge lock.

Lifecycle:
    open/first write -> mark_received* -> merge (tombstone kept) | sweep
"""

from __future__ import annotations

import dataclasses
import threading
import time
import zlib
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.entities.session import UploadSession
from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ClientInputError,
    SessionConflictError,
    SessionNotFoundError,
)
from chunked_upload.ports.outbound.chunk_store import ChunkStore


@dataclass
class _SessionState:
    """Mutable registry entry for one live session."""

    session: UploadSession
    lock: threading.Lock = field(default_factory=threading.Lock)
    merge_lock: threading.Lock = field(default_factory=threading.Lock)
    merged: Optional[MergedArtifact] = None
    # Set once the entry leaves the map (merged or swept)
    closed: bool = False


@dataclass
class _Tombstone:
    """Record of a merged session, kept to answer late merge attempts."""

    artifact: MergedArtifact
    merged_at: float


class _Shard:
    """One lock stripe of the session map."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.sessions: dict[str, _SessionState] = {}
        self.merged: dict[str, _Tombstone] = {}


class SessionRegistry:
    """Concurrency-safe registry of upload sessions.

    Thread Safety:
        All methods are thread-safe. Operations on one session serialize on
        that session's lock only.

    Example:
        registry = SessionRegistry(chunk_store)
        registry.open("s1", total_chunks=2, file_name="a.bin")
        registry.mark_received("s1", 1)
        registry.mark_received("s1", 0)
        assert registry.is_complete("s1")
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            chunk_store: Store consulted for existing chunks and discards.
            shards: Number of lock stripes for the session map.
            clock: Monotonic clock in seconds (injectable for tests).
        """
        if shards < 1:
            raise ValueError(f"shards must be positive, got {shards}")
        self._chunk_store = chunk_store
        self._shards = [_Shard() for _ in range(shards)]
        self._clock = clock

    def _shard(self, session_id: str) -> _Shard:
        return self._shards[zlib.crc32(session_id.encode("utf-8")) % len(self._shards)]

    def _state(self, session_id: str) -> Optional[_SessionState]:
        shard = self._shard(session_id)
        with shard.lock:
            return shard.sessions.get(session_id)

    @staticmethod
    def _snapshot(state: _SessionState) -> UploadSession:
        # Caller holds state.lock
        return dataclasses.replace(
            state.session, received_chunks=set(state.session.received_chunks)
        )

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def open(
        self,
        session_id: str,
        total_chunks: int,
        file_name: str = "",
        file_type: str = "",
    ) -> UploadSession:
        """Open a session, or touch it if it already exists.

        Args:
            session_id: Session id.
            total_chunks: Declared chunk count.
            file_name: Declared file name.
            file_type: Declared MIME type.

        Returns:
            Snapshot of the session.

        Raises:
            ClientInputError: If total_chunks is not positive.
            SessionConflictError: If the session exists with another count.
            AlreadyMergedError: If the session was merged already.
        """
        session, _ = self.open_or_create(session_id, total_chunks, file_name, file_type)
        return session

    def open_or_create(
        self,
        session_id: str,
        total_chunks: int,
        file_name: str = "",
        file_type: str = "",
    ) -> tuple[UploadSession, bool]:
        """Same as ``open`` but also reports whether the session was created.

        A newly created session is seeded with the chunks the store already
        holds for it, so uploads survive a process restart.
        """
        if total_chunks <= 0:
            raise ClientInputError(
                f"totalChunks must be positive, got {total_chunks}",
                {"field": "totalChunks", "sessionId": session_id},
            )

        now = self._clock()
        shard = self._shard(session_id)
        with shard.lock:
            tombstone = shard.merged.get(session_id)
            if tombstone is not None:
                raise AlreadyMergedError(session_id, tombstone.artifact.url)
            state = shard.sessions.get(session_id)
            created = state is None
            if created:
                state = _SessionState(
                    session=UploadSession(
                        session_id=session_id,
                        total_chunks=total_chunks,
                        file_name=file_name,
                        file_type=file_type,
                        last_activity=now,
                    )
                )
                shard.sessions[session_id] = state

        with state.lock:
            session = state.session
            if session.total_chunks != total_chunks:
                raise SessionConflictError(session_id, session.total_chunks, total_chunks)
            if created:
                session.received_chunks.update(
                    i for i in self._chunk_store.list_chunks(session_id) if i < total_chunks
                )
            if file_name and not session.file_name:
                session.file_name = file_name
            if file_type and not session.file_type:
                session.file_type = file_type
            session.last_activity = now
            return self._snapshot(state), created

    def mark_received(self, session_id: str, chunk_index: int) -> list[int]:
        """Record that a chunk is durably persisted.

        Call only after ``ChunkStore.put`` succeeded. Recording an index
        twice is a no-op.

        Args:
            session_id: Owning session.
            chunk_index: 0-based chunk index.

        Returns:
            Received indices after the update, ascending.

        Raises:
            SessionNotFoundError: If the session is not live.
            AlreadyMergedError: If the session was merged meanwhile.
            ClientInputError: If the index is outside [0, total_chunks).
        """
        state = self._state(session_id)
        if state is None:
            artifact = self.merged_artifact(session_id)
            if artifact is not None:
                raise AlreadyMergedError(session_id, artifact.url)
            raise SessionNotFoundError(session_id)

        with state.lock:
            if state.merged is not None:
                raise AlreadyMergedError(session_id, state.merged.url)
            if state.closed:
                raise SessionNotFoundError(session_id)
            session = state.session
            if not 0 <= chunk_index < session.total_chunks:
                raise ClientInputError(
                    f"chunkIndex {chunk_index} outside [0, {session.total_chunks})",
                    {"field": "chunkIndex", "sessionId": session_id},
                )
            session.received_chunks.add(chunk_index)
            session.last_activity = self._clock()
            return session.uploaded_chunks()

    def forget_chunk(self, session_id: str, chunk_index: int) -> None:
        """Drop an index whose payload the store can no longer produce."""
        state = self._state(session_id)
        if state is None:
            return
        with state.lock:
            state.session.received_chunks.discard(chunk_index)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_complete(self, session_id: str) -> bool:
        """Check whether every chunk of a live session was received."""
        state = self._state(session_id)
        if state is None:
            return False
        with state.lock:
            return state.session.is_complete()

    def get(self, session_id: str) -> Optional[UploadSession]:
        """Get a snapshot of a live session, or None."""
        state = self._state(session_id)
        if state is None:
            return None
        with state.lock:
            return self._snapshot(state)

    def received(self, session_id: str) -> list[int]:
        """Get received indices of a session.

        A session this registry has not seen reports whatever the store
        still holds for it (chunks written before a restart), which is
        empty for a genuinely new upload.
        """
        state = self._state(session_id)
        if state is None:
            if self.merged_artifact(session_id) is not None:
                return []
            return self._chunk_store.list_chunks(session_id)
        with state.lock:
            return state.session.uploaded_chunks()

    def merged_artifact(self, session_id: str) -> Optional[MergedArtifact]:
        """Get the artifact of a merged session, if still remembered."""
        shard = self._shard(session_id)
        with shard.lock:
            tombstone = shard.merged.get(session_id)
        return tombstone.artifact if tombstone else None

    def active_count(self) -> int:
        """Number of live sessions."""
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.sessions)
        return total

    def merged_count(self) -> int:
        """Number of remembered merged sessions."""
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.merged)
        return total

    # -------------------------------------------------------------------------
    # Merge support
    # -------------------------------------------------------------------------

    @contextmanager
    def merge_guard(self, session_id: str) -> Iterator[UploadSession]:
        """Hold the session's merge lock for the duration of a merge.

        A caller that arrives while another merge runs waits for it; if that
        merge succeeded it then gets AlreadyMergedError, otherwise it
        proceeds with its own attempt.

        Yields:
            Snapshot of the session taken under the merge lock.

        Raises:
            AlreadyMergedError: If the session was merged already.
            SessionNotFoundError: If the session is unknown or was swept.
        """
        shard = self._shard(session_id)
        with shard.lock:
            state = shard.sessions.get(session_id)
            tombstone = shard.merged.get(session_id)

        if state is None:
            if tombstone is not None:
                raise AlreadyMergedError(session_id, tombstone.artifact.url)
            raise SessionNotFoundError(session_id)

        with state.merge_lock:
            with state.lock:
                if state.merged is not None:
                    raise AlreadyMergedError(session_id, state.merged.url)
                if state.closed:
                    raise SessionNotFoundError(session_id)
                snapshot = self._snapshot(state)
            yield snapshot

    def mark_merged(self, session_id: str, artifact: MergedArtifact) -> None:
        """Retire a session after its artifact is durable.

        Must be called inside ``merge_guard`` for the same session.
        """
        shard = self._shard(session_id)
        with shard.lock:
            state = shard.sessions.get(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)

        with state.lock:
            state.merged = artifact
            state.closed = True

        with shard.lock:
            shard.merged[session_id] = _Tombstone(artifact=artifact, merged_at=self._clock())
            shard.sessions.pop(session_id, None)

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    def sweep_expired(self, max_age_ms: int) -> list[str]:
        """Discard sessions idle for longer than ``max_age_ms``.

        Sessions with a merge in progress are skipped. Storage of every
        expired session is reclaimed through ``ChunkStore.discard``.
        Tombstones older than the same threshold are forgotten.

        Args:
            max_age_ms: Idle threshold in milliseconds.

        Returns:
            Ids of the discarded sessions.
        """
        now = self._clock()
        max_age = max_age_ms / 1000.0
        expired: list[str] = []

        for shard in self._shards:
            with shard.lock:
                for session_id, state in list(shard.sessions.items()):
                    if not state.merge_lock.acquire(blocking=False):
                        continue
                    try:
                        with state.lock:
                            if now - state.session.last_activity <= max_age:
                                continue
                            state.closed = True
                    finally:
                        state.merge_lock.release()
                    del shard.sessions[session_id]
                    expired.append(session_id)

                for session_id, tombstone in list(shard.merged.items()):
                    if now - tombstone.merged_at > max_age:
                        del shard.merged[session_id]

        for session_id in expired:
            self._chunk_store.discard(session_id)

        return expired

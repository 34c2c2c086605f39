"""UploadService application service.

The server-side entry point of the upload engine. It validates incoming
requests, coordinates the ChunkStore, SessionRegistry and MergeOrchestrator,
and records logs, traces and metrics for every operation.

Usage:
    from chunked_upload.application import UploadService
    from chunked_upload.adapters.outbound import FileArtifactSink, FileChunkStore

    service = UploadService(
        chunk_store=FileChunkStore("/data/chunks"),
        artifact_sink=FileArtifactSink("/data/uploads"),
    )
    service.write_chunk("s1", 0, 2, b"hello ", "greeting.txt")
    service.write_chunk("s1", 1, 2, b"world", "greeting.txt")
    artifact = service.merge("s1")
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.entities.chunk import Chunk
from chunked_upload.domain.entities.session import UploadSession
from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ChecksumMismatchError,
    ClientInputError,
    IncompleteUploadError,
    SessionNotFoundError,
    TransientStorageError,
    UploadError,
)
from chunked_upload.domain.services.merge_orchestrator import MergeOrchestrator
from chunked_upload.domain.services.resume_query import ResumeQueryService
from chunked_upload.domain.services.session_registry import SessionRegistry
from chunked_upload.domain.value_objects.identifiers import new_session_id, validate_session_id
from chunked_upload.infrastructure.logging import get_logger
from chunked_upload.infrastructure.metrics import UploadMetrics
from chunked_upload.infrastructure.tracing import trace_span
from chunked_upload.ports.inbound import UploadServiceStats
from chunked_upload.ports.outbound.artifact_sink import ArtifactSink
from chunked_upload.ports.outbound.chunk_store import ChunkStore

logger = get_logger(__name__)

# Merge outcome label per error type
_MERGE_RESULTS: dict[type, str] = {
    IncompleteUploadError: "incomplete",
    AlreadyMergedError: "already_merged",
    SessionNotFoundError: "not_found",
}


class UploadService:
    """Server side of the chunked upload engine.

    Implements the UploadServicePort. All methods are safe to call from many
    threads at once.

    Attributes:
        registry: The session registry
        max_age_ms: Default idle threshold for ``sweep_expired``
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        artifact_sink: ArtifactSink,
        registry: SessionRegistry | None = None,
        metrics: UploadMetrics | None = None,
        max_age_ms: int = 86_400_000,
        max_total_chunks: int = 100_000,
        max_chunk_bytes: int = 64 * 1024 * 1024,
        registry_shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the service.

        Args:
            chunk_store: Durable chunk storage.
            artifact_sink: Destination for merged artifacts.
            registry: Session registry; built over ``chunk_store`` if omitted.
            metrics: Prometheus metrics; metrics are skipped when None.
            max_age_ms: Default idle threshold for expiry sweeps.
            max_total_chunks: Largest chunk count a session may declare.
            max_chunk_bytes: Largest accepted chunk payload.
            registry_shards: Lock stripes for a registry built here.
            clock: Monotonic clock for a registry built here.
        """
        self._chunk_store = chunk_store
        self.registry = registry or SessionRegistry(
            chunk_store, shards=registry_shards, clock=clock
        )
        self._resume = ResumeQueryService(self.registry)
        self._merger = MergeOrchestrator(self.registry, chunk_store, artifact_sink)
        self._metrics = metrics
        self.max_age_ms = max_age_ms
        self._max_total_chunks = max_total_chunks
        self._max_chunk_bytes = max_chunk_bytes

        self._stats_lock = threading.Lock()
        self._chunks_written = 0
        self._bytes_written = 0
        self._merges_completed = 0
        self._sessions_expired = 0

    # =========================================================================
    # Sessions
    # =========================================================================

    def open_session(
        self,
        total_chunks: int,
        file_name: str,
        file_type: str = "",
        session_id: Optional[str] = None,
    ) -> UploadSession:
        """Open (or re-open) a session.

        Args:
            total_chunks: Declared chunk count.
            file_name: Declared file name.
            file_type: Declared MIME type.
            session_id: Client-chosen id; a fresh id is issued if omitted.

        Returns:
            Snapshot of the session.
        """
        sid = validate_session_id(session_id) if session_id is not None else new_session_id()
        self._validate_total(sid, total_chunks)
        return self._open(sid, total_chunks, file_name, file_type)

    def _open(
        self, session_id: str, total_chunks: int, file_name: str, file_type: str
    ) -> UploadSession:
        session, created = self.registry.open_or_create(
            session_id, total_chunks, file_name, file_type
        )
        if created:
            logger.info(
                "session_opened",
                session_id=session_id,
                total_chunks=total_chunks,
                file_name=file_name,
                resumed_chunks=len(session.received_chunks),
            )
            if self._metrics:
                self._metrics.sessions_opened.inc()
                self._metrics.sessions_active.set(self.registry.active_count())
        return session

    def get_session(self, session_id: str) -> Optional[UploadSession]:
        """Get a snapshot of a live session, or None."""
        return self.registry.get(validate_session_id(session_id))

    # =========================================================================
    # Chunks
    # =========================================================================

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
        """Durably store one chunk and record it.

        The first write of a session opens it. A chunk is recorded only
        after the store has persisted it.

        Args:
            session_id: Owning session.
            chunk_index: 0-based chunk index.
            total_chunks: Declared chunk count.
            data: Chunk payload.
            file_name: Declared file name.
            file_type: Declared MIME type.
            checksum: Optional sha256 hex digest of ``data``.

        Returns:
            Received indices of the session after this write.

        Raises:
            ClientInputError: If the request is malformed.
            ChecksumMismatchError: If ``checksum`` does not match ``data``.
            SessionConflictError: If ``total_chunks`` contradicts the session.
            AlreadyMergedError: If the session was merged already.
            TransientStorageError: If the store failed; retryable.
        """
        start = time.perf_counter()
        try:
            sid = validate_session_id(session_id)
            self._validate_total(sid, total_chunks)
            self._validate_chunk(sid, chunk_index, total_chunks, data)
            chunk = Chunk(session_id=sid, chunk_index=chunk_index, data=data)
            if checksum and not chunk.verify_checksum(checksum):
                raise ChecksumMismatchError(
                    sid, chunk_index, checksum, chunk.calculate_checksum()
                )

            with trace_span(
                "upload.write_chunk",
                {"session_id": sid, "chunk_index": chunk_index, "size": chunk.size},
            ):
                self._open(sid, total_chunks, file_name, file_type)
                try:
                    self._chunk_store.put(sid, chunk_index, data)
                except OSError as e:
                    raise TransientStorageError(str(e), sid, chunk_index) from e
                try:
                    received = self.registry.mark_received(sid, chunk_index)
                except AlreadyMergedError:
                    # Lost the race with a merge; the payload is an orphan
                    self._chunk_store.discard(sid)
                    raise

        except UploadError as e:
            if self._metrics:
                self._metrics.chunk_write_errors.labels(error_type=e.code).inc()
            log = logger.error if e.retryable else logger.warning
            log(
                "chunk_write_rejected",
                session_id=session_id,
                chunk_index=chunk_index,
                error=e.code,
                message=e.message,
            )
            raise

        with self._stats_lock:
            self._chunks_written += 1
            self._bytes_written += chunk.size
        if self._metrics:
            self._metrics.chunks_written.inc()
            self._metrics.chunk_bytes_written.inc(chunk.size)
            self._metrics.chunk_write_latency.observe(time.perf_counter() - start)

        logger.debug(
            "chunk_written",
            session_id=sid,
            chunk_index=chunk_index,
            size=chunk.size,
            received=len(received),
            total_chunks=total_chunks,
        )
        return received

    def query_uploaded(self, session_id: str) -> list[int]:
        """Get the chunk indices already durable for a session.

        Returns:
            Ascending indices; empty for an unknown session.
        """
        return self._resume.query_uploaded(validate_session_id(session_id))

    def _validate_total(self, session_id: str, total_chunks: int) -> None:
        if total_chunks <= 0:
            raise ClientInputError(
                f"totalChunks must be positive, got {total_chunks}",
                {"field": "totalChunks", "sessionId": session_id},
            )
        if total_chunks > self._max_total_chunks:
            raise ClientInputError(
                f"totalChunks {total_chunks} exceeds limit {self._max_total_chunks}",
                {"field": "totalChunks", "sessionId": session_id},
            )

    def _validate_chunk(
        self, session_id: str, chunk_index: int, total_chunks: int, data: Optional[bytes]
    ) -> None:
        if not 0 <= chunk_index < total_chunks:
            raise ClientInputError(
                f"chunkIndex {chunk_index} outside [0, {total_chunks})",
                {"field": "chunkIndex", "sessionId": session_id},
            )
        if data is None:
            raise ClientInputError(
                "chunk payload is required", {"field": "chunk", "sessionId": session_id}
            )
        if len(data) > self._max_chunk_bytes:
            raise ClientInputError(
                f"chunk of {len(data)} bytes exceeds limit {self._max_chunk_bytes}",
                {"field": "chunk", "sessionId": session_id},
            )

    # =========================================================================
    # Merge
    # =========================================================================

    def merge(
        self,
        session_id: str,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
    ) -> MergedArtifact:
        """Merge a complete session into its artifact, at most once.

        Raises:
            IncompleteUploadError: If chunks are missing.
            AlreadyMergedError: If the session was merged already.
            SessionNotFoundError: If the session is unknown.
            TransientStorageError: If the artifact write failed; retryable.
        """
        sid = validate_session_id(session_id)
        start = time.perf_counter()
        try:
            with trace_span("upload.merge", {"session_id": sid}):
                artifact = self._merger.merge(sid, file_name, file_type)
        except UploadError as e:
            result = _MERGE_RESULTS.get(type(e), "error")
            if self._metrics:
                self._metrics.merges.labels(result=result).inc()
            if result == "error":
                logger.error("merge_failed", session_id=sid, error=e.code, message=e.message)
            else:
                logger.info("merge_rejected", session_id=sid, result=result, **e.details)
            raise

        elapsed = time.perf_counter() - start
        with self._stats_lock:
            self._merges_completed += 1
        if self._metrics:
            self._metrics.merges.labels(result="merged").inc()
            self._metrics.merge_latency.observe(elapsed)
            self._metrics.artifact_bytes.inc(artifact.size)
            self._metrics.sessions_active.set(self.registry.active_count())

        logger.info(
            "session_merged",
            session_id=sid,
            artifact=artifact.name,
            size=artifact.size,
            checksum=artifact.checksum,
            duration_ms=round(elapsed * 1000, 2),
        )
        return artifact

    # =========================================================================
    # Expiry and stats
    # =========================================================================

    def sweep_expired(self, max_age_ms: Optional[int] = None) -> list[str]:
        """Discard sessions idle for longer than ``max_age_ms``.

        Args:
            max_age_ms: Idle threshold; the service default when omitted.

        Returns:
            Ids of the discarded sessions.
        """
        expired = self.registry.sweep_expired(
            self.max_age_ms if max_age_ms is None else max_age_ms
        )
        if expired:
            with self._stats_lock:
                self._sessions_expired += len(expired)
            logger.info("sessions_expired", count=len(expired), session_ids=expired)
        if self._metrics:
            self._metrics.sessions_expired.inc(len(expired))
            self._metrics.sessions_active.set(self.registry.active_count())
        return expired

    def get_stats(self) -> UploadServiceStats:
        """Get service statistics."""
        with self._stats_lock:
            return UploadServiceStats(
                active_sessions=self.registry.active_count(),
                merged_sessions=self.registry.merged_count(),
                chunks_written=self._chunks_written,
                bytes_written=self._bytes_written,
                merges_completed=self._merges_completed,
                sessions_expired=self._sessions_expired,
            )

"""Merge Orchestrator.

Turns a complete session into one artifact exactly once. The session's merge
lock is held from the completeness check until the session is retired, so
two concurrent merge requests can never both write an artifact.

Merge Flow:
    1. Acquire the session's merge guard (blocks behind a running merge)
    2. Re-check completeness under the guard
    3. Stream chunks 0..N-1 from the ChunkStore into the ArtifactSink
    4. Retire the session with its artifact (tombstone)
    5. Reclaim chunk storage, best effort

A failure in step 3 leaves the session and every chunk intact so the merge
can be retried.
"""

from __future__ import annotations

from typing import Optional

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.exceptions import IncompleteUploadError, MissingChunkError
from chunked_upload.domain.services.session_registry import SessionRegistry
from chunked_upload.domain.value_objects.identifiers import artifact_name
from chunked_upload.infrastructure.logging import get_logger
from chunked_upload.ports.outbound.artifact_sink import ArtifactSink
from chunked_upload.ports.outbound.chunk_store import ChunkStore

DEFAULT_CONTENT_TYPE = "application/octet-stream"

logger = get_logger(__name__)


class MergeOrchestrator:
    """Merges completed sessions into artifacts with at-most-once semantics."""

    def __init__(
        self,
        registry: SessionRegistry,
        chunk_store: ChunkStore,
        artifact_sink: ArtifactSink,
    ) -> None:
        self._registry = registry
        self._chunk_store = chunk_store
        self._sink = artifact_sink

    def merge(
        self,
        session_id: str,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
    ) -> MergedArtifact:
        """Merge a session's chunks into a single artifact.

        Args:
            session_id: Session to merge.
            file_name: File name for the artifact; the session's declared
                name when omitted.
            file_type: MIME type; the session's declared type when omitted.

        Returns:
            The durable artifact.

        Raises:
            IncompleteUploadError: If any chunk is missing. The session is
                left untouched.
            AlreadyMergedError: If the session was merged already.
            SessionNotFoundError: If the session is unknown.
            TransientStorageError: If the artifact could not be written; the
                session stays mergeable.
        """
        with self._registry.merge_guard(session_id) as session:
            missing = session.missing_chunks()
            if missing:
                raise IncompleteUploadError(session_id, missing)

            name = artifact_name(file_name or session.file_name)
            content_type = file_type or session.file_type or DEFAULT_CONTENT_TYPE

            try:
                artifact = self._sink.write(
                    session_id,
                    name,
                    self._chunk_store.read_in_order(session_id, session.total_chunks),
                    content_type,
                )
            except MissingChunkError as e:
                # Registry and store disagree; make the registry honest again
                logger.error(
                    "chunk_lost_before_merge",
                    session_id=session_id,
                    chunk_index=e.chunk_index,
                )
                self._registry.forget_chunk(session_id, e.chunk_index)
                refreshed = self._registry.get(session_id)
                still_missing = refreshed.missing_chunks() if refreshed else [e.chunk_index]
                raise IncompleteUploadError(session_id, still_missing) from e

            self._registry.mark_merged(session_id, artifact)

        self._chunk_store.discard(session_id)
        return artifact

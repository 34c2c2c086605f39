"""Chunked upload client protocol.

Splits a file into fixed-size chunks, asks the server which chunks it
already holds, sends only the missing ones (retrying each with backoff), and
finally requests the merge.

Upload Flow:
    1. query_uploaded -> skip chunks the server already has
    2. write_chunk for every missing chunk (sequential or thread pool)
    3. merge; on IncompleteUploadError re-query, re-send and merge again

Usage:
    with HttpUploadTransport("http://localhost:8000") as transport:
        client = ChunkedUploadClient(transport, on_progress=print)
        result = client.upload(Path("backup.tar"))
        print(result.artifact_url)
"""

from __future__ import annotations

import math
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, TypeVar, Union

from chunked_upload.domain.entities.chunk import chunk_checksum
from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ChunkUploadFailedError,
    IncompleteUploadError,
    SessionNotFoundError,
    UploadError,
)
from chunked_upload.domain.services.retry import RetryPolicy, retry_call
from chunked_upload.domain.value_objects.identifiers import DEFAULT_FILE_NAME, new_session_id
from chunked_upload.infrastructure.config import ClientConfig
from chunked_upload.infrastructure.logging import get_logger
from chunked_upload.ports.outbound.upload_transport import (
    ChunkWriteRequest,
    MergeResult,
    UploadTransport,
)

T = TypeVar("T")

Source = Union[bytes, bytearray, memoryview, str, Path]

DEFAULT_CHUNK_SIZE = 2 * 1024 * 1024

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a completed upload.

    Attributes:
        session_id: Session the file was uploaded under.
        artifact_url: Public URL of the merged artifact.
        total_chunks: Number of chunks the file was split into.
        chunks_sent: Chunk writes performed, re-sends included.
        chunks_skipped: Chunks the server already had at start.
        size: Artifact size as reported by the server.
        checksum: Artifact SHA-256 as reported by the server.
    """

    session_id: str
    artifact_url: str
    total_chunks: int
    chunks_sent: int
    chunks_skipped: int
    size: int = 0
    checksum: str = ""


class _ChunkSource:
    """Random access to the chunks of a byte string or a file."""

    def __init__(self, source: Source, chunk_size: int) -> None:
        self.chunk_size = chunk_size
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._data: Optional[bytes] = bytes(source)
            self.path: Optional[Path] = None
            self.size = len(self._data)
        else:
            self._data = None
            self.path = Path(source)
            self.size = self.path.stat().st_size
        # An empty file is still one (empty) chunk
        self.total_chunks = max(1, math.ceil(self.size / chunk_size))

    def read(self, chunk_index: int) -> bytes:
        start = chunk_index * self.chunk_size
        if self._data is not None:
            return self._data[start : start + self.chunk_size]
        with open(self.path, "rb") as f:
            f.seek(start)
            return f.read(self.chunk_size)


class ChunkedUploadClient:
    """Client side of the chunked upload protocol.

    Attributes:
        chunk_size: Chunk size in bytes
        max_workers: Parallel chunk senders (1 sends sequentially)
        max_merge_rounds: Merge attempts that may re-send missing chunks
    """

    def __init__(
        self,
        transport: UploadTransport,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retry_policy: RetryPolicy | None = None,
        max_workers: int = 1,
        max_merge_rounds: int = 3,
        on_progress: Optional[Callable[[int], None]] = None,
        on_chunk_complete: Optional[Callable[[int, int], None]] = None,
        on_retry: Optional[Callable[[int, int, Exception], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Channel to the upload server.
            chunk_size: Chunk size in bytes.
            retry_policy: Per-request retry policy.
            max_workers: Parallel chunk senders.
            max_merge_rounds: Merge attempts that may re-send missing chunks.
            on_progress: Called with the completed percentage (0-100).
            on_chunk_complete: Called as ``(chunk_index, total_chunks)``.
            on_retry: Called as ``(chunk_index, attempt, error)``; the chunk
                index is -1 for resume queries and merges.
            sleep: Sleep function used between retries.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        if max_merge_rounds < 1:
            raise ValueError(f"max_merge_rounds must be at least 1, got {max_merge_rounds}")

        self._transport = transport
        self.chunk_size = chunk_size
        self._policy = retry_policy or RetryPolicy()
        self.max_workers = max_workers
        self.max_merge_rounds = max_merge_rounds
        self._on_progress = on_progress
        self._on_chunk_complete = on_chunk_complete
        self._on_retry = on_retry
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, transport: UploadTransport, config: ClientConfig, **kwargs
    ) -> "ChunkedUploadClient":
        """Build a client from the ``client`` configuration section."""
        return cls(
            transport,
            chunk_size=config.chunk_size,
            retry_policy=RetryPolicy(
                max_retries=config.max_retries,
                retry_delay_ms=config.retry_delay_ms,
                backoff=config.backoff,
            ),
            max_workers=config.max_workers,
            max_merge_rounds=config.max_merge_rounds,
            **kwargs,
        )

    # =========================================================================
    # Upload
    # =========================================================================

    def upload(
        self,
        source: Source,
        file_name: Optional[str] = None,
        file_type: str = "application/octet-stream",
        session_id: Optional[str] = None,
    ) -> UploadResult:
        """Upload a file or byte string.

        Passing the ``session_id`` of an interrupted upload resumes it.

        Args:
            source: Path of the file, or its bytes.
            file_name: Declared file name; the path's name by default.
            file_type: Declared MIME type.
            session_id: Session to upload under; a fresh id if omitted.

        Returns:
            UploadResult with the artifact URL.

        Raises:
            ChunkUploadFailedError: If a chunk failed after all retries.
            IncompleteUploadError: If chunks were still missing after the
                last merge round.
            ClientInputError: If the server rejected the request.
        """
        chunks = _ChunkSource(source, self.chunk_size)
        if file_name is None:
            file_name = chunks.path.name if chunks.path else DEFAULT_FILE_NAME
        session_id = session_id or new_session_id()
        total = chunks.total_chunks

        present = {
            i
            for i in self._call(lambda: self._transport.query_uploaded(session_id))
            if 0 <= i < total
        }
        skipped = len(present)
        tracker = _ProgressTracker(total, present, self._on_progress)
        if present:
            logger.info(
                "upload_resumed", session_id=session_id, skipped=skipped, total_chunks=total
            )

        pending = [i for i in range(total) if i not in present]
        sent = 0
        try:
            sent += self._send_chunks(session_id, chunks, pending, file_name, file_type, tracker)

            for round_number in range(1, self.max_merge_rounds):
                try:
                    result = self._merge(session_id, file_name, file_type)
                except IncompleteUploadError as e:
                    uploaded = set(self._call(lambda: self._transport.query_uploaded(session_id)))
                    missing = sorted(
                        {i for i in range(total) if i not in uploaded} | set(e.missing_chunks)
                    )
                    logger.warning(
                        "merge_incomplete_resending",
                        session_id=session_id,
                        round=round_number,
                        missing_chunks=missing,
                    )
                except SessionNotFoundError:
                    missing = list(range(total))
                    logger.warning(
                        "merge_session_lost_resending", session_id=session_id, round=round_number
                    )
                else:
                    return self._completed(session_id, result, total, sent, skipped)

                sent += self._send_chunks(
                    session_id, chunks, missing, file_name, file_type, tracker
                )

            # Last round: failures propagate
            result = self._merge(session_id, file_name, file_type)
            return self._completed(session_id, result, total, sent, skipped)

        except AlreadyMergedError as e:
            # A previous attempt merged the session; its artifact is the result
            logger.info(
                "upload_already_merged", session_id=session_id, artifact_url=e.artifact_url
            )
            return UploadResult(
                session_id=session_id,
                artifact_url=e.artifact_url,
                total_chunks=total,
                chunks_sent=sent,
                chunks_skipped=skipped,
            )

    def _merge(self, session_id: str, file_name: str, file_type: str) -> MergeResult:
        return self._call(lambda: self._transport.merge(session_id, file_name, file_type))

    def _completed(
        self, session_id: str, result: MergeResult, total: int, sent: int, skipped: int
    ) -> UploadResult:
        logger.info(
            "upload_completed",
            session_id=session_id,
            artifact_url=result.artifact_url,
            chunks_sent=sent,
            chunks_skipped=skipped,
        )
        return UploadResult(
            session_id=session_id,
            artifact_url=result.artifact_url,
            total_chunks=total,
            chunks_sent=sent,
            chunks_skipped=skipped,
            size=result.size,
            checksum=result.checksum,
        )

    # =========================================================================
    # Chunk sending
    # =========================================================================

    def _send_chunks(
        self,
        session_id: str,
        chunks: _ChunkSource,
        indices: Iterable[int],
        file_name: str,
        file_type: str,
        tracker: "_ProgressTracker",
    ) -> int:
        indices = list(indices)
        if not indices:
            return 0

        def send(chunk_index: int) -> None:
            self._send_chunk(session_id, chunks, chunk_index, file_name, file_type)
            tracker.complete(chunk_index)
            if self._on_chunk_complete:
                self._on_chunk_complete(chunk_index, chunks.total_chunks)

        if self.max_workers == 1:
            for chunk_index in indices:
                send(chunk_index)
            return len(indices)

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="chunk-upload"
        ) as pool:
            futures = [pool.submit(send, chunk_index) for chunk_index in indices]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            for future in not_done:
                future.cancel()
            for future in futures:
                if future in done and future.exception() is not None:
                    raise future.exception()
        return len(indices)

    def _send_chunk(
        self,
        session_id: str,
        chunks: _ChunkSource,
        chunk_index: int,
        file_name: str,
        file_type: str,
    ) -> None:
        data = chunks.read(chunk_index)
        request = ChunkWriteRequest(
            session_id=session_id,
            chunk_index=chunk_index,
            total_chunks=chunks.total_chunks,
            data=data,
            file_name=file_name,
            file_type=file_type,
            checksum=chunk_checksum(data),
        )
        attempts = 0

        def attempt() -> list[int]:
            nonlocal attempts
            attempts += 1
            return self._transport.write_chunk(request)

        def on_retry(attempt_number: int, error: Exception) -> None:
            logger.warning(
                "chunk_retry",
                session_id=session_id,
                chunk_index=chunk_index,
                attempt=attempt_number,
                error=str(error),
            )
            if self._on_retry:
                self._on_retry(chunk_index, attempt_number, error)

        try:
            retry_call(attempt, self._policy, on_retry=on_retry, sleep=self._sleep)
        except UploadError as e:
            if not e.retryable:
                raise
            raise ChunkUploadFailedError(session_id, chunk_index, attempts) from e
        except Exception as e:
            raise ChunkUploadFailedError(session_id, chunk_index, attempts) from e

    def _call(self, fn: Callable[[], T]) -> T:
        """Run a resume query or merge under the retry policy."""

        def on_retry(attempt_number: int, error: Exception) -> None:
            logger.warning("request_retry", attempt=attempt_number, error=str(error))
            if self._on_retry:
                self._on_retry(-1, attempt_number, error)

        return retry_call(fn, self._policy, on_retry=on_retry, sleep=self._sleep)


class _ProgressTracker:
    """Thread-safe completed-chunk bookkeeping for progress callbacks."""

    def __init__(
        self,
        total_chunks: int,
        completed: set[int],
        on_progress: Optional[Callable[[int], None]],
    ) -> None:
        self._total = total_chunks
        self._completed = set(completed)
        self._on_progress = on_progress
        self._lock = threading.Lock()
        if completed and on_progress:
            on_progress(self.percent())

    def percent(self) -> int:
        return round(100 * len(self._completed) / self._total)

    def complete(self, chunk_index: int) -> None:
        with self._lock:
            self._completed.add(chunk_index)
            percent = self.percent()
        if self._on_progress:
            self._on_progress(percent)

"""File-based Chunk Store implementation.

This adapter implements the ChunkStore protocol on the local filesystem,
one directory per session.

Directory structure:
    chunk_dir/
        <session_id>/
            chunk-0
            chunk-1
            .chunk-2.<token>.tmp    (in-flight write, never listed)

Atomicity:
    Each payload is written to a hidden temp file, fsynced, then moved into
    place with os.replace, so a reader sees either the previous payload or
    the complete new one.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import uuid
from pathlib import Path
from typing import Iterator

from chunked_upload.domain.exceptions import MissingChunkError, TransientStorageError
from chunked_upload.infrastructure.logging import get_logger

CHUNK_PREFIX = "chunk-"
TEMP_SUFFIX = ".tmp"

logger = get_logger(__name__)


class FileChunkStore:
    """Filesystem implementation of the ChunkStore protocol.

    Attributes:
        root: Directory holding one namespace per session.
    """

    def __init__(self, root: str | Path, fsync: bool = True) -> None:
        """Initialize the store.

        Args:
            root: Root directory (created if missing).
            fsync: Flush each chunk to stable storage before committing it.
        """
        self._root = Path(root)
        self._fsync = fsync
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        """Root chunk directory."""
        return self._root

    def _session_dir(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id in (".", ".."):
            raise ValueError(f"Unsafe session id: {session_id!r}")
        return self._root / session_id

    def _chunk_path(self, session_id: str, chunk_index: int) -> Path:
        if chunk_index < 0:
            raise ValueError(f"chunk_index must be non-negative, got {chunk_index}")
        return self._session_dir(session_id) / f"{CHUNK_PREFIX}{chunk_index}"

    def put(self, session_id: str, chunk_index: int, data: bytes) -> None:
        """Persist a chunk atomically, overwriting any earlier payload.

        Raises:
            TransientStorageError: If the write fails.
        """
        final_path = self._chunk_path(session_id, chunk_index)
        temp_path = final_path.with_name(
            f".{final_path.name}.{uuid.uuid4().hex}{TEMP_SUFFIX}"
        )

        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as fh:
                fh.write(data)
                fh.flush()
                if self._fsync:
                    os.fsync(fh.fileno())
            os.replace(temp_path, final_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise TransientStorageError(
                f"Failed to write chunk {chunk_index} of session {session_id}: {e}",
                session_id=session_id,
                chunk_index=chunk_index,
            ) from e

    def list_chunks(self, session_id: str) -> list[int]:
        """List committed chunk indices, ascending."""
        session_dir = self._session_dir(session_id)
        try:
            names = os.listdir(session_dir)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise TransientStorageError(
                f"Failed to list chunks of session {session_id}: {e}",
                session_id=session_id,
            ) from e

        indices = []
        for name in names:
            if not name.startswith(CHUNK_PREFIX):
                continue
            suffix = name[len(CHUNK_PREFIX):]
            if suffix.isdigit():
                indices.append(int(suffix))
        return sorted(indices)

    def read_in_order(self, session_id: str, total_chunks: int) -> Iterator[bytes]:
        """Stream chunks in index order after checking every one is present.

        Raises:
            MissingChunkError: At the first absent index.
        """
        paths = []
        for index in range(total_chunks):
            path = self._chunk_path(session_id, index)
            if not path.is_file():
                raise MissingChunkError(session_id, index)
            paths.append(path)
        return self._iter_payloads(session_id, paths)

    def _iter_payloads(self, session_id: str, paths: list[Path]) -> Iterator[bytes]:
        for index, path in enumerate(paths):
            try:
                yield path.read_bytes()
            except FileNotFoundError as e:
                raise MissingChunkError(session_id, index) from e
            except OSError as e:
                raise TransientStorageError(
                    f"Failed to read chunk {index} of session {session_id}: {e}",
                    session_id=session_id,
                    chunk_index=index,
                ) from e

    def discard(self, session_id: str) -> None:
        """Remove the session directory; failures are logged only."""
        session_dir = self._session_dir(session_id)
        try:
            shutil.rmtree(session_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(
                "chunk_discard_failed",
                session_id=session_id,
                path=str(session_dir),
                error=str(e),
            )
            return
        logger.debug("chunks_discarded", session_id=session_id)

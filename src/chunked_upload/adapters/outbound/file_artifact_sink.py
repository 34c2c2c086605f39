"""File-based artifact sink.

Writes merged artifacts into a single directory and reports them under a
public URL prefix, e.g. ``/uploads/<name>``.
"""

from __future__ import annotations

import contextlib
import hashlib
import os
import uuid
from pathlib import Path
from typing import Iterable

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.exceptions import TransientStorageError


class FileArtifactSink:
    """Filesystem implementation of the ArtifactSink protocol.

    The merged stream goes to a hidden temp file, is fsynced, and is then
    renamed to its final name. Existing artifacts are never overwritten.
    """

    def __init__(
        self,
        root: str | Path,
        base_url: str = "/uploads",
        fsync: bool = True,
    ) -> None:
        """Initialize the sink.

        Args:
            root: Artifact directory (created if missing).
            base_url: URL prefix artifacts are served under.
            fsync: Flush artifacts to stable storage before renaming.
        """
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._fsync = fsync
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        """Artifact directory."""
        return self._root

    def path_for(self, name: str) -> Path:
        """Local path of an artifact."""
        return self._root / name

    def write(
        self,
        session_id: str,
        name: str,
        chunks: Iterable[bytes],
        content_type: str = "application/octet-stream",
    ) -> MergedArtifact:
        """Write the concatenated chunks as a new artifact.

        Raises:
            TransientStorageError: If the write fails or the name is taken.
        """
        final_path = self.path_for(name)
        temp_path = self._root / f".{name}.{uuid.uuid4().hex}.tmp"
        digest = hashlib.sha256()
        size = 0

        try:
            if final_path.exists():
                raise FileExistsError(f"Artifact {name} already exists")
            with open(temp_path, "wb") as fh:
                for payload in chunks:
                    fh.write(payload)
                    digest.update(payload)
                    size += len(payload)
                fh.flush()
                if self._fsync:
                    os.fsync(fh.fileno())
            os.replace(temp_path, final_path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise TransientStorageError(
                f"Failed to write artifact {name} for session {session_id}: {e}",
                session_id=session_id,
            ) from e
        except BaseException:
            with contextlib.suppress(OSError):
                temp_path.unlink()
            raise

        return MergedArtifact(
            session_id=session_id,
            name=name,
            url=f"{self._base_url}/{name}",
            size=size,
            checksum=digest.hexdigest(),
            content_type=content_type or "application/octet-stream",
        )

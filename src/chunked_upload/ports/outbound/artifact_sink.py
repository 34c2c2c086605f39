"""Artifact Sink port for merged files.

The sink receives the merged byte stream of a completed session and makes
it durable under a new, never-reused name. It stands in for any final
destination (local directory, object storage bucket).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Iterable, Protocol, runtime_checkable

from chunked_upload.domain.entities.artifact import MergedArtifact


@runtime_checkable
class ArtifactSink(Protocol):
    """Protocol for writing merged artifacts.

    Atomicity:
        The artifact becomes visible only once fully written. A failure
        part-way leaves nothing behind under ``name``.
    """

    @abstractmethod
    def write(
        self,
        session_id: str,
        name: str,
        chunks: Iterable[bytes],
        content_type: str = "application/octet-stream",
    ) -> MergedArtifact:
        """Write the concatenation of ``chunks`` as a new artifact.

        Args:
            session_id: Session the artifact was merged from.
            name: Collision-resistant artifact name.
            chunks: Payloads in file byte order.
            content_type: Declared MIME type.

        Returns:
            The durable artifact.

        Raises:
            TransientStorageError: If the write fails.
        """
        ...

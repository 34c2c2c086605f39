"""Upload session entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UploadSession:
    """Server-side state of one client's in-progress chunked upload.

    ``received_chunks`` holds the 0-based indices known to be durably
    persisted; it always stays within ``[0, total_chunks)``.
    """

    session_id: str
    total_chunks: int
    file_name: str = ""
    file_type: str = ""
    received_chunks: set[int] = field(default_factory=set)
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: float = 0.0

    def __post_init__(self) -> None:
        if self.total_chunks <= 0:
            raise ValueError(f"total_chunks must be positive, got {self.total_chunks}")
        stray = [i for i in self.received_chunks if not 0 <= i < self.total_chunks]
        if stray:
            raise ValueError(f"received chunk indices out of range: {sorted(stray)}")

    def is_complete(self) -> bool:
        """Check whether every chunk has arrived.

        Returns:
            True if all chunks are received.
        """
        return len(self.received_chunks) == self.total_chunks

    def missing_chunks(self) -> list[int]:
        """Get indices still to be uploaded, ascending."""
        return [i for i in range(self.total_chunks) if i not in self.received_chunks]

    def uploaded_chunks(self) -> list[int]:
        """Get received indices, ascending."""
        return sorted(self.received_chunks)

    def progress_percent(self) -> float:
        """Get upload progress.

        Returns:
            Percentage of chunks received, 0-100.
        """
        return round(100.0 * len(self.received_chunks) / self.total_chunks, 2)

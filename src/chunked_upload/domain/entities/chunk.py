"""Chunk entity for upload sessions."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass


def chunk_checksum(data: bytes) -> str:
    """SHA-256 hex digest of a chunk payload."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class Chunk:
    """One contiguous slice of the source file, identified by its index."""

    session_id: str
    chunk_index: int
    data: bytes

    def __post_init__(self) -> None:
        if self.chunk_index < 0:
            raise ValueError(f"chunk_index must be non-negative, got {self.chunk_index}")

    @property
    def size(self) -> int:
        return len(self.data)

    def calculate_checksum(self) -> str:
        """Calculate SHA256 checksum of data.

        Returns:
            Hex string of checksum.
        """
        return chunk_checksum(self.data)

    def verify_checksum(self, checksum: str) -> bool:
        """Verify chunk data against a declared checksum.

        Args:
            checksum: Expected SHA256 hex digest.

        Returns:
            True if checksum matches.
        """
        return checksum.lower() == self.calculate_checksum()

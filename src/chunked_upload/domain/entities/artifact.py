"""Merged artifact entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class MergedArtifact:
    """The final file produced by merging every chunk of a session."""

    session_id: str
    name: str
    url: str
    size: int
    checksum: str  # SHA256 of the merged bytes
    content_type: str = "application/octet-stream"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

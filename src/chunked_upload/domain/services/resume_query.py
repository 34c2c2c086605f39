"""Resume query service."""

from __future__ import annotations

from chunked_upload.domain.services.session_registry import SessionRegistry


class ResumeQueryService:
    """Answers which chunks of a session are already durable.

    Clients call this before sending anything so that a reconnecting upload
    never re-sends chunks the server already holds. Read-only.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    def query_uploaded(self, session_id: str) -> list[int]:
        """Get received chunk indices.

        Args:
            session_id: Session to query.

        Returns:
            Ascending indices; empty for a fresh upload.
        """
        return self._registry.received(session_id)

"""Value objects for the upload domain.

Exports:
    - SessionId: Type-safe session identifier
    - new_session_id, validate_session_id: Issue and check session ids
    - sanitize_file_name, artifact_name: Artifact naming
"""

from chunked_upload.domain.value_objects.identifiers import (
    SESSION_ID_PATTERN,
    SessionId,
    artifact_name,
    new_session_id,
    sanitize_file_name,
    validate_session_id,
)

__all__ = [
    "SessionId",
    "SESSION_ID_PATTERN",
    "new_session_id",
    "validate_session_id",
    "sanitize_file_name",
    "artifact_name",
]

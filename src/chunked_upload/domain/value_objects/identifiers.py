"""Identifiers and naming rules for upload sessions and artifacts.

Session ids name a storage namespace, so they are restricted to a
filesystem-safe alphabet. Declared file names are untrusted and only ever
reach the filesystem through ``sanitize_file_name``.
"""

from __future__ import annotations

import re
import time
import uuid
from typing import NewType

from chunked_upload.domain.exceptions import ClientInputError


SessionId = NewType("SessionId", str)
"""Opaque identifier of one logical file upload."""

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_FILE_NAME_LENGTH = 128
DEFAULT_FILE_NAME = "upload.bin"


def new_session_id() -> SessionId:
    """Issue a fresh server-side session id."""
    return SessionId(uuid.uuid4().hex)


def validate_session_id(value: str | None) -> SessionId:
    """Check a client-supplied session id.

    Args:
        value: Raw session id from the request.

    Returns:
        The id as a SessionId.

    Raises:
        ClientInputError: If the id is missing or malformed.
    """
    if not value:
        raise ClientInputError("sessionId is required", {"field": "sessionId"})
    if not SESSION_ID_PATTERN.match(value):
        raise ClientInputError(
            "sessionId must be 1-128 characters of [A-Za-z0-9._-] "
            "and start with a letter or digit",
            {"field": "sessionId"},
        )
    return SessionId(value)


def sanitize_file_name(file_name: str | None) -> str:
    """Reduce a declared file name to a safe basename.

    Directory components are dropped and runs of unsafe characters collapse
    to a single underscore.
    """
    if not file_name:
        return DEFAULT_FILE_NAME
    base = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_NAME_CHARS.sub("_", base).strip("._")
    if not safe:
        return DEFAULT_FILE_NAME
    return safe[-MAX_FILE_NAME_LENGTH:]


def artifact_name(file_name: str | None, now: float | None = None) -> str:
    """Build a collision-resistant artifact name.

    Format: ``<epoch-ms>-<8 hex>-<sanitized file name>``.
    """
    millis = int((time.time() if now is None else now) * 1000)
    return f"{millis}-{uuid.uuid4().hex[:8]}-{sanitize_file_name(file_name)}"

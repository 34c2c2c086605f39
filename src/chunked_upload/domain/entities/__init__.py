"""Domain entities."""

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.entities.chunk import Chunk, chunk_checksum
from chunked_upload.domain.entities.session import UploadSession

__all__ = [
    "UploadSession",
    "Chunk",
    "chunk_checksum",
    "MergedArtifact",
]

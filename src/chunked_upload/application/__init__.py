"""Application layer - orchestrates domain services for upload operations.

This module provides the server-side UploadService, the client-side
ChunkedUploadClient, and the background ExpirySweeper.
"""

from chunked_upload.application.expiry_sweeper import ExpirySweeper
from chunked_upload.application.upload_client import ChunkedUploadClient, UploadResult
from chunked_upload.application.upload_service import UploadService

__all__ = [
    "UploadService",
    "ChunkedUploadClient",
    "UploadResult",
    "ExpirySweeper",
]

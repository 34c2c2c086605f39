"""Domain services for the upload engine."""

from chunked_upload.domain.services.merge_orchestrator import MergeOrchestrator
from chunked_upload.domain.services.resume_query import ResumeQueryService
from chunked_upload.domain.services.retry import RetryPolicy, is_retryable, retry_call
from chunked_upload.domain.services.session_registry import SessionRegistry

__all__ = [
    "SessionRegistry",
    "ResumeQueryService",
    "MergeOrchestrator",
    "RetryPolicy",
    "retry_call",
    "is_retryable",
]

"""Infrastructure layer - cross-cutting concerns."""

from chunked_upload.infrastructure.config import Config, get_config
from chunked_upload.infrastructure.logging import get_logger, setup_logging
from chunked_upload.infrastructure.metrics import UploadMetrics, get_metrics, setup_metrics
from chunked_upload.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "UploadMetrics",
    "get_metrics",
    "setup_metrics",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]

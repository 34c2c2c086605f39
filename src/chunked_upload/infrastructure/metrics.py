"""Prometheus metrics for the upload engine."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)


class UploadMetrics:
    """Metrics collector for chunk ingestion, merges and expiry."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics.

        Args:
            registry: Registry to register collectors in (global by default).
        """
        self._registry = registry or REGISTRY

        # Chunk ingestion
        self.chunks_written = Counter(
            "chunked_upload_chunks_written_total",
            "Total chunks persisted",
            registry=self._registry,
        )
        self.chunk_bytes_written = Counter(
            "chunked_upload_chunk_bytes_written_total",
            "Total chunk payload bytes persisted",
            registry=self._registry,
        )
        self.chunk_write_errors = Counter(
            "chunked_upload_chunk_write_errors_total",
            "Total rejected or failed chunk writes",
            ["error_type"],
            registry=self._registry,
        )
        self.chunk_write_latency = Histogram(
            "chunked_upload_chunk_write_latency_seconds",
            "Chunk write latency",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        # Sessions
        self.sessions_opened = Counter(
            "chunked_upload_sessions_opened_total",
            "Total upload sessions created",
            registry=self._registry,
        )
        self.sessions_active = Gauge(
            "chunked_upload_sessions_active",
            "Number of live upload sessions",
            registry=self._registry,
        )
        self.sessions_expired = Counter(
            "chunked_upload_sessions_expired_total",
            "Total sessions discarded by the expiry sweep",
            registry=self._registry,
        )

        # Merges
        self.merges = Counter(
            "chunked_upload_merges_total",
            "Merge attempts by outcome",
            ["result"],  # merged, incomplete, already_merged, not_found, error
            registry=self._registry,
        )
        self.merge_latency = Histogram(
            "chunked_upload_merge_latency_seconds",
            "Successful merge latency",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self.artifact_bytes = Counter(
            "chunked_upload_artifact_bytes_total",
            "Total bytes of merged artifacts",
            registry=self._registry,
        )

        # System Info
        self.system_info = Info(
            "chunked_upload",
            "Upload engine information",
            registry=self._registry,
        )


_metrics: UploadMetrics | None = None


def get_metrics() -> UploadMetrics:
    """Get the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = UploadMetrics()
    return _metrics


def setup_metrics(port: int) -> UploadMetrics:
    """Start the Prometheus exposition server and return the metrics.

    Args:
        port: HTTP port for /metrics scraping; 0 skips the server.
    """
    metrics = get_metrics()
    if port:
        start_http_server(port)
    return metrics

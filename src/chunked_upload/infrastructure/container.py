"""Dependency injection container for the upload engine."""

from dataclasses import dataclass

import structlog
from opentelemetry import trace

from chunked_upload.adapters.outbound.file_artifact_sink import FileArtifactSink
from chunked_upload.adapters.outbound.file_chunk_store import FileChunkStore
from chunked_upload.application.expiry_sweeper import ExpirySweeper
from chunked_upload.application.upload_service import UploadService
from chunked_upload.infrastructure.config import Config, get_config
from chunked_upload.infrastructure.logging import setup_logging
from chunked_upload.infrastructure.metrics import UploadMetrics, setup_metrics
from chunked_upload.infrastructure.tracing import setup_tracing


@dataclass
class Container:
    """Dependency injection container for upload engine components."""

    config: Config
    logger: structlog.stdlib.BoundLogger
    tracer: trace.Tracer
    metrics: UploadMetrics
    upload_service: UploadService
    sweeper: ExpirySweeper

    _instance: "Container | None" = None

    @classmethod
    def create(cls) -> "Container":
        """Create and initialize the container with all dependencies."""
        if cls._instance is not None:
            return cls._instance

        config = get_config()
        observability = config.observability
        logger = setup_logging(observability.log_level, observability.log_format)
        tracer = setup_tracing(
            otlp_endpoint=observability.otlp_endpoint,
            environment=observability.environment,
        )
        metrics = setup_metrics(observability.metrics_port)
        metrics.system_info.info(
            {"version": "0.1.0", "environment": observability.environment}
        )

        config.ensure_directories()
        upload_service = UploadService(
            chunk_store=FileChunkStore(config.storage.chunk_dir, fsync=config.storage.fsync),
            artifact_sink=FileArtifactSink(
                config.storage.artifact_dir,
                base_url=config.storage.artifact_base_url,
                fsync=config.storage.fsync,
            ),
            metrics=metrics,
            max_age_ms=config.session.max_age_seconds * 1000,
            max_total_chunks=config.session.max_total_chunks,
            max_chunk_bytes=config.session.max_chunk_bytes,
            registry_shards=config.session.registry_shards,
        )
        sweeper = ExpirySweeper(
            upload_service, interval_seconds=config.session.sweep_interval_seconds
        )

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=metrics,
            upload_service=upload_service,
            sweeper=sweeper,
        )

        logger.info(
            "chunked_upload_container_initialized",
            environment=observability.environment,
            chunk_dir=str(config.storage.chunk_dir),
            artifact_dir=str(config.storage.artifact_dir),
            registry_shards=config.session.registry_shards,
        )

        return cls._instance

    @classmethod
    def get(cls) -> "Container":
        """Get the singleton container instance."""
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        if cls._instance is not None:
            cls._instance.sweeper.stop()
        cls._instance = None


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()

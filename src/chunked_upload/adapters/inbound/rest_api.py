"""FastAPI REST adapter for the upload engine.

Provides HTTP endpoints for chunk ingestion, resume queries and merges.
JSON field names are camelCase. Engine errors are rendered as
``{"detail": {"error": <code>, "message": ..., ...}}`` with the status code
the error declares; malformed requests are 400.

Usage:
    from chunked_upload.adapters.inbound.rest_api import create_app

    app = create_app()
    # Run with: uvicorn --factory chunked_upload.adapters.inbound.rest_api:create_app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from chunked_upload import __version__
from chunked_upload.application.expiry_sweeper import ExpirySweeper
from chunked_upload.domain.exceptions import SessionNotFoundError, UploadError
from chunked_upload.infrastructure.logging import get_logger
from chunked_upload.ports.inbound import UploadServicePort

logger = get_logger(__name__)


# Pydantic models for request/response serialization


class ApiModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OpenSessionRequest(ApiModel):
    """Request to open an upload session."""

    session_id: Optional[str] = Field(default=None, description="Client-chosen session id")
    total_chunks: int = Field(..., description="Number of chunks the file is split into")
    file_name: str = Field(default="", description="Declared file name")
    file_type: str = Field(default="", description="Declared MIME type")


class SessionResponse(ApiModel):
    """Opened session."""

    session_id: str
    total_chunks: int
    uploaded_chunks: list[int]


class SessionStatusResponse(ApiModel):
    """Session progress."""

    session_id: str
    file_name: str
    file_type: str
    total_chunks: int
    uploaded_chunks: list[int]
    missing_chunks: list[int]
    progress_percent: float


class CheckChunksRequest(ApiModel):
    """Resume query."""

    session_id: str


class UploadedChunksResponse(ApiModel):
    """Chunks already durable for a session."""

    uploaded_chunks: list[int]


class MergeRequest(ApiModel):
    """Request to merge a complete session."""

    session_id: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None


class MergeResponse(ApiModel):
    """Merged artifact."""

    artifact_url: str
    size: int
    checksum: str


class StatsResponse(ApiModel):
    """Service counters."""

    active_sessions: int
    merged_sessions: int
    chunks_written: int
    bytes_written: int
    merges_completed: int
    sessions_expired: int


class HealthResponse(ApiModel):
    """Health check response."""

    status: str
    version: str = __version__


def create_app(
    upload_service: UploadServicePort | None = None,
    sweeper: ExpirySweeper | None = None,
) -> FastAPI:
    """Create FastAPI application with upload endpoints.

    Args:
        upload_service: Service to expose; the container's when omitted.
        sweeper: Expiry sweeper run for the lifetime of the app; the
            container's when ``upload_service`` is omitted.

    Returns:
        Configured FastAPI application.
    """
    if upload_service is None:
        from chunked_upload.infrastructure.container import get_container

        container = get_container()
        upload_service = container.upload_service
        sweeper = sweeper or container.sweeper

    service = upload_service

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if sweeper is not None:
            sweeper.start()
        logger.info("upload_api_started")
        yield
        if sweeper is not None:
            sweeper.stop()
        logger.info("upload_api_stopped")

    app = FastAPI(
        title="Chunked Upload API",
        description="Chunked, resumable file uploads with at-most-once merge",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        fields = [str(err["loc"][-1]) for err in errors if err.get("loc")]
        message = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": {
                    "error": "invalid_request",
                    "message": message or "Invalid request",
                    "fields": fields,
                }
            },
        )

    # Health endpoints
    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check service health status."""
        return HealthResponse(status="healthy")

    @app.get("/stats", response_model=StatsResponse, tags=["System"])
    async def get_stats():
        """Get service counters."""
        stats = service.get_stats()
        return StatsResponse(
            active_sessions=stats.active_sessions,
            merged_sessions=stats.merged_sessions,
            chunks_written=stats.chunks_written,
            bytes_written=stats.bytes_written,
            merges_completed=stats.merges_completed,
            sessions_expired=stats.sessions_expired,
        )

    # Session endpoints
    @app.post(
        "/uploads/sessions",
        response_model=SessionResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Sessions"],
    )
    async def open_session(request: OpenSessionRequest):
        """Open an upload session, or re-open an existing one."""
        session = await run_in_threadpool(
            service.open_session,
            request.total_chunks,
            request.file_name,
            request.file_type,
            request.session_id,
        )
        return SessionResponse(
            session_id=session.session_id,
            total_chunks=session.total_chunks,
            uploaded_chunks=session.uploaded_chunks(),
        )

    @app.get(
        "/uploads/sessions/{session_id}",
        response_model=SessionStatusResponse,
        tags=["Sessions"],
    )
    async def get_session(session_id: str):
        """Get upload progress of a session."""
        session = await run_in_threadpool(service.get_session, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return SessionStatusResponse(
            session_id=session.session_id,
            file_name=session.file_name,
            file_type=session.file_type,
            total_chunks=session.total_chunks,
            uploaded_chunks=session.uploaded_chunks(),
            missing_chunks=session.missing_chunks(),
            progress_percent=session.progress_percent(),
        )

    @app.post(
        "/uploads/check-chunks", response_model=UploadedChunksResponse, tags=["Uploads"]
    )
    async def check_chunks(request: CheckChunksRequest):
        """List the chunks the server already holds for a session."""
        uploaded = await run_in_threadpool(service.query_uploaded, request.session_id)
        return UploadedChunksResponse(uploaded_chunks=uploaded)

    # Upload endpoints
    @app.post("/uploads/chunk", response_model=UploadedChunksResponse, tags=["Uploads"])
    async def upload_chunk(
        sessionId: str = Form(...),
        chunkIndex: int = Form(...),
        totalChunks: int = Form(...),
        fileName: str = Form(...),
        fileType: str = Form(default=""),
        checksum: Optional[str] = Form(default=None),
        chunk: UploadFile = File(...),
    ):
        """Store one chunk of a session."""
        data = await chunk.read()
        received = await run_in_threadpool(
            service.write_chunk,
            session_id=sessionId,
            chunk_index=chunkIndex,
            total_chunks=totalChunks,
            data=data,
            file_name=fileName,
            file_type=fileType,
            checksum=checksum,
        )
        return UploadedChunksResponse(uploaded_chunks=received)

    @app.post("/uploads/merge", response_model=MergeResponse, tags=["Uploads"])
    async def merge(request: MergeRequest):
        """Merge a complete session into its artifact."""
        artifact = await run_in_threadpool(
            service.merge, request.session_id, request.file_name, request.file_type
        )
        return MergeResponse(
            artifact_url=artifact.url, size=artifact.size, checksum=artifact.checksum
        )

    return app


def run_server(
    upload_service: UploadServicePort | None = None,
    host: str = "0.0.0.0",
    port: int = 8000,
) -> None:
    """Run the REST API server.

    The session registry lives in process memory, so the server runs as a
    single process.

    Args:
        upload_service: Service to expose; the container's when omitted.
        host: Host to bind to.
        port: Port to bind to.
    """
    import uvicorn

    app = create_app(upload_service)
    uvicorn.run(app, host=host, port=port, log_config=None)

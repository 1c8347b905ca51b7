"""FastAPI API routes for docingest.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                          Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/retrieval/process            POST    Process a stored file (form fields)
# /api/retrieval/process/docx       POST    Process pre-extracted DOCX text (JSON)
# /api/files/{file_id}/status       GET     Poll processing status
# /api/blobs/{path}                 GET     Download via signed URL
# /api/health                       GET     Health check + provider status
#
# Every route except health and blob download resolves the caller from
# ``Authorization: Bearer <token>`` against the stored profiles.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, Query, Request, Response
from fastapi.responses import JSONResponse

from docingest import __version__
from docingest.api.schemas import (
    DocxProcessRequest,
    FileStatusResponse,
    HealthResponse,
    ProcessFailureResponse,
    ProcessResponse,
)
from docingest.config.settings import Settings
from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.record_store import IRecordStore
from docingest.models.files import Profile
from docingest.models.ingestion import IngestionStats, JobRequest
from docingest.providers.blob_store.local_blob_store import LocalBlobStore
from docingest.services.ingestion.extractors import DocxExtractor, get_extractor
from docingest.services.ingestion.job_controller import IngestionJobController
from docingest.utils.errors import (
    AlreadyProcessedError,
    AuthenticationRequiredError,
    NotFoundError,
    UnauthorizedError,
    UnsupportedFormatError,
    classify_error,
)
from docingest.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Dependency injection helpers - resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_settings(request: Request) -> Settings:
    """Return the application settings from application state."""
    return request.app.state.settings


def _get_record_store(request: Request) -> IRecordStore:
    """Return the record store from application state."""
    return request.app.state.record_store


def _get_blob_store(request: Request) -> IBlobStore:
    """Return the blob store from application state."""
    return request.app.state.blob_store


def _get_job_controller(request: Request) -> IngestionJobController:
    """Return the ingestion job controller from application state."""
    return request.app.state.job_controller


SettingsDep = Annotated[Settings, Depends(_get_settings)]
RecordStoreDep = Annotated[IRecordStore, Depends(_get_record_store)]
BlobStoreDep = Annotated[IBlobStore, Depends(_get_blob_store)]
ControllerDep = Annotated[IngestionJobController, Depends(_get_job_controller)]


async def _get_caller(request: Request, records: RecordStoreDep) -> Profile:
    """Resolve the caller's profile from the bearer token."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationRequiredError()
    profile = await records.get_profile_by_token(token)
    if profile is None:
        raise UnauthorizedError("Unknown API token")
    return profile


CallerDep = Annotated[Profile, Depends(_get_caller)]


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


async def _run_job(
    controller: IngestionJobController,
    settings: Settings,
    job: JobRequest,
) -> JSONResponse:
    """Run *job* and shape the outcome into the processing response bodies."""
    start = time.monotonic()
    try:
        stats = await controller.run(job)
    except AlreadyProcessedError as exc:
        body = ProcessResponse(message=exc.public_message, statistics=IngestionStats())
        return JSONResponse(status_code=200, content=body.model_dump())
    except Exception as exc:
        error = classify_error(exc)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        _logger.error(
            "process_request_failed",
            file_id=job.file_id,
            kind=error.kind,
            status=error.status_code,
            error=str(error),
        )
        failure = ProcessFailureResponse(
            message=error.public_message,
            processing_time_ms=elapsed_ms,
            error=str(error) if settings.is_development else None,
        )
        return JSONResponse(
            status_code=error.status_code,
            content=failure.model_dump(exclude_none=True),
        )

    body = ProcessResponse(message="Embed Successful", statistics=stats)
    return JSONResponse(status_code=200, content=body.model_dump())


@router.post(
    "/retrieval/process",
    response_model=ProcessResponse,
    summary="Chunk, embed and store a previously uploaded file",
)
async def process_file(
    controller: ControllerDep,
    settings: SettingsDep,
    caller: CallerDep,
    file_id: Annotated[str, Form()] = "",
    embeddingsProvider: Annotated[str, Form()] = "",  # noqa: N803
) -> JSONResponse:
    job = JobRequest(
        file_id=file_id,
        embeddings_provider=embeddingsProvider,
        user_id=caller.user_id,
    )
    return await _run_job(controller, settings, job)


@router.post(
    "/retrieval/process/docx",
    response_model=ProcessResponse,
    summary="Chunk, embed and store pre-extracted DOCX text",
)
async def process_docx(
    payload: DocxProcessRequest,
    controller: ControllerDep,
    settings: SettingsDep,
    caller: CallerDep,
) -> JSONResponse:
    if not isinstance(get_extractor(payload.fileExtension), DocxExtractor):
        raise UnsupportedFormatError(f"Unsupported file type: '{payload.fileExtension}'")
    job = JobRequest(
        file_id=payload.fileId,
        embeddings_provider=payload.embeddingsProvider,
        user_id=caller.user_id,
        text=payload.text,
    )
    return await _run_job(controller, settings, job)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@router.get(
    "/files/{file_id}/status",
    response_model=FileStatusResponse,
    summary="Poll a file's processing status",
)
async def file_status(
    file_id: str,
    records: RecordStoreDep,
    caller: CallerDep,
) -> FileStatusResponse:
    record = await records.get_file(file_id)
    if record is None:
        raise NotFoundError(f"File not found: {file_id}")
    if record.user_id != caller.user_id:
        raise UnauthorizedError()
    return FileStatusResponse(
        file_id=record.id,
        name=record.name,
        processing_status=record.processing_status,
        processing_error=record.processing_error,
        processing_started_at=record.processing_started_at,
        processing_completed_at=record.processing_completed_at,
        tokens=record.tokens,
        chunk_count=await records.count_chunks(file_id),
    )


@router.get("/blobs/{path:path}", summary="Download a stored file via signed URL")
async def download_blob(
    path: str,
    blobs: BlobStoreDep,
    expires: Annotated[int, Query()],
    signature: Annotated[str, Query()],
) -> Response:
    if not isinstance(blobs, LocalBlobStore) or not blobs.verify_signature(path, expires, signature):
        raise UnauthorizedError("Invalid or expired signature")
    data = await blobs.download(path)
    if data is None:
        raise NotFoundError(f"File not found in storage: {path}")
    return Response(content=data, media_type="application/octet-stream")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("record_store", False) else "unhealthy"
    if status == "healthy" and not providers.get("tokenizer_exact", True):
        status = "degraded"

    return HealthResponse(status=status, version=__version__, providers=providers)

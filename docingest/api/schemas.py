"""Pydantic request/response schemas for the docingest API.

Field names follow the wire format the upload client sends
(``fileId``, ``embeddingsProvider``) and the polling fields exposed
for the file status.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from docingest.models.files import ProcessingStatus
from docingest.models.ingestion import IngestionStats


class DocxProcessRequest(BaseModel):
    """Pre-extracted DOCX text submitted for processing."""

    text: str = ""
    fileId: str = ""  # noqa: N815
    embeddingsProvider: str = ""  # noqa: N815
    fileExtension: str = "docx"  # noqa: N815


class ProcessResponse(BaseModel):
    """Successful (or already-processed) processing result."""

    message: str
    statistics: IngestionStats


class ProcessFailureResponse(BaseModel):
    """Failed processing attempt; ``error`` carries raw detail in development only."""

    message: str
    processing_time_ms: int
    error: str | None = None


class FileStatusResponse(BaseModel):
    """Polling view of a file's processing state."""

    file_id: str
    name: str
    processing_status: ProcessingStatus
    processing_error: str | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    tokens: int = 0
    chunk_count: int = 0


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    message: str
    error: str | None = None

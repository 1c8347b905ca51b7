"""File, profile and chunk-row records held by the record store.

All models use frozen config; state changes go through the record store,
which returns a fresh copy.  ``FileRecord.processing_status`` is the state
machine driven by the ingestion job controller::

    pending ──claim──► processing ──► completed
       ▲                    │
       │                    ├──► failed
       └── (retry claim) ◄──┴──► timeout
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProcessingStatus(str, Enum):
    """Lifecycle states of a file's processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


# States from which a new processing attempt may claim the file.
CLAIMABLE_STATUSES: frozenset[ProcessingStatus] = frozenset(
    {ProcessingStatus.PENDING, ProcessingStatus.FAILED, ProcessingStatus.TIMEOUT}
)


class FileRecord(BaseModel):
    """An uploaded file and its processing state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) for the file.")
    user_id: str = Field(description="Owner of the file.")
    name: str = Field(description="Sanitised file name including extension.")
    type: str = Field(default="", description="MIME type or extension reported at upload.")
    size: int = Field(default=0, ge=0, description="Declared size in bytes.")
    file_path: str = Field(default="", description="Blob-store path of the stored bytes.")
    tokens: int = Field(default=0, ge=0, description="Total tokens across all chunks.")
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_error: str | None = None
    created_at: datetime | None = None

    @property
    def extension(self) -> str:
        """Lower-cased extension after the last dot, or ``""``."""
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


class Profile(BaseModel):
    """A caller's profile: API token plus embedding-provider credentials."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    api_token: str = ""
    openai_api_key: str | None = None
    openai_organization_id: str | None = None
    use_azure_openai: bool = False
    azure_openai_api_key: str | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_embeddings_id: str | None = None


class ChunkRow(BaseModel):
    """One persisted chunk of a file, keyed by ``(file_id, position)``.

    Exactly one of the embedding columns is populated, depending on the
    provider slot the job ran with; both stay ``None`` when the chunk was
    skipped or its embedding failed.
    """

    model_config = ConfigDict(frozen=True)

    file_id: str
    user_id: str
    position: int = Field(ge=0)
    content: str
    tokens: int = Field(default=0, ge=0)
    openai_embedding: list[float] | None = None
    local_embedding: list[float] | None = None

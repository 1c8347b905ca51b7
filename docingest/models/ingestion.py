"""Data models for the chunk → plan → embed → persist pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# TextChunk - the unit produced by the chunker and embedded downstream.
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A token-bounded piece of extracted text."""

    model_config = ConfigDict(frozen=True)

    content: str
    # Measured with the same tokenizer the chunker enforces its bound with.
    token_count: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Batch planning
# ---------------------------------------------------------------------------
class SubBatch(BaseModel):
    """A contiguous run of chunk positions embedded in one provider request."""

    model_config = ConfigDict(frozen=True)

    positions: list[int] = Field(default_factory=list)
    token_count: int = Field(default=0, ge=0)

    @property
    def size(self) -> int:
        return len(self.positions)


class BatchPlan(BaseModel):
    """Ordered sub-batches plus the positions skipped as oversized."""

    model_config = ConfigDict(frozen=True)

    sub_batches: list[SubBatch] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Embeddings aligned one-to-one with the dispatched chunks."""

    model_config = ConfigDict(frozen=True)

    embeddings: list[list[float] | None] = Field(default_factory=list)
    sub_batches: int = 0
    skipped: list[int] = Field(default_factory=list)

    @property
    def embedded_count(self) -> int:
        return sum(1 for vector in self.embeddings if vector is not None)


# ---------------------------------------------------------------------------
# Job request / result
# ---------------------------------------------------------------------------
class JobRequest(BaseModel):
    """A request to process one stored file.

    ``text`` carries pre-extracted content (the DOCX pathway); when absent
    the controller downloads and extracts the stored blob itself.
    """

    model_config = ConfigDict(frozen=True)

    file_id: str
    embeddings_provider: str
    user_id: str
    text: str | None = None


class IngestionStats(BaseModel):
    """Statistics returned after a successful processing run."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    total_tokens: int = 0
    batches_processed: int = 0
    skipped_chunks: int = 0
    processing_time_ms: int = 0


# ---------------------------------------------------------------------------
# Client-side processing outcome
# ---------------------------------------------------------------------------
class ProcessingEvent(BaseModel):
    """Progress notification emitted by the client retry driver.

    ``kind`` is one of ``"retry_scheduled"``, ``"succeeded"`` or ``"failed"``.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    file_id: str
    attempt: int = Field(ge=1)
    message: str = ""
    delay_seconds: float | None = None


class ProcessingOutcome(BaseModel):
    """Final result of driving one file's processing from the client side."""

    model_config = ConfigDict(frozen=True)

    file_id: str
    success: bool
    attempts: int = Field(ge=1)
    status_code: int | None = None
    message: str = ""
    # "timeout", "network", "limit" or "generic"; None on success.
    failure_kind: str | None = None
    statistics: IngestionStats | None = None

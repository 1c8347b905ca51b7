"""Processing-job orchestration for one uploaded file.

Pipeline stages: **admit -> claim -> extract -> chunk -> embed -> persist -> finalize**.

The :class:`IngestionJobController` drives a file through its status state
machine (``pending → processing → completed | failed | timeout``):

    1. Admission -- validates the request without touching any state:
       selector, existence, ownership, no chunks yet, not already
       processing, size ceiling, supported extension, provider credentials.
    2. Claim -- an atomic compare-and-swap in the record store moves the
       file into ``processing``; losing the race is a ConcurrentJobError.
    3. Body -- runs under a wall-clock deadline.  Chunks are embedded and
       persisted in batches of ``persist_batch_size``; batch *i* is stored
       before batch *i+1* is embedded, so an interrupted job leaves a
       prefix of whole batches behind.  There is no rollback.
    4. Finalize -- ``completed`` with the token total on success, or
       ``timeout`` / ``failed`` with the error message on failure.

All collaborators are injected via the constructor so tests can swap in
fakes for the record store, blob store and embedding provider.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

import structlog

from docingest.config.settings import Settings
from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.interfaces.record_store import IRecordStore
from docingest.models.files import ChunkRow, FileRecord, ProcessingStatus, Profile
from docingest.models.ingestion import IngestionStats, JobRequest, TextChunk
from docingest.providers.embedding import build_embedding_provider, validate_selector
from docingest.services.ingestion.batch_planner import BatchPlanner
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.embedding_dispatcher import EmbeddingDispatcher
from docingest.services.ingestion.extractors import BaseExtractor, get_extractor
from docingest.utils.errors import (
    AlreadyProcessedError,
    BadRequestError,
    ConcurrentJobError,
    DeadlineExceededError,
    DocIngestError,
    EmptyOrUnprocessableError,
    FileTooLargeError,
    NotFoundError,
    UnauthorizedError,
    classify_error,
)

logger = structlog.get_logger(logger_name=__name__)

ProviderFactory = Callable[[str, Profile | None, Settings], IEmbeddingProvider]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionJobController:
    """Runs one processing attempt for one file.

    Parameters
    ----------
    record_store:
        Files, chunk rows and profiles.
    blob_store:
        Stored file bytes.
    chunker:
        Splits extracted text into token-bounded chunks.
    planner:
        Sizes embedding requests within provider quotas.
    settings:
        Size ceiling, deadline, lease and persistence batch size.
    provider_factory:
        Builds the embedding provider for the request's selector.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        chunker: TextChunker,
        planner: BatchPlanner,
        settings: Settings,
        provider_factory: ProviderFactory = build_embedding_provider,
    ) -> None:
        self._records = record_store
        self._blobs = blob_store
        self._chunker = chunker
        self._planner = planner
        self._settings = settings
        self._provider_factory = provider_factory

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, request: JobRequest) -> IngestionStats:
        """Process the requested file end to end.

        Raises
        ------
        DocIngestError
            Admission failures (no state changed) or the classified error
            that failed the attempt (file finalized as failed/timeout).
        """
        start = time.monotonic()
        log = logger.bind(file_id=request.file_id, provider=request.embeddings_provider)

        record, provider, extractor = await self._admit(request)

        claimed = await self._records.claim_file_for_processing(
            request.file_id,
            lease_seconds=self._settings.processing_lease_seconds,
        )
        if claimed is None:
            raise ConcurrentJobError()
        log.info("processing_started", name=record.name, size=record.size)

        try:
            stats = await asyncio.wait_for(
                self._process(claimed, request, provider, extractor, start),
                timeout=self._settings.processing_deadline_seconds,
            )
        except asyncio.CancelledError:
            await self._finalize_failure(
                request.file_id,
                DeadlineExceededError("Processing was cancelled before completion"),
            )
            raise
        except Exception as exc:
            error = classify_error(exc)
            await self._finalize_failure(request.file_id, error)
            log.error(
                "processing_failed",
                kind=error.kind,
                error=str(error),
                processing_time_ms=self._elapsed_ms(start),
            )
            if error is exc:
                raise
            raise error from exc

        log.info(
            "processing_completed",
            chunks=stats.total_chunks,
            tokens=stats.total_tokens,
            batches=stats.batches_processed,
            skipped=stats.skipped_chunks,
            processing_time_ms=stats.processing_time_ms,
        )
        return stats

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _admit(
        self, request: JobRequest
    ) -> tuple[FileRecord, IEmbeddingProvider, BaseExtractor]:
        """Validate *request*; raises before any state is mutated."""
        selector = validate_selector(request.embeddings_provider)
        if not request.file_id:
            raise BadRequestError("Missing file_id")

        record = await self._records.get_file(request.file_id)
        if record is None:
            raise NotFoundError(f"File not found: {request.file_id}")
        if record.user_id != request.user_id:
            raise UnauthorizedError()

        if await self._records.has_chunks(request.file_id):
            logger.info("file_already_processed", file_id=request.file_id)
            raise AlreadyProcessedError()

        if record.processing_status == ProcessingStatus.PROCESSING and not self._lease_expired(record):
            raise ConcurrentJobError()

        if record.size > self._settings.max_file_size_bytes:
            limit_mb = self._settings.max_file_size_bytes // (1024 * 1024)
            raise FileTooLargeError(f"File too large: Maximum size is {limit_mb}MB")

        extractor = get_extractor(record.extension)

        profile = await self._records.get_profile(request.user_id)
        provider = self._provider_factory(selector, profile, self._settings)
        return record, provider, extractor

    def _lease_expired(self, record: FileRecord) -> bool:
        lease = self._settings.processing_lease_seconds
        if lease <= 0 or record.processing_started_at is None:
            return False
        return (_utcnow() - record.processing_started_at).total_seconds() > lease

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    async def _process(
        self,
        record: FileRecord,
        request: JobRequest,
        provider: IEmbeddingProvider,
        extractor: BaseExtractor,
        start: float,
    ) -> IngestionStats:
        segments = await self._load_segments(record, request, extractor)
        chunks = await self._chunker.chunk_segments(segments)
        if not chunks:
            raise EmptyOrUnprocessableError()

        total_tokens = sum(c.token_count for c in chunks)
        logger.info(
            "file_chunked",
            file_id=record.id,
            chunks=len(chunks),
            tokens=total_tokens,
        )

        batches, skipped = await self._embed_and_persist(record, provider, chunks)

        await self._records.update_file(
            record.id,
            tokens=total_tokens,
            processing_status=ProcessingStatus.COMPLETED,
            processing_completed_at=_utcnow(),
            processing_error=None,
        )
        return IngestionStats(
            total_chunks=len(chunks),
            total_tokens=total_tokens,
            batches_processed=batches,
            skipped_chunks=skipped,
            processing_time_ms=self._elapsed_ms(start),
        )

    async def _load_segments(
        self,
        record: FileRecord,
        request: JobRequest,
        extractor: BaseExtractor,
    ) -> Iterable[str]:
        """Return the text segments to chunk: supplied text, or the extracted blob."""
        if request.text is not None:
            return [request.text]

        data = await self._blobs.download(record.file_path)
        if data is None:
            raise NotFoundError(f"File not found in storage: {record.file_path}")
        if not data:
            raise EmptyOrUnprocessableError()
        return extractor.extract(data)

    async def _embed_and_persist(
        self,
        record: FileRecord,
        provider: IEmbeddingProvider,
        chunks: list[TextChunk],
    ) -> tuple[int, int]:
        """Embed and store *chunks* batch by batch.  Returns (batches, skipped)."""
        dispatcher = EmbeddingDispatcher(provider, self._planner)
        batch_size = self._settings.persist_batch_size
        total_batches = (len(chunks) + batch_size - 1) // batch_size
        skipped = 0

        for batch_index, offset in enumerate(range(0, len(chunks), batch_size), start=1):
            batch = chunks[offset : offset + batch_size]
            result = await dispatcher.dispatch(batch)

            rows = [
                ChunkRow(
                    file_id=record.id,
                    user_id=record.user_id,
                    position=offset + i,
                    content=chunk.content,
                    tokens=chunk.token_count,
                    openai_embedding=vector if provider.slot == "openai" else None,
                    local_embedding=vector if provider.slot == "local" else None,
                )
                for i, (chunk, vector) in enumerate(zip(batch, result.embeddings))
            ]
            await self._records.upsert_chunks(rows)
            skipped += len(result.skipped)

            logger.info(
                "batch_persisted",
                file_id=record.id,
                batch=batch_index,
                of=total_batches,
                chunks=len(rows),
                embedded=result.embedded_count,
            )

        return total_batches, skipped

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def _finalize_failure(self, file_id: str, error: DocIngestError) -> None:
        """Record the failure on the file; a failure here is logged, not raised."""
        status = (
            ProcessingStatus.TIMEOUT
            if isinstance(error, DeadlineExceededError)
            else ProcessingStatus.FAILED
        )
        try:
            await self._records.update_file(
                file_id,
                processing_status=status,
                processing_completed_at=_utcnow(),
                processing_error=error.message,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "finalize_failure_update_failed",
                file_id=file_id,
                status=status.value,
                error=str(exc),
            )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

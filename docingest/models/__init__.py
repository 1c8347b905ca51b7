"""docingest domain models - re-exports all public model classes.

    - files.py     - file records, profiles, persisted chunk rows
    - ingestion.py - chunks, batch plans, dispatch results, job stats,
                     client-side processing outcomes
"""

from __future__ import annotations

from docingest.models.files import (
    CLAIMABLE_STATUSES,
    ChunkRow,
    FileRecord,
    ProcessingStatus,
    Profile,
)
from docingest.models.ingestion import (
    BatchPlan,
    DispatchResult,
    IngestionStats,
    JobRequest,
    ProcessingEvent,
    ProcessingOutcome,
    SubBatch,
    TextChunk,
)

__all__ = [
    "BatchPlan",
    "CLAIMABLE_STATUSES",
    "ChunkRow",
    "DispatchResult",
    "FileRecord",
    "IngestionStats",
    "JobRequest",
    "ProcessingEvent",
    "ProcessingOutcome",
    "ProcessingStatus",
    "Profile",
    "SubBatch",
    "TextChunk",
]

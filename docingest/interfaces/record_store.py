"""Abstract base class for the file/chunk/profile record store.

The record store owns three collections: ``files`` (one row per upload
with its processing status), ``file_items`` (persisted chunks keyed by
``(file_id, position)``) and ``profiles`` (caller credentials).  The
ingestion job controller relies on :meth:`claim_file_for_processing`
being atomic; every other operation is a plain read or write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docingest.models.files import ChunkRow, FileRecord, Profile


class IRecordStore(ABC):
    """Contract for the persistence of files, chunks and profiles.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    # -- files -------------------------------------------------------------

    @abstractmethod
    async def create_file(self, record: FileRecord) -> FileRecord:
        """Insert a new file record and return it as stored."""

    @abstractmethod
    async def get_file(self, file_id: str) -> FileRecord | None:
        """Return the file record, or ``None`` when it does not exist."""

    @abstractmethod
    async def update_file(self, file_id: str, **fields: Any) -> FileRecord | None:
        """Set the given columns on a file record and return the new state."""

    @abstractmethod
    async def claim_file_for_processing(
        self,
        file_id: str,
        lease_seconds: int = 0,
    ) -> FileRecord | None:
        """Atomically move a file into ``processing``.

        The transition succeeds only when the current status is one of
        ``pending``, ``failed`` or ``timeout``.  When *lease_seconds* is
        positive, a ``processing`` row whose ``processing_started_at`` is
        older than the lease may also be claimed.

        Returns
        -------
        FileRecord | None
            The claimed record, or ``None`` when no row was affected
            (another attempt holds the file).
        """

    # -- chunks ------------------------------------------------------------

    @abstractmethod
    async def has_chunks(self, file_id: str) -> bool:
        """Return ``True`` if at least one chunk row exists for the file."""

    @abstractmethod
    async def count_chunks(self, file_id: str) -> int:
        """Return the number of chunk rows stored for the file."""

    @abstractmethod
    async def list_chunks(self, file_id: str) -> list[ChunkRow]:
        """Return the file's chunk rows ordered by position."""

    @abstractmethod
    async def upsert_chunks(self, rows: list[ChunkRow]) -> int:
        """Insert or replace chunk rows keyed by ``(file_id, position)``.

        Returns the number of rows written.
        """

    # -- profiles ----------------------------------------------------------

    @abstractmethod
    async def create_profile(self, profile: Profile) -> Profile:
        """Insert or replace a caller profile."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Return the profile for *user_id*, or ``None``."""

    @abstractmethod
    async def get_profile_by_token(self, api_token: str) -> Profile | None:
        """Resolve an API bearer token to its profile, or ``None``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

"""SQLite-backed record store.

Persists file records, chunk rows and caller profiles to a local SQLite
database at ``data/docingest.db``.  Uses ``aiosqlite`` for async I/O.

The processing claim is a single conditional ``UPDATE``; SQLite executes it
atomically, so of two concurrent claimers exactly one sees a row affected.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docingest.interfaces.record_store import IRecordStore
from docingest.models.files import (
    CLAIMABLE_STATUSES,
    ChunkRow,
    FileRecord,
    ProcessingStatus,
    Profile,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docingest.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS files (
    id                      TEXT    PRIMARY KEY,
    user_id                 TEXT    NOT NULL,
    name                    TEXT    NOT NULL,
    type                    TEXT    NOT NULL DEFAULT '',
    size                    INTEGER NOT NULL DEFAULT 0,
    file_path               TEXT    NOT NULL DEFAULT '',
    tokens                  INTEGER NOT NULL DEFAULT 0,
    processing_status       TEXT    NOT NULL DEFAULT 'pending'
        CHECK (processing_status IN ('pending', 'processing', 'completed', 'failed', 'timeout')),
    processing_started_at   TEXT,
    processing_completed_at TEXT,
    processing_error        TEXT,
    created_at              TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
    """\
CREATE TABLE IF NOT EXISTS file_items (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id          TEXT    NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    user_id          TEXT    NOT NULL,
    position         INTEGER NOT NULL,
    content          TEXT    NOT NULL,
    tokens           INTEGER NOT NULL DEFAULT 0,
    openai_embedding TEXT,
    local_embedding  TEXT,
    created_at       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    UNIQUE(file_id, position)
);
""",
    """\
CREATE TABLE IF NOT EXISTS profiles (
    user_id                    TEXT    PRIMARY KEY,
    api_token                  TEXT    NOT NULL UNIQUE,
    openai_api_key             TEXT,
    openai_organization_id     TEXT,
    use_azure_openai           INTEGER NOT NULL DEFAULT 0,
    azure_openai_api_key       TEXT,
    azure_openai_endpoint      TEXT,
    azure_openai_embeddings_id TEXT
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS files_processing_status_idx ON files(processing_status);",
    "CREATE INDEX IF NOT EXISTS files_user_id_idx ON files(user_id);",
    "CREATE INDEX IF NOT EXISTS file_items_file_id_idx ON file_items(file_id);",
]

_INSERT_FILE_SQL = """\
INSERT INTO files (id, user_id, name, type, size, file_path, tokens, processing_status)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_CLAIMABLE_SQL_LIST = ", ".join(f"'{status.value}'" for status in sorted(CLAIMABLE_STATUSES))

_CLAIM_SQL = f"""\
UPDATE files
SET processing_status       = 'processing',
    processing_started_at   = ?,
    processing_completed_at = NULL,
    processing_error        = NULL
WHERE id = ?
  AND (
        processing_status IN ({_CLAIMABLE_SQL_LIST})
     OR (? AND processing_status = 'processing' AND processing_started_at < ?)
  );
"""

_UPSERT_CHUNK_SQL = """\
INSERT INTO file_items (file_id, user_id, position, content, tokens, openai_embedding, local_embedding)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(file_id, position)
DO UPDATE SET content          = excluded.content,
              tokens           = excluded.tokens,
              openai_embedding = excluded.openai_embedding,
              local_embedding  = excluded.local_embedding;
"""

_UPSERT_PROFILE_SQL = """\
INSERT INTO profiles (
    user_id, api_token, openai_api_key, openai_organization_id, use_azure_openai,
    azure_openai_api_key, azure_openai_endpoint, azure_openai_embeddings_id
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(user_id)
DO UPDATE SET api_token                  = excluded.api_token,
              openai_api_key             = excluded.openai_api_key,
              openai_organization_id     = excluded.openai_organization_id,
              use_azure_openai           = excluded.use_azure_openai,
              azure_openai_api_key       = excluded.azure_openai_api_key,
              azure_openai_endpoint      = excluded.azure_openai_endpoint,
              azure_openai_embeddings_id = excluded.azure_openai_embeddings_id;
"""

_UPDATABLE_FILE_COLUMNS = frozenset(
    {
        "name",
        "type",
        "size",
        "file_path",
        "tokens",
        "processing_status",
        "processing_started_at",
        "processing_completed_at",
        "processing_error",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    return value


def _chunk_from_row(row: aiosqlite.Row) -> ChunkRow:
    data = dict(row)
    for column in ("openai_embedding", "local_embedding"):
        if data.get(column) is not None:
            data[column] = json.loads(data[column])
    return ChunkRow(**data)


class SQLiteRecordStore(IRecordStore):
    """SQLite-backed persistence for files, chunks and profiles."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("record_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def create_file(self, record: FileRecord) -> FileRecord:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_FILE_SQL,
                (
                    record.id,
                    record.user_id,
                    record.name,
                    record.type,
                    record.size,
                    record.file_path,
                    record.tokens,
                    record.processing_status.value,
                ),
            )
            await db.commit()
        logger.info("file_record_created", file_id=record.id, user_id=record.user_id)
        created = await self.get_file(record.id)
        assert created is not None
        return created

    async def get_file(self, file_id: str) -> FileRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM files WHERE id = ?", (file_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return FileRecord(**dict(row))

    async def update_file(self, file_id: str, **fields: Any) -> FileRecord | None:
        """Set the given columns on a file record and return the new state."""
        unknown = set(fields) - _UPDATABLE_FILE_COLUMNS
        if unknown:
            msg = f"Cannot update file columns: {sorted(unknown)}"
            raise ValueError(msg)
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            params = [_to_db(value) for value in fields.values()]
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    f"UPDATE files SET {assignments} WHERE id = ?",  # noqa: S608
                    (*params, file_id),
                )
                await db.commit()
        return await self.get_file(file_id)

    async def claim_file_for_processing(
        self,
        file_id: str,
        lease_seconds: int = 0,
    ) -> FileRecord | None:
        """Compare-and-swap the file into ``processing``; ``None`` if not claimable."""
        now = _utcnow()
        lease_cutoff = now - timedelta(seconds=max(lease_seconds, 0))
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _CLAIM_SQL,
                (
                    _to_db(now),
                    file_id,
                    1 if lease_seconds > 0 else 0,
                    _to_db(lease_cutoff),
                ),
            )
            await db.commit()
            claimed = cursor.rowcount == 1

        if not claimed:
            logger.info("file_claim_rejected", file_id=file_id)
            return None
        logger.info("file_claimed", file_id=file_id, status=ProcessingStatus.PROCESSING.value)
        return await self.get_file(file_id)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def has_chunks(self, file_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT 1 FROM file_items WHERE file_id = ? LIMIT 1", (file_id,)
            )
            row = await cursor.fetchone()
        return row is not None

    async def count_chunks(self, file_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM file_items WHERE file_id = ?", (file_id,)
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def list_chunks(self, file_id: str) -> list[ChunkRow]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT file_id, user_id, position, content, tokens, "
                "openai_embedding, local_embedding "
                "FROM file_items WHERE file_id = ? ORDER BY position",
                (file_id,),
            )
            rows = await cursor.fetchall()
        return [_chunk_from_row(r) for r in rows]

    async def upsert_chunks(self, rows: list[ChunkRow]) -> int:
        """Insert or replace chunk rows in one transaction."""
        if not rows:
            return 0
        params = [
            (
                row.file_id,
                row.user_id,
                row.position,
                row.content,
                row.tokens,
                json.dumps(row.openai_embedding) if row.openai_embedding is not None else None,
                json.dumps(row.local_embedding) if row.local_embedding is not None else None,
            )
            for row in rows
        ]
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.executemany(_UPSERT_CHUNK_SQL, params)
            await db.commit()
        return len(rows)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def create_profile(self, profile: Profile) -> Profile:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_PROFILE_SQL,
                (
                    profile.user_id,
                    profile.api_token,
                    profile.openai_api_key,
                    profile.openai_organization_id,
                    1 if profile.use_azure_openai else 0,
                    profile.azure_openai_api_key,
                    profile.azure_openai_endpoint,
                    profile.azure_openai_embeddings_id,
                ),
            )
            await db.commit()
        logger.info("profile_saved", user_id=profile.user_id)
        return profile

    async def get_profile(self, user_id: str) -> Profile | None:
        return await self._fetch_profile("user_id", user_id)

    async def get_profile_by_token(self, api_token: str) -> Profile | None:
        if not api_token:
            return None
        return await self._fetch_profile("api_token", api_token)

    async def _fetch_profile(self, column: str, value: str) -> Profile | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT * FROM profiles WHERE {column} = ?",  # noqa: S608
                (value,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Profile(**dict(row))

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_record_store"

"""Upload flow: store the raw file, create its record, schedule processing.

The upload returns as soon as the bytes are stored and the record exists;
processing is requested in the background through the
:class:`~docingest.client.retry_driver.ProcessingRetryDriver` and its
outcome is observed by polling the file status (or via the driver's
``notify`` callback).
"""

from __future__ import annotations

import asyncio
import base64
import re
import uuid

import structlog

from docingest.client.retry_driver import ProcessingHandle, ProcessingRetryDriver
from docingest.config.settings import Settings
from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.record_store import IRecordStore
from docingest.models.files import FileRecord
from docingest.providers.embedding import validate_selector
from docingest.services.ingestion.extractors import read_docx_text
from docingest.utils.errors import BadRequestError, FileTooLargeError

logger = structlog.get_logger(logger_name=__name__)

_MAX_NAME_LENGTH = 100
_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9.]", re.IGNORECASE)


def sanitize_filename(name: str) -> str:
    """Replace characters outside ``[a-z0-9.]`` with ``_``, lower-case, cap at 100 chars.

    The base name is trimmed so that base, dot and extension together fit.
    """
    cleaned = _UNSAFE_CHARS_RE.sub("_", name).lower()
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    dot = cleaned.rfind(".")
    base = cleaned if dot < 0 else cleaned[:dot]
    if not extension:
        return base[:_MAX_NAME_LENGTH]
    max_base = _MAX_NAME_LENGTH - len(extension) - 1
    return f"{base[:max_base]}.{_UNSAFE_CHARS_RE.sub('_', extension)}"


def storage_path(user_id: str, file_id: str) -> str:
    """Blob path ``<user_id>/<url-safe base64 of file_id>``.

    Keyed by the record id, so two uploads with the same name never share
    (or overwrite) stored bytes.
    """
    encoded = base64.urlsafe_b64encode(file_id.encode("utf-8")).decode("ascii")
    return f"{user_id}/{encoded}"


class FileUploadService:
    """Stores uploads and schedules their processing."""

    def __init__(
        self,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        driver: ProcessingRetryDriver,
        settings: Settings,
    ) -> None:
        self._records = record_store
        self._blobs = blob_store
        self._driver = driver
        self._settings = settings
        self._handles: dict[str, ProcessingHandle] = {}

    async def upload(
        self,
        user_id: str,
        name: str,
        data: bytes,
        embeddings_provider: str,
        content_type: str = "",
    ) -> FileRecord:
        """Store *data* as a new file and schedule its processing.

        Returns the stored file record (status ``pending``) without waiting
        for processing.
        """
        validate_selector(embeddings_provider)
        if not name:
            raise BadRequestError("Missing file name")
        limit = self._settings.max_file_size_bytes
        if len(data) > limit:
            raise FileTooLargeError(f"File must be less than {limit // (1024 * 1024)}MB")

        safe_name = sanitize_filename(name)
        record = await self._records.create_file(
            FileRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                name=safe_name,
                type=content_type or safe_name.rsplit(".", 1)[-1],
                size=len(data),
            )
        )

        path = await self._blobs.upload(storage_path(user_id, record.id), data)
        stored = await self._records.update_file(record.id, file_path=path)
        assert stored is not None

        text: str | None = None
        if stored.extension == "docx":
            text = await asyncio.to_thread(read_docx_text, data)

        handle = self._driver.schedule(stored.id, embeddings_provider, text=text)
        self._handles[stored.id] = handle
        handle.add_done_callback(self._forget_handle)
        logger.info(
            "file_uploaded",
            file_id=stored.id,
            name=stored.name,
            size=stored.size,
            provider=embeddings_provider,
        )
        return stored

    def get_handle(self, file_id: str) -> ProcessingHandle | None:
        """Handle of a flow that is still running; finished flows are dropped."""
        return self._handles.get(file_id)

    def _forget_handle(self, handle: ProcessingHandle) -> None:
        if self._handles.get(handle.file_id) is handle:
            del self._handles[handle.file_id]

    def cancel_processing(self, file_id: str) -> bool:
        """Cancel the scheduled processing of *file_id*, including pending retries."""
        handle = self._handles.pop(file_id, None)
        if handle is None or handle.done():
            return False
        logger.info("processing_cancelled", file_id=file_id)
        return handle.cancel()

    async def get_file_url(self, file: FileRecord) -> str:
        """Signed download URL for a stored file (24 h by default)."""
        return await self._blobs.create_signed_url(
            file.file_path, self._settings.signed_url_ttl_seconds
        )

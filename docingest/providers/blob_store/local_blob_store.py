"""Filesystem-backed blob store.

Stores file bytes under a root directory (``data/blobs`` by default).
Blocking file I/O runs in worker threads via :func:`asyncio.to_thread`.
Signed URLs carry an expiry and an HMAC-SHA256 signature over
``path:expiry``; :meth:`LocalBlobStore.verify_signature` checks both.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import time
from pathlib import Path
from urllib.parse import quote, urlencode

import structlog

from docingest.interfaces.blob_store import IBlobStore
from docingest.utils.errors import BadRequestError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_ROOT = Path("data/blobs")


class LocalBlobStore(IBlobStore):
    """Blob store keeping each object as a file below *root_dir*."""

    def __init__(
        self,
        root_dir: str | Path = _DEFAULT_ROOT,
        signing_secret: str = "change-me",
        base_url: str = "/files",
    ) -> None:
        self._root = Path(root_dir).resolve()
        self._secret = signing_secret.encode("utf-8")
        self._base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Map a store path onto the filesystem, rejecting escapes from the root."""
        if not path or path.startswith("/"):
            raise BadRequestError(f"Invalid storage path: {path!r}")
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            raise BadRequestError(f"Invalid storage path: {path!r}")
        return target

    # ------------------------------------------------------------------
    # IBlobStore implementation
    # ------------------------------------------------------------------

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("blob_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes | None:
        target = self._resolve(path)

        def _read() -> bytes | None:
            if not target.is_file():
                return None
            return target.read_bytes()

        return await asyncio.to_thread(_read)

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def _remove() -> bool:
            if not target.is_file():
                return False
            target.unlink()
            return True

        removed = await asyncio.to_thread(_remove)
        if removed:
            logger.info("blob_deleted", path=path)
        return removed

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return ``<base_url>/<path>?expires=<unix>&signature=<hex>``."""
        self._resolve(path)
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._sign(path, expires)})
        return f"{self._base_url}/{quote(path)}?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        """Return ``True`` if *signature* matches and *expires* is in the future."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(path, expires), signature)

    def _sign(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def get_provider_name(self) -> str:
        return "local_blob_store"

"""Abstract base class for binary object storage.

Uploaded files are stored under ``<user_id>/<encoded name>`` paths and
read back by the ingestion job controller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IBlobStore(ABC):
    """Contract for storing and retrieving file bytes."""

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Store *data* at *path*, replacing any existing object.

        Returns the stored path.
        """

    @abstractmethod
    async def download(self, path: str) -> bytes | None:
        """Return the bytes stored at *path*, or ``None`` if absent."""

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove the object at *path*.  Returns ``True`` if it existed."""

    @abstractmethod
    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return a time-limited URL granting read access to *path*.

        Parameters
        ----------
        path:
            Stored object path.
        expires_in:
            Lifetime of the URL in seconds.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

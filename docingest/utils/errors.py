"""Custom exception hierarchy for docingest.

All application exceptions inherit from :class:`DocIngestError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "fastembed", "sqlite") caused the failure.

Every subclass also declares the HTTP-style ``status_code`` reported at the
API boundary, a short ``kind`` label used in logs, and a ``public_message``
shown to end users in place of the raw internal message.

    DocIngestError  (base -- catch-all)
    +-- BadRequestError            400  missing/invalid selector or identifiers
    +-- AuthenticationRequiredError 401 no caller credentials
    +-- UnauthorizedError          403  unknown caller / file of another user
    +-- NotFoundError              404  file record or stored blob missing
    +-- AlreadyProcessedError      200  chunks already exist (benign no-op)
    +-- ConcurrentJobError         409  another attempt holds the file
    +-- FileTooLargeError          413  declared size over the ceiling
    +-- ChunkTooLargeError         413  single chunk over the provider ceiling
    +-- UnsupportedFormatError     400  no extractor for the extension
    +-- EmptyOrUnprocessableError  400  extraction produced no chunks
    +-- ProviderAuthMissingError   400  embeddings credential absent/invalid
    +-- DeadlineExceededError      408  processing deadline expired
    +-- TransientError             503  network / connection class
    +-- EmbeddingError             500  embedding provider failure
    +-- ConfigurationError         500  startup / missing config
    +-- UnknownError               500  anything unclassified

Only :class:`TransientError` (and client-side timeouts) are retried, and
only by :class:`~docingest.client.retry_driver.ProcessingRetryDriver`.
"""

from __future__ import annotations

import asyncio

import httpx


class DocIngestError(Exception):
    """Base exception for all docingest errors.

    ``__str__`` prefixes the provider name in brackets for log output,
    e.g. ``[openai] Rate limit exceeded``.  Subclasses only declare class
    attributes; ``user_message = None`` means the internal message is safe
    to show as-is.
    """

    status_code: int = 500
    kind: str = "unknown"
    default_message: str = "An unexpected error occurred"
    user_message: str | None = "An unexpected error occurred during file processing"

    def __init__(
        self,
        message: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._message = message or self.default_message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def public_message(self) -> str:
        """Message reported to end users in API responses."""
        return self.user_message if self.user_message is not None else self._message

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Request / admission errors
# ---------------------------------------------------------------------------

class BadRequestError(DocIngestError):
    """Missing or invalid request parameters."""

    status_code = 400
    kind = "bad_request"
    default_message = "Invalid request"
    user_message = None


class AuthenticationRequiredError(DocIngestError):
    """The request carries no usable caller credentials."""

    status_code = 401
    kind = "unauthenticated"
    default_message = "Missing or malformed Authorization header"
    user_message = "Authentication required."


class UnauthorizedError(DocIngestError):
    """The caller does not own the requested file."""

    status_code = 403
    kind = "unauthorized"
    default_message = "Unauthorized: File belongs to different user"
    user_message = "Unauthorized access to file."


class NotFoundError(DocIngestError):
    status_code = 404
    kind = "not_found"
    default_message = "File not found"
    user_message = "File not found. It may have been deleted."


class AlreadyProcessedError(DocIngestError):
    """Chunks already exist for the file.

    A benign no-op: the API answers 200 and the file status is untouched.
    """

    status_code = 200
    kind = "already_processed"
    default_message = "File already processed"
    user_message = "File already processed"


class ConcurrentJobError(DocIngestError):
    """Another attempt currently holds the file in ``processing``."""

    status_code = 409
    kind = "concurrent_job"
    default_message = "File is currently being processed by another request"
    user_message = "File is currently being processed. Please wait for it to finish."


# ---------------------------------------------------------------------------
# Content errors
# ---------------------------------------------------------------------------

class FileTooLargeError(DocIngestError):
    """Declared size is over the ceiling; raised before any work starts."""

    status_code = 413
    kind = "too_large"
    default_message = "File too large: Maximum size is 200MB"
    user_message = "File is too large for processing. Please try a smaller file."


class ChunkTooLargeError(DocIngestError):
    """A single chunk exceeds the provider's per-request ceiling."""

    status_code = 413
    kind = "limit"
    default_message = "Chunk exceeds token limit"
    user_message = "File exceeds processing limits. Please try a smaller file."


class UnsupportedFormatError(DocIngestError):
    status_code = 400
    kind = "unsupported_format"
    default_message = "Unsupported file type"
    user_message = "Unsupported file type"


class EmptyOrUnprocessableError(DocIngestError):
    """The file is empty or extraction yields no chunks."""

    status_code = 400
    kind = "empty"
    default_message = "File could not be processed or is empty"
    user_message = "File could not be processed or is empty"


# ---------------------------------------------------------------------------
# Provider / infrastructure errors
# ---------------------------------------------------------------------------

class ProviderAuthMissingError(DocIngestError):
    """The embeddings credential for the chosen provider is absent or rejected."""

    status_code = 400
    kind = "provider_auth"
    default_message = "Embeddings API key not found"
    user_message = None


class DeadlineExceededError(DocIngestError):
    status_code = 408
    kind = "timeout"
    default_message = "Processing timeout exceeded"
    user_message = "Processing timed out. The file is too large or complex for processing."


class TransientError(DocIngestError):
    """Network/connection failure that may succeed on retry."""

    status_code = 503
    kind = "network"
    default_message = "Network connection failed"
    user_message = "Network error during processing. Please try again."


class EmbeddingError(DocIngestError):
    """An embedding provider call failed or answered inconsistently."""

    kind = "embedding"
    default_message = "Embedding generation failed"
    user_message = None


class ConfigurationError(DocIngestError):
    """Invalid or missing configuration at startup."""

    default_message = "Invalid or missing configuration"


class UnknownError(DocIngestError):
    """Wrapper for exceptions outside the hierarchy."""

    user_message = None


def classify_error(exc: BaseException) -> DocIngestError:
    """Map any exception onto the docingest hierarchy.

    Hierarchy members are returned unchanged.  Deadline expiry and task
    cancellation become :class:`DeadlineExceededError`; transport-level
    failures become :class:`TransientError`; everything else is wrapped in
    :class:`UnknownError`.
    """
    if isinstance(exc, DocIngestError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, asyncio.CancelledError)):
        return DeadlineExceededError(f"Processing timeout exceeded: {str(exc) or 'deadline reached'}")
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return TransientError(f"Network connection failed: {exc}")
    return UnknownError(str(exc) or type(exc).__name__)

"""Utility modules for docingest.

- **errors** -- Domain exception hierarchy rooted at DocIngestError; each
  class carries the HTTP status code and user-facing message reported at
  the API boundary, and ``classify_error`` folds foreign exceptions in.
- **logging** -- structlog setup with secret redaction and request context;
  coloured console output in development, structured JSON in production.
"""

from docingest.utils.errors import (
    AlreadyProcessedError,
    AuthenticationRequiredError,
    BadRequestError,
    ChunkTooLargeError,
    ConcurrentJobError,
    ConfigurationError,
    DeadlineExceededError,
    DocIngestError,
    EmbeddingError,
    EmptyOrUnprocessableError,
    FileTooLargeError,
    NotFoundError,
    ProviderAuthMissingError,
    TransientError,
    UnauthorizedError,
    UnknownError,
    UnsupportedFormatError,
    classify_error,
)
from docingest.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
    redact_secrets,
)

__all__ = [
    "AlreadyProcessedError",
    "AuthenticationRequiredError",
    "BadRequestError",
    "ChunkTooLargeError",
    "ConcurrentJobError",
    "ConfigurationError",
    "DeadlineExceededError",
    "DocIngestError",
    "EmbeddingError",
    "EmptyOrUnprocessableError",
    "FileTooLargeError",
    "NotFoundError",
    "ProviderAuthMissingError",
    "TransientError",
    "UnauthorizedError",
    "UnknownError",
    "UnsupportedFormatError",
    "bind_request_context",
    "classify_error",
    "clear_request_context",
    "configure_logging",
    "get_logger",
    "redact_secrets",
]

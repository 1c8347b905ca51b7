"""Structured logging setup using structlog.

One shared processor chain feeds either a coloured console renderer
(development) or a JSON renderer (production).  Standard-library logging
from uvicorn, httpx and openai is routed through the same formatter.

Credentials travel through this service (OpenAI keys, Azure keys, caller
bearer tokens), so every event passes through :func:`redact_secrets` before
rendering.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, MutableMapping
from typing import Any

import structlog

# Event keys whose values are never written to the log.
SECRET_KEYS = frozenset(
    {
        "api_key",
        "api_token",
        "authorization",
        "azure_api_key",
        "openai_api_key",
        "signature",
        "token",
    }
)

# Chatty client libraries that log every request at INFO.
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai", "aiosqlite", "fastembed")

_REDACTED = "***"


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor: mask credential-bearing keys in an event."""
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = _REDACTED
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Render JSON lines instead of the console format.
        quiet_loggers: Stdlib loggers raised to WARNING regardless of
            ``log_level``.

    Returns:
        A configured structlog BoundLogger.
    """
    level = logging.getLevelName(log_level.upper())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def bind_request_context(**values: Any) -> None:
    """Bind values (request id, caller) to every log event of the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a named logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)

"""API middleware: CORS, request logging and error handling.

Starlette middleware is a stack (last added, first executed).  ``main.py``
adds ErrorHandlingMiddleware before RequestLoggingMiddleware, so the request
log line wraps error handling and records the final status code.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from docingest.api.schemas import ErrorResponse
from docingest.utils.errors import DocIngestError, classify_error
from docingest.utils.logging import bind_request_context, clear_request_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Allow the upload front end to call the processing API cross-origin."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log one ``http_request`` line for it.

    The id comes from the caller's ``X-Request-ID`` header when present, is
    bound into the structlog context for every event logged while the
    request runs, and is echoed back on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_request_context(request_id=request_id)
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            clear_request_context()


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Render escaped exceptions as ``ErrorResponse`` JSON.

    Errors are classified into the docingest hierarchy, so each response
    carries the class's status code and public message.  The internal
    message is added as ``error`` when ``include_detail`` is set
    (development).
    """

    def __init__(self, app, *, include_detail: bool = False) -> None:  # noqa: ANN001
        super().__init__(app)
        self._include_detail = include_detail

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error: DocIngestError = classify_error(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                kind=error.kind,
                message=error.message,
                provider=error.provider_name,
                path=request.url.path,
                exc_info=not isinstance(exc, DocIngestError),
            )
            body = ErrorResponse(
                message=error.public_message,
                error=str(error) if self._include_detail else None,
            )
            return JSONResponse(
                status_code=error.status_code,
                content=body.model_dump(exclude_none=True),
            )

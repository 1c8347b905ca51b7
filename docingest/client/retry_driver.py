"""Caller-side driver that requests processing and retries transient failures.

Upload returns as soon as the raw file is stored; processing is then
requested in the background through this driver.  Each attempt is one
HTTP request to the processing endpoint, bounded by its own deadline
(10 minutes for the first attempt, 5 minutes for retries).

Only failures that say nothing about the file itself are retried: the
attempt timed out, the connection failed, or the server answered 503.
Every other non-2xx answer (bad input, ownership, format, size) is
final.  Retries are sequential; the delay before retry *k* is
``base_delay × 2^(k−1)``.

:meth:`ProcessingRetryDriver.schedule` runs the same flow as an
:class:`asyncio.Task` and returns a :class:`ProcessingHandle`, so pending
retries can be cancelled (e.g. when the file is deleted meanwhile).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from docingest.config.settings import Settings
from docingest.models.ingestion import IngestionStats, ProcessingEvent, ProcessingOutcome

logger = structlog.get_logger(logger_name=__name__)

# User-facing messages reported once retries are exhausted.
FINAL_FAILURE_MESSAGES: dict[str, str] = {
    "timeout": (
        "File processing timed out after multiple attempts. The file is too "
        "large or complex. Please try a smaller file."
    ),
    "network": (
        "Network error during processing after multiple attempts. Please check "
        "your connection and try again later."
    ),
    "limit": (
        "File is too large for processing. Please try a smaller file or split "
        "it into parts."
    ),
    "generic": (
        "File processing failed after multiple attempts. The file may be "
        "corrupted or in an unsupported format."
    ),
}

_RETRYABLE_STATUS_CODES = frozenset({503})

Notifier = Callable[[ProcessingEvent], None]
Sleeper = Callable[[float], Awaitable[Any]]


class ProcessingHandle:
    """Handle on a scheduled processing flow."""

    def __init__(self, file_id: str, task: asyncio.Task[ProcessingOutcome]) -> None:
        self.file_id = file_id
        self._task = task

    def cancel(self) -> bool:
        """Abort the in-flight attempt and any pending retry."""
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    def add_done_callback(self, callback: Callable[[ProcessingHandle], None]) -> None:
        """Call *callback* with this handle once the flow ends, however it ends."""
        self._task.add_done_callback(lambda _task: callback(self))

    async def wait(self) -> ProcessingOutcome | None:
        """Wait for the final outcome; ``None`` if the flow was cancelled."""
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise


class ProcessingRetryDriver:
    """Requests server-side processing of a file, retrying transient failures.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.  Attempt deadlines are enforced here,
        so the client itself should not impose a shorter timeout.
    process_url, docx_process_url:
        Processing endpoints for stored files and for pre-extracted DOCX text.
    sleep:
        Awaitable used for backoff delays (injectable for tests).
    notify:
        Optional callback receiving :class:`ProcessingEvent` notifications.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        process_url: str,
        docx_process_url: str,
        api_token: str = "",
        max_retries: int = 3,
        base_delay: float = 2.0,
        first_attempt_timeout: float = 600.0,
        retry_attempt_timeout: float = 300.0,
        sleep: Sleeper = asyncio.sleep,
        notify: Notifier | None = None,
    ) -> None:
        self._http = http_client
        self._process_url = process_url
        self._docx_process_url = docx_process_url
        self._api_token = api_token
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._first_attempt_timeout = first_attempt_timeout
        self._retry_attempt_timeout = retry_attempt_timeout
        self._sleep = sleep
        self._notify = notify

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        settings: Settings,
        **kwargs: Any,
    ) -> ProcessingRetryDriver:
        return cls(
            http_client,
            process_url=settings.process_url,
            docx_process_url=settings.docx_process_url,
            api_token=settings.api_token,
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay_seconds,
            first_attempt_timeout=settings.first_attempt_timeout_seconds,
            retry_attempt_timeout=settings.retry_attempt_timeout_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def backoff_delay(self, retry_number: int) -> float:
        """Delay in seconds before retry *retry_number* (1-based)."""
        return self._base_delay * (2 ** (retry_number - 1))

    def attempt_timeout(self, attempt: int) -> float:
        """Deadline in seconds for *attempt* (1-based)."""
        return self._first_attempt_timeout if attempt == 1 else self._retry_attempt_timeout

    def schedule(
        self,
        file_id: str,
        embeddings_provider: str,
        text: str | None = None,
    ) -> ProcessingHandle:
        """Start :meth:`run` in the background and return its handle."""
        task = asyncio.create_task(
            self.run(file_id, embeddings_provider, text),
            name=f"process-file-{file_id}",
        )
        return ProcessingHandle(file_id, task)

    async def run(
        self,
        file_id: str,
        embeddings_provider: str,
        text: str | None = None,
    ) -> ProcessingOutcome:
        """Drive processing of *file_id* until success or a final failure."""
        log = logger.bind(file_id=file_id, provider=embeddings_provider)
        attempt = 1

        while True:
            log.info(
                "processing_attempt_started",
                attempt=attempt,
                of=self._max_retries + 1,
            )
            failure_kind: str
            try:
                response = await asyncio.wait_for(
                    self._request(file_id, embeddings_provider, text),
                    timeout=self.attempt_timeout(attempt),
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                log.warning("processing_attempt_timed_out", attempt=attempt, error=str(exc))
                failure_kind = "timeout"
            except httpx.TransportError as exc:
                log.warning("processing_attempt_network_error", attempt=attempt, error=str(exc))
                failure_kind = "network"
            else:
                if response.is_success:
                    return self._succeeded(file_id, attempt, response)
                if response.status_code not in _RETRYABLE_STATUS_CODES:
                    return self._rejected(file_id, attempt, response)
                log.warning(
                    "processing_attempt_unavailable",
                    attempt=attempt,
                    status_code=response.status_code,
                    reason=self._response_message(response),
                )
                failure_kind = "network"

            if attempt > self._max_retries:
                return self._exhausted(file_id, attempt, failure_kind)

            delay = self.backoff_delay(attempt)
            log.info("processing_retry_scheduled", attempt=attempt, delay_s=delay)
            self._emit(
                ProcessingEvent(
                    kind="retry_scheduled",
                    file_id=file_id,
                    attempt=attempt,
                    delay_seconds=delay,
                    message=(
                        f"Processing failed, retrying in {round(delay)} seconds... "
                        f"({attempt}/{self._max_retries})"
                    ),
                )
            )
            await self._sleep(delay)
            attempt += 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        file_id: str,
        embeddings_provider: str,
        text: str | None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_token}"} if self._api_token else {}
        if text is not None:
            return await self._http.post(
                self._docx_process_url,
                json={
                    "text": text,
                    "fileId": file_id,
                    "embeddingsProvider": embeddings_provider,
                    "fileExtension": "docx",
                },
                headers=headers,
            )
        return await self._http.post(
            self._process_url,
            data={"file_id": file_id, "embeddingsProvider": embeddings_provider},
            headers=headers,
        )

    def _succeeded(self, file_id: str, attempt: int, response: httpx.Response) -> ProcessingOutcome:
        body = self._response_json(response)
        statistics = body.get("statistics")
        outcome = ProcessingOutcome(
            file_id=file_id,
            success=True,
            attempts=attempt,
            status_code=response.status_code,
            message=str(body.get("message", "Embed Successful")),
            statistics=IngestionStats(**statistics) if isinstance(statistics, dict) else None,
        )
        logger.info("processing_succeeded", file_id=file_id, attempts=attempt)
        self._emit(
            ProcessingEvent(
                kind="succeeded",
                file_id=file_id,
                attempt=attempt,
                message="File processing completed! You can now ask questions about this file.",
            )
        )
        return outcome

    def _rejected(self, file_id: str, attempt: int, response: httpx.Response) -> ProcessingOutcome:
        reason = self._response_message(response)
        if response.status_code == 413:
            kind = "limit"
        elif response.status_code == 408:
            kind = "timeout"
        else:
            kind = "generic"
        logger.error(
            "processing_rejected",
            file_id=file_id,
            attempt=attempt,
            status_code=response.status_code,
            reason=reason,
        )
        return self._failed(
            file_id,
            attempt,
            kind,
            f"File uploaded but processing failed. Reason: {reason}",
            status_code=response.status_code,
        )

    def _exhausted(self, file_id: str, attempt: int, kind: str) -> ProcessingOutcome:
        logger.error("processing_retries_exhausted", file_id=file_id, attempts=attempt, kind=kind)
        return self._failed(file_id, attempt, kind, FINAL_FAILURE_MESSAGES[kind])

    def _failed(
        self,
        file_id: str,
        attempt: int,
        kind: str,
        message: str,
        status_code: int | None = None,
    ) -> ProcessingOutcome:
        self._emit(ProcessingEvent(kind="failed", file_id=file_id, attempt=attempt, message=message))
        return ProcessingOutcome(
            file_id=file_id,
            success=False,
            attempts=attempt,
            status_code=status_code,
            message=message,
            failure_kind=kind,
        )

    def _emit(self, event: ProcessingEvent) -> None:
        if self._notify is not None:
            self._notify(event)

    @staticmethod
    def _response_json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @classmethod
    def _response_message(cls, response: httpx.Response) -> str:
        message = cls._response_json(response).get("message")
        if message:
            return str(message)
        return response.text or response.reason_phrase

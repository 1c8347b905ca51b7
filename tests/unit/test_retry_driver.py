"""Unit tests for ProcessingRetryDriver - retry policy, backoff and cancellation."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from docingest.client.retry_driver import (
    FINAL_FAILURE_MESSAGES,
    ProcessingRetryDriver,
)
from docingest.config.settings import Settings
from docingest.models.ingestion import ProcessingEvent

PROCESS_URL = "http://testserver/api/retrieval/process"
DOCX_URL = "http://testserver/api/retrieval/process/docx"

_OK_BODY = {
    "message": "Embed Successful",
    "statistics": {
        "total_chunks": 3,
        "total_tokens": 5400,
        "batches_processed": 1,
        "skipped_chunks": 0,
        "processing_time_ms": 12,
    },
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeSleep:
    """Records requested backoff delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _scripted(*steps: Callable[[httpx.Request], httpx.Response]) -> tuple[list[httpx.Request], Callable]:
    """Handler that plays *steps* in order, repeating the last one."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        step = steps[min(len(requests), len(steps)) - 1]
        return step(request)

    return requests, handler


def _respond(status: int, body: dict | None = None) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=body or {})


def _raise(exc_type: type[httpx.TransportError]) -> Callable[[httpx.Request], httpx.Response]:
    def step(request: httpx.Request) -> httpx.Response:
        raise exc_type("simulated", request=request)

    return step


def _driver(
    handler: Callable,
    sleep: _FakeSleep | None = None,
    events: list[ProcessingEvent] | None = None,
    **kwargs,
) -> ProcessingRetryDriver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProcessingRetryDriver(
        client,
        process_url=PROCESS_URL,
        docx_process_url=DOCX_URL,
        api_token="tok-1",
        sleep=sleep or _FakeSleep(),
        notify=events.append if events is not None else None,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class TestSchedule:
    def test_backoff_doubles(self) -> None:
        driver = _driver(_respond(200))
        assert [driver.backoff_delay(k) for k in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_attempt_timeouts(self) -> None:
        driver = _driver(_respond(200))
        assert driver.attempt_timeout(1) == 600.0
        assert driver.attempt_timeout(2) == 300.0
        assert driver.attempt_timeout(4) == 300.0

    def test_from_settings(self) -> None:
        settings = Settings(_env_file=None, retry_max_retries=5, retry_base_delay_seconds=1.0)
        driver = ProcessingRetryDriver.from_settings(httpx.AsyncClient(), settings)

        assert driver.backoff_delay(3) == 4.0
        assert driver.attempt_timeout(1) == settings.first_attempt_timeout_seconds


class TestSuccess:
    @pytest.mark.asyncio
    async def test_first_attempt_success(self) -> None:
        events: list[ProcessingEvent] = []
        _, handler = _scripted(_respond(200, _OK_BODY))
        sleep = _FakeSleep()

        outcome = await _driver(handler, sleep, events).run("f1", "local")

        assert outcome.success is True
        assert outcome.attempts == 1
        assert outcome.statistics is not None
        assert outcome.statistics.total_chunks == 3
        assert sleep.delays == []
        assert [e.kind for e in events] == ["succeeded"]

    @pytest.mark.asyncio
    async def test_form_request_shape(self) -> None:
        requests, handler = _scripted(_respond(200, _OK_BODY))

        await _driver(handler).run("f1", "openai")

        request = requests[0]
        assert str(request.url) == PROCESS_URL
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert parse_qs(request.content.decode()) == {
            "file_id": ["f1"],
            "embeddingsProvider": ["openai"],
        }

    @pytest.mark.asyncio
    async def test_docx_request_shape(self) -> None:
        requests, handler = _scripted(_respond(200, _OK_BODY))

        await _driver(handler).run("f1", "local", text="extracted text")

        request = requests[0]
        assert str(request.url) == DOCX_URL
        assert json.loads(request.content) == {
            "text": "extracted text",
            "fileId": "f1",
            "embeddingsProvider": "local",
            "fileExtension": "docx",
        }


class TestRetries:
    @pytest.mark.asyncio
    async def test_network_errors_exhaust_after_four_attempts(self) -> None:
        events: list[ProcessingEvent] = []
        requests, handler = _scripted(_raise(httpx.ConnectError))
        sleep = _FakeSleep()

        outcome = await _driver(handler, sleep, events).run("f1", "local")

        assert len(requests) == 4
        assert sleep.delays == [2.0, 4.0, 8.0]
        assert outcome.success is False
        assert outcome.attempts == 4
        assert outcome.failure_kind == "network"
        assert outcome.message == FINAL_FAILURE_MESSAGES["network"]
        assert [e.kind for e in events] == ["retry_scheduled"] * 3 + ["failed"]
        assert events[0].message == "Processing failed, retrying in 2 seconds... (1/3)"

    @pytest.mark.asyncio
    async def test_client_timeout_then_success(self) -> None:
        requests, handler = _scripted(_raise(httpx.ReadTimeout), _respond(200, _OK_BODY))
        sleep = _FakeSleep()

        outcome = await _driver(handler, sleep).run("f1", "local")

        assert outcome.success is True
        assert outcome.attempts == 2
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_attempt_deadline_counts_as_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json=_OK_BODY)

        sleep = _FakeSleep()
        driver = _driver(
            handler,
            sleep,
            max_retries=1,
            first_attempt_timeout=0.01,
            retry_attempt_timeout=0.01,
        )

        outcome = await driver.run("f1", "local")

        assert outcome.failure_kind == "timeout"
        assert outcome.attempts == 2
        assert outcome.message == FINAL_FAILURE_MESSAGES["timeout"]
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_three_consecutive_timeouts_give_four_attempts(self) -> None:
        started: list[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            started.append(request)
            await asyncio.sleep(5)
            return httpx.Response(200, json=_OK_BODY)

        sleep = _FakeSleep()
        events: list[ProcessingEvent] = []
        driver = _driver(
            handler,
            sleep,
            events,
            first_attempt_timeout=0.05,
            retry_attempt_timeout=0.02,
        )

        outcome = await driver.run("f1", "local")

        assert outcome.success is False
        assert outcome.failure_kind == "timeout"
        assert outcome.attempts == 4
        assert len(started) == 4
        assert sleep.delays == [2.0, 4.0, 8.0]
        assert [e.kind for e in events] == ["retry_scheduled"] * 3 + ["failed"]

    @pytest.mark.asyncio
    async def test_service_unavailable_is_retried(self) -> None:
        requests, handler = _scripted(
            _respond(503, {"message": "busy"}), _respond(200, _OK_BODY)
        )

        outcome = await _driver(handler).run("f1", "local")

        assert outcome.success is True
        assert len(requests) == 2


class TestFinalFailures:
    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self) -> None:
        requests, handler = _scripted(_respond(400, {"message": "Missing embeddingsProvider"}))
        sleep = _FakeSleep()

        outcome = await _driver(handler, sleep).run("f1", "")

        assert len(requests) == 1
        assert sleep.delays == []
        assert outcome.success is False
        assert outcome.status_code == 400
        assert outcome.failure_kind == "generic"
        assert outcome.message == (
            "File uploaded but processing failed. Reason: Missing embeddingsProvider"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("status", "kind"), [(413, "limit"), (408, "timeout"), (403, "generic")])
    async def test_rejection_kinds(self, status: int, kind: str) -> None:
        _, handler = _scripted(_respond(status, {"message": "nope"}))

        outcome = await _driver(handler).run("f1", "local")

        assert outcome.failure_kind == kind
        assert outcome.attempts == 1


class TestHandle:
    @pytest.mark.asyncio
    async def test_cancel_stops_pending_retries(self) -> None:
        blocked = asyncio.Event()

        async def never_ending_sleep(delay: float) -> None:
            blocked.set()
            await asyncio.Event().wait()

        requests, handler = _scripted(_raise(httpx.ConnectError))
        driver = ProcessingRetryDriver(
            httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            process_url=PROCESS_URL,
            docx_process_url=DOCX_URL,
            sleep=never_ending_sleep,
        )

        handle = driver.schedule("f1", "local")
        await blocked.wait()

        assert handle.cancel() is True
        assert await handle.wait() is None
        assert handle.done() is True
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_wait_returns_outcome(self) -> None:
        _, handler = _scripted(_respond(200, _OK_BODY))
        handle = _driver(handler).schedule("f1", "local")

        outcome = await handle.wait()

        assert outcome is not None
        assert outcome.success is True
        assert handle.file_id == "f1"

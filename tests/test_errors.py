from __future__ import annotations

import asyncio
from time import perf_counter

import pytest
from starlette.requests import Request
from structlog.testing import capture_logs

from epochprobe.api.diagnostics import run_until_disconnected
from epochprobe.errors import ClientDisconnected, report_error


def _request() -> Request:
    return Request({"type": "http", "method": "GET", "path": "/bad", "headers": []})


def test_report_error_without_trace_scope() -> None:
    with capture_logs() as logs:
        resp = report_error(_request(), RuntimeError("boom"), 500)

    assert resp.status_code == 500
    assert resp.body == b""
    assert logs == [
        {
            "event": "request_failed",
            "log_level": "error",
            "error": "boom",
            "error_type": "RuntimeError",
            "status_code": 500,
        }
    ]


def test_report_error_captures_into_attached_scope(sentry_events) -> None:
    import sentry_sdk

    request = _request()
    with sentry_sdk.isolation_scope() as trace_scope:
        request.scope["state"] = {"trace_scope": trace_scope}
        resp = report_error(request, ValueError("scan failed"), 500)

    assert resp.status_code == 500
    assert len(sentry_events) == 1
    assert sentry_events[0]["exception"]["values"][-1]["type"] == "ValueError"


class _DisconnectingRequest:
    async def receive(self) -> dict:
        await asyncio.sleep(0.05)
        return {"type": "http.disconnect"}


class _ConnectedRequest:
    async def receive(self) -> dict:
        await asyncio.Event().wait()
        return {"type": "http.disconnect"}


async def test_disconnect_cancels_pending_work_promptly() -> None:
    started = perf_counter()
    with pytest.raises(ClientDisconnected):
        await run_until_disconnected(_DisconnectingRequest(), asyncio.sleep(10))
    assert perf_counter() - started < 1.0


async def test_finished_work_returns_its_result() -> None:
    async def work() -> int:
        return 7

    assert await run_until_disconnected(_ConnectedRequest(), work()) == 7


async def test_work_errors_propagate() -> None:
    async def work() -> int:
        raise LookupError("no row")

    with pytest.raises(LookupError):
        await run_until_disconnected(_ConnectedRequest(), work())

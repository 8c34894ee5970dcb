from __future__ import annotations

import uuid
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders


REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware:
    """Binds per-request log context and writes one access log line per request.

    Sits inside ClientIPMiddleware, so ``client_ip`` is the resolved address.
    """

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex
        client = scope.get("client")
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=scope.get("method"),
            path=scope.get("path"),
            client_ip=client[0] if client else None,
        )

        response: dict[str, int] = {"status": 500, "bytes": 0}

        async def send_with_request_id(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                response["status"] = int(message["status"])
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            elif message["type"] == "http.response.body":
                response["bytes"] += len(message.get("body", b""))
            await send(message)

        started = perf_counter()
        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            structlog.get_logger("access").info(
                "http_request",
                status_code=response["status"],
                response_bytes=response["bytes"],
                duration_ms=round((perf_counter() - started) * 1000.0, 2),
                user_agent=Headers(scope=scope).get("user-agent"),
            )
            structlog.contextvars.clear_contextvars()

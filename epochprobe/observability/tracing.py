"""Sentry integration.

Each HTTP request served while Sentry is enabled gets its own isolation scope.
The scope travels with the request (in the ASGI ``state`` mapping) so that error
reporting can capture into it; without an active client nothing is attached.
"""

from __future__ import annotations

from typing import Any, Callable

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.scope import Scope
from starlette.requests import Request

from epochprobe.config import Settings


TRACE_SCOPE_KEY = "trace_scope"


def configure_tracing(settings: Settings, **options: Any) -> None:
    """Initialise the Sentry client. An empty DSN leaves it disabled."""

    init_options: dict[str, Any] = {
        "dsn": settings.sentry_dsn or None,
        "environment": settings.environment,
        "traces_sample_rate": 1.0,
        # Requests are instrumented by TracingMiddleware only.
        "auto_enabling_integrations": False,
        # Error logs stay breadcrumbs; report_error captures the exception itself.
        "integrations": [LoggingIntegration(event_level=None)],
    }
    init_options.update(options)
    sentry_sdk.init(**init_options)


def flush_tracing(timeout: float = 2.0) -> None:
    sentry_sdk.flush(timeout=timeout)


def get_trace_scope(request: Request) -> Scope | None:
    return request.scope.get("state", {}).get(TRACE_SCOPE_KEY)


def _decode_headers(scope: dict[str, Any]) -> dict[str, str]:
    return {key.decode("latin-1"): value.decode("latin-1") for key, value in scope.get("headers", [])}


class TracingMiddleware:
    """Runs each request in a Sentry transaction, continuing incoming traces."""

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http" or not sentry_sdk.get_client().is_active():
            await self.app(scope, receive, send)
            return

        with sentry_sdk.isolation_scope() as trace_scope:
            transaction = sentry_sdk.continue_trace(
                _decode_headers(scope),
                op="http.server",
                name=f"{scope.get('method')} {scope.get('path')}",
            )

            async def send_wrapper(message: dict[str, Any]) -> None:
                if message.get("type") == "http.response.start":
                    transaction.set_http_status(int(message.get("status", 500)))
                await send(message)

            scope.setdefault("state", {})[TRACE_SCOPE_KEY] = trace_scope
            with sentry_sdk.start_transaction(transaction):
                try:
                    await self.app(scope, receive, send_wrapper)
                except Exception as exc:
                    trace_scope.capture_exception(exc)
                    raise

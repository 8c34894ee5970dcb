from __future__ import annotations

import structlog
from starlette.requests import Request
from starlette.responses import Response

from epochprobe.observability.tracing import get_trace_scope


class ClientDisconnected(Exception):
    """The client went away before the response was ready."""


def report_error(request: Request, exc: BaseException, status_code: int) -> Response:
    """Log a request failure, forward it to Sentry when traced, and build the empty response."""

    structlog.get_logger("http").error(
        "request_failed",
        error=str(exc),
        error_type=type(exc).__name__,
        status_code=status_code,
    )

    trace_scope = get_trace_scope(request)
    if trace_scope is not None:
        trace_scope.capture_exception(exc)

    return Response(status_code=status_code)

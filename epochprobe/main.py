from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from epochprobe.api.diagnostics import DEFAULT_QUERIES, DiagnosticQuery, build_router
from epochprobe.middleware import ClientIPMiddleware, CORSMiddleware
from epochprobe.observability.middleware import RequestContextMiddleware
from epochprobe.observability.tracing import TracingMiddleware


class EpochProbeApp(FastAPI):
    def build_middleware_stack(self) -> Any:
        # Wrap Starlette's whole stack, ServerErrorMiddleware included, so
        # unhandled-exception 500s also get CORS headers and an access log.
        app = super().build_middleware_stack()
        app = CORSMiddleware(app)
        app = RequestContextMiddleware(app)
        app = TracingMiddleware(app)
        return ClientIPMiddleware(app)


def create_app(engine: AsyncEngine, queries: tuple[DiagnosticQuery, ...] = DEFAULT_QUERIES) -> FastAPI:
    app = EpochProbeApp(title="epochprobe", version="0.1.0")
    app.state.engine = engine
    app.include_router(build_router(queries))
    return app

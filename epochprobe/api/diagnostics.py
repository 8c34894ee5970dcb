from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from epochprobe.db.session import fetch_scalar, get_engine
from epochprobe.errors import ClientDisconnected, report_error


T = TypeVar("T")


@dataclass(frozen=True)
class DiagnosticQuery:
    path: str
    sql: str
    label: str


GOOD_QUERY = DiagnosticQuery(
    path="/good",
    sql="SELECT CAST(strftime('%s', 'now') AS INTEGER)",
    label="good",
)

# References a function SQLite does not have, so it fails on every call.
BAD_QUERY = DiagnosticQuery(
    path="/bad",
    sql="SELECT unixepochwrongfunction()",
    label="bad",
)

DEFAULT_QUERIES: tuple[DiagnosticQuery, ...] = (GOOD_QUERY, BAD_QUERY)


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message.get("type") == "http.disconnect":
            return


async def run_until_disconnected(request: Request, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable``, cancelling it if the client disconnects first."""

    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if work not in done:
        work.cancel()
        raise ClientDisconnected("client disconnected before the query finished")
    return work.result()


def _diagnostic_endpoint(query: DiagnosticQuery) -> Any:
    async def endpoint(request: Request, engine: AsyncEngine = Depends(get_engine)) -> Response:
        try:
            value = await run_until_disconnected(request, fetch_scalar(engine, query.sql))
            epoch = int(value)
        except (SQLAlchemyError, ClientDisconnected, TypeError, ValueError) as exc:
            return report_error(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR)
        return PlainTextResponse(f"Current epoch: {epoch}")

    endpoint.__name__ = f"{query.label}_epoch"
    return endpoint


def build_router(queries: Iterable[DiagnosticQuery] = DEFAULT_QUERIES) -> APIRouter:
    router = APIRouter(tags=["diagnostics"])
    for query in queries:
        router.add_api_route(
            query.path,
            _diagnostic_endpoint(query),
            methods=["GET"],
            response_class=PlainTextResponse,
            name=query.label,
        )
    return router

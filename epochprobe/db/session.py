from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from starlette.requests import Request


def database_url(uri: str) -> URL:
    """Turn a DATABASE_URI value into a SQLAlchemy URL.

    Full URLs (``scheme://...``) are used as given and must name an async driver.
    Anything else, ``:memory:`` included, is a SQLite path.
    """

    if "://" in uri:
        return make_url(uri)
    return URL.create("sqlite+aiosqlite", database=uri)


def create_engine(uri: str) -> AsyncEngine:
    return create_async_engine(database_url(uri))


async def ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def fetch_scalar(engine: AsyncEngine, sql: str) -> Any:
    async with engine.connect() as conn:
        result = await conn.execute(text(sql))
        return result.scalar_one()


def get_engine(request: Request) -> AsyncEngine:
    return request.app.state.engine

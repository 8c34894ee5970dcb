from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from typing import Any

import pytest
import sentry_sdk
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from epochprobe.config import Settings, get_settings
from epochprobe.db.session import create_engine
from epochprobe.main import create_app
from epochprobe.observability.tracing import configure_tracing


ENV_VARS = ("PRODUCTION", "ADDR", "DATABASE_URI", "SENTRY_DSN", "SHUTDOWN_TIMEOUT")


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the tests.
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level

    yield

    root.handlers, root.level = handlers, level
    get_settings.cache_clear()


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_engine(":memory:")
    yield engine
    await engine.dispose()


@pytest.fixture
def app(engine: AsyncEngine) -> FastAPI:
    return create_app(engine)


@pytest.fixture
async def api_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sentry_events() -> Iterator[list[dict[str, Any]]]:
    """Enable Sentry with a fake DSN and collect error events instead of sending them."""

    events: list[dict[str, Any]] = []

    def before_send(event: dict[str, Any], hint: dict[str, Any]) -> None:
        _ = hint
        events.append(event)
        return None

    configure_tracing(
        Settings(),
        dsn="https://public@sentry.invalid/1",
        before_send=before_send,
        before_send_transaction=lambda event, hint: None,
        send_client_reports=False,
    )

    yield events

    sentry_sdk.init()

"""Process lifecycle: bind, serve until SIGINT/SIGTERM, drain, exit.

uvicorn's own signal handling is switched off; ``ServeLifecycle`` owns the
signals and runs the signal watcher next to the accept loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import signal
import socket
from collections.abc import Iterable, Iterator
from typing import Any

import structlog
import uvicorn

from epochprobe.config import Settings, get_settings
from epochprobe.db.session import create_engine, ping
from epochprobe.main import create_app
from epochprobe.observability.logging import configure_logging
from epochprobe.observability.tracing import configure_tracing, flush_tracing


class LifecycleState(str, enum.Enum):
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"


def bind_socket(addr: str) -> socket.socket:
    """Bind and listen on ``host:port``. An empty host means every interface."""

    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {addr!r} is not in host:port form")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, int(port)), family=family)


class _Server(uvicorn.Server):
    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class ServeLifecycle:
    def __init__(
        self,
        app: Any,
        sock: socket.socket,
        grace_period: float = 10.0,
        signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
    ) -> None:
        self.sock = sock
        host, port = sock.getsockname()[:2]
        self.server = _Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                lifespan="off",
                log_config=None,
                access_log=False,
                proxy_headers=False,
                timeout_graceful_shutdown=grace_period,
            )
        )
        self._signals = tuple(signals)
        self._stop = asyncio.Event()
        self._draining = False

    @property
    def state(self) -> LifecycleState:
        if self._draining:
            return LifecycleState.DRAINING
        if self.server.started:
            return LifecycleState.SERVING
        return LifecycleState.STARTING

    def shutdown(self) -> None:
        """Start draining. Called from the signal handlers."""
        self._stop.set()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.add_signal_handler(sig, self.shutdown)
        try:
            async with asyncio.TaskGroup() as group:
                group.create_task(self._watch_signals())
                group.create_task(self._serve())
        except ExceptionGroup as exc_group:
            # The first failure is the cause; the rest were cancelled by it.
            raise exc_group.exceptions[0]
        finally:
            for sig in self._signals:
                loop.remove_signal_handler(sig)

    async def _watch_signals(self) -> None:
        await self._stop.wait()
        structlog.get_logger("server").debug("shutting_down_gracefully")
        self._draining = True
        self.server.should_exit = True

    async def _serve(self) -> None:
        await self.server.serve(sockets=[self.sock])
        if not self._draining:
            raise RuntimeError("server stopped without a shutdown request")


async def serve(settings: Settings) -> None:
    log = structlog.get_logger("server")
    configure_tracing(settings)

    engine = create_engine(settings.database_uri)
    try:
        await ping(engine)
        app = create_app(engine)

        sock = bind_socket(settings.addr)
        try:
            log.info("listening", addr=settings.addr, environment=settings.environment)
            await ServeLifecycle(app, sock, grace_period=settings.shutdown_timeout).run()
        finally:
            sock.close()
    finally:
        await engine.dispose()
        flush_tracing()


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    log = structlog.get_logger("server")

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        log.error("interrupted_during_startup")
        raise SystemExit(1)
    except Exception:
        log.critical("server_failed", exc_info=True)
        raise SystemExit(1)

    log.info("server_stopped")

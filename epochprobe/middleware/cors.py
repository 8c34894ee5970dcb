from __future__ import annotations

from typing import Any, Callable

from starlette.datastructures import MutableHeaders


CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    # Trace propagation headers sent by the Sentry browser SDK.
    "Access-Control-Allow-Headers": "baggage, sentry-trace",
}


class CORSMiddleware:
    """Permissive CORS: fixed headers on every response, preflights answered here."""

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        if scope.get("method") == "OPTIONS":
            headers = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in CORS_HEADERS.items()]
            headers.append((b"content-length", b"0"))
            await send({"type": "http.response.start", "status": 200, "headers": headers})
            await send({"type": "http.response.body", "body": b""})
            return

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers = MutableHeaders(scope=message)
                for key, value in CORS_HEADERS.items():
                    headers[key] = value
            await send(message)

        await self.app(scope, receive, send_wrapper)

from __future__ import annotations

from typing import Any, Callable


# Highest priority first.
CLIENT_IP_HEADERS: tuple[bytes, ...] = (
    b"cf-connecting-ip",
    b"true-client-ip",
    b"x-real-ip",
    b"x-forwarded-for",
)


def resolve_client_ip(headers: list[tuple[bytes, bytes]]) -> str | None:
    """Return the originating address announced by a proxy, if any."""

    values: dict[bytes, str] = {}
    for key, value in headers:
        name = key.lower()
        if name in CLIENT_IP_HEADERS and name not in values:
            values[name] = value.decode("latin-1")

    for name in CLIENT_IP_HEADERS:
        value = values.get(name, "")
        if name == b"x-forwarded-for":
            # Left-most non-blank hop is the original client.
            value = next((hop for hop in value.split(",") if hop.strip()), "")
        value = value.strip()
        if value:
            return value
    return None


class ClientIPMiddleware:
    """Rewrites the ASGI ``client`` address from proxy headers."""

    def __init__(self, app: Callable[..., Any]) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") == "http":
            client_ip = resolve_client_ip(scope.get("headers", []))
            if client_ip is not None:
                client = scope.get("client")
                scope["client"] = (client_ip, client[1] if client else 0)

        await self.app(scope, receive, send)

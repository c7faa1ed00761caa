import time
from contextvars import ContextVar

import httpx
from starlette.types import ASGIApp, Receive, Scope, Send

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------

upstream_count_var: ContextVar[int] = ContextVar("upstream_count", default=0)


def install_upstream_counter(client: httpx.AsyncClient) -> None:
    """
    Register a ``request`` event hook on *client* that increments the
    per-request ``upstream_count_var`` for every outbound call.

    Cache hits issue no request, so the counter shows how much of a page
    was served from the cache.  Must be called once per client.
    """

    async def _count_request(request: httpx.Request) -> None:
        upstream_count_var.set(upstream_count_var.get() + 1)

    hooks = client.event_hooks
    hooks["request"] = [*hooks.get("request", []), _count_request]
    client.event_hooks = hooks


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, avoids BaseHTTPMiddleware ContextVar isolation)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Pure ASGI middleware that adds two diagnostic response headers:

    - ``X-Response-Time-Ms``: wall-clock time for the entire request.
    - ``X-Upstream-Calls``: requests sent to the remote account service
      (and mailing list) while handling the request, counted by the hook
      registered with ``install_upstream_counter``.

    Unlike ``BaseHTTPMiddleware``, this does NOT spawn a child asyncio
    task for the inner application, so ``ContextVar`` mutations are
    visible when we read the counter after the response has been sent.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        upstream_count_var.set(0)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-upstream-calls", str(upstream_count_var.get()).encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)

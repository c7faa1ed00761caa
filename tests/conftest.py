"""
Test infrastructure for the account proxy.

Strategy
--------
- The remote account API and Mailchimp are replaced by ``UpstreamMock``,
  served to a real ``httpx.AsyncClient`` through ``httpx.MockTransport``.
  Every request is recorded, and a request with no queued reply fails the
  test, so "no network call" assertions are strict.
- The cache runs on the in-process ``memory://`` store with a controllable
  clock, so freshness and staleness windows are crossed without sleeping.
- The application lifespan does not run under ``ASGITransport``; the
  ``async_client`` fixture injects the shared resources through
  ``app.dependency_overrides`` instead.
"""
import asyncio
from collections import defaultdict, deque

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from account_proxy.cache import CacheManager
from account_proxy.client import UserApiClient
from account_proxy.config import Settings
from account_proxy.dependencies import (
    get_cache_manager,
    get_http_client,
    get_mailing_list,
    get_settings,
    get_user_cache,
)
from account_proxy.main import app
from account_proxy.mailing_list import MailingListClient
from account_proxy.middleware import install_upstream_counter

USER_API = "https://user.com"
MAILCHIMP_KEY = "0123456789abcdef-us6"
LIST_ID = "e17fe5d778"


# ---------------------------------------------------------------------------
# Remote service double
# ---------------------------------------------------------------------------

class UpstreamMock:
    """Queue canned replies per (method, path) and record every request."""

    def __init__(self) -> None:
        self._replies: dict[tuple[str, str], deque] = defaultdict(deque)
        self.requests: list[httpx.Request] = []

    def reply(self, method: str, path: str, status: int = 200, json=None, delay: float = 0) -> None:
        self._replies[(method, path)].append((status, json, delay))

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self._replies[(method, path)].append(exc)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == path)
        ]

    def pending(self) -> list[tuple[str, str]]:
        return [key for key, queue in self._replies.items() if queue]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._replies.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        reply = queue.popleft()
        if isinstance(reply, Exception):
            raise reply
        status, body, delay = reply
        if delay:
            await asyncio.sleep(delay)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def upstream() -> UpstreamMock:
    return UpstreamMock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def http_client(upstream: UpstreamMock):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handle))
    install_upstream_counter(client)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def cache_manager():
    manager = CacheManager("memory://", prefix="cache:")
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def user_cache(cache_manager: CacheManager, clock: FakeClock):
    segment = cache_manager.segment(
        "users", ttl=300, stale_in=60, stale_timeout=0.5, clock=clock
    )
    yield segment
    await segment.drain()


@pytest.fixture
def api(http_client: httpx.AsyncClient) -> UserApiClient:
    return UserApiClient(http_client, USER_API)


@pytest_asyncio.fixture
async def mailing_list(http_client: httpx.AsyncClient):
    client = MailingListClient(http_client, MAILCHIMP_KEY, LIST_ID)
    yield client
    await client.drain()


@pytest_asyncio.fixture
async def async_client(http_client, cache_manager, user_cache, mailing_list) -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport,
    with caching enabled and the remote services mocked.
    """
    test_settings = Settings(USER_API=USER_API, USE_CACHE=True, MAILCHIMP_KEY=MAILCHIMP_KEY)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_user_cache] = lambda: user_cache
    app.dependency_overrides[get_mailing_list] = lambda: mailing_list
    app.dependency_overrides[get_cache_manager] = lambda: cache_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

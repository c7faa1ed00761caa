import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from account_proxy.cache import CacheManager
from account_proxy.config import settings
from account_proxy.errors import AccountServiceError
from account_proxy.mailing_list import MailingListClient
from account_proxy.middleware import TimingMiddleware, install_upstream_counter
from account_proxy.routers import metrics, profile, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    http = httpx.AsyncClient(timeout=settings.USER_API_TIMEOUT)
    install_upstream_counter(http)
    app.state.http = http

    cache = CacheManager(settings.REDIS_URL, prefix=settings.CACHE_PREFIX)
    app.state.cache = cache
    app.state.user_cache = None
    if settings.USE_CACHE:
        await cache.connect()
        app.state.user_cache = cache.segment(
            settings.CACHE_SEGMENT_USER,
            ttl=settings.CACHE_TTL_USER,
            stale_in=settings.CACHE_STALE_USER,
            stale_timeout=settings.CACHE_STALE_TIMEOUT,
        )

    app.state.mailing_list = None
    if settings.MAILCHIMP_KEY:
        app.state.mailing_list = MailingListClient(
            http, settings.MAILCHIMP_KEY, settings.MAILING_LIST_ID
        )
    yield
    # Shutdown
    if app.state.mailing_list is not None:
        await app.state.mailing_list.drain()
    if app.state.user_cache is not None:
        await app.state.user_cache.drain()
    await cache.disconnect()
    await http.aclose()


app = FastAPI(
    title="Account Proxy",
    description="User-account pages backed by the remote account API, with a stale-tolerant cache",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)


@app.exception_handler(AccountServiceError)
async def account_error_handler(request: Request, exc: AccountServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(httpx.TransportError)
async def transport_error_handler(request: Request, exc: httpx.TransportError):
    logger.error("Account service unreachable: %s", exc)
    return JSONResponse(status_code=502, content={"detail": "account service unavailable"})


# Routers
app.include_router(profile.router)
app.include_router(users.router)
app.include_router(metrics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}

"""
FastAPI dependencies that wire configuration into the service layer.

Shared resources (the httpx client, the user cache segment and the
mailing-list client) live on ``app.state`` and are created by the
application lifespan.  Each request gets its own ``UserAccessor`` so the
caller's identity travels with the API client instead of living in
process-wide state.

Tests replace ``get_http_client``, ``get_user_cache`` and
``get_mailing_list`` through ``app.dependency_overrides``.
"""
import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_proxy.cache import CacheManager, CacheSegment
from account_proxy.client import UserApiClient
from account_proxy.config import Settings, settings
from account_proxy.mailing_list import MailingListClient
from account_proxy.services.user_service import UserAccessor

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings() -> Settings:
    return settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_user_cache(request: Request) -> CacheSegment | None:
    """The user-record cache segment, or None when caching is disabled."""
    return getattr(request.app.state, "user_cache", None)


def get_mailing_list(request: Request) -> MailingListClient | None:
    return getattr(request.app.state, "mailing_list", None)


def get_cache_manager(request: Request) -> CacheManager | None:
    return getattr(request.app.state, "cache", None)


def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    """
    Name of the logged-in caller.

    Session handling happens upstream of this service; by the time a
    request arrives its bearer credential is the authenticated user name.
    """
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_accessor(
    http: httpx.AsyncClient = Depends(get_http_client),
    config: Settings = Depends(get_settings),
    cache: CacheSegment | None = Depends(get_user_cache),
    mailing_list: MailingListClient | None = Depends(get_mailing_list),
    identity: str | None = Depends(get_identity),
) -> UserAccessor:
    client = UserApiClient(http, config.USER_API, bearer=identity)
    return UserAccessor(client, cache=cache, mailing_list=mailing_list)

"""
Remote Resource Client for the user-account API.

One coroutine per account action.  Each builds a :class:`RequestDescriptor`,
sends it through a shared ``httpx.AsyncClient`` and returns the decoded JSON
body as-is.  Responses with a status >= 400 become :class:`UpstreamError`
(or one of its subclasses); transport failures propagate unchanged.
"""
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from account_proxy.errors import IncorrectPassword, UpstreamError, UserNotFound

logger = logging.getLogger(__name__)

PACKAGES_PER_PAGE = 9999


@dataclass
class RequestDescriptor:
    """Everything needed to send a request, and to derive its cache key."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    json: Any = None


class UserApiClient:
    def __init__(self, http: httpx.AsyncClient, host: str, bearer: str | None = None) -> None:
        self.http = http
        self.host = host.rstrip("/")
        self.bearer = bearer

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    def url(self, *segments: str) -> str:
        # Each segment is a single path component; "@" is left unescaped.
        return "/".join([self.host, *(quote(str(s), safe="@") for s in segments)])

    def user_descriptor(self, name: str) -> RequestDescriptor:
        """
        Descriptor for the core record fetch.

        It carries no identity header, so every caller shares one cached
        copy of the record.
        """
        return RequestDescriptor(url=self.url("user", name))

    def _identity_headers(self) -> dict[str, str]:
        return {"bearer": self.bearer} if self.bearer else {}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        logger.debug("%s %s", descriptor.method, descriptor.url)
        return await self.http.request(
            descriptor.method,
            descriptor.url,
            headers=descriptor.headers or None,
            params=descriptor.params or None,
            json=descriptor.json,
        )

    @staticmethod
    def decode(resp: httpx.Response) -> Any:
        return resp.json() if resp.content else None

    async def call(self, descriptor: RequestDescriptor, failure: str) -> Any:
        """Send *descriptor*; raise ``UpstreamError(failure)`` on status >= 400."""
        resp = await self.send(descriptor)
        if resp.status_code > 399:
            raise UpstreamError(failure, status_code=resp.status_code)
        return self.decode(resp)

    # ------------------------------------------------------------------
    # Account actions
    # ------------------------------------------------------------------

    async def fetch(self, descriptor: RequestDescriptor, name: str) -> Any:
        resp = await self.send(descriptor)
        if resp.status_code == 404:
            raise UserNotFound(f"user {name} not found", status_code=404)
        if resp.status_code > 399:
            raise UpstreamError(f"error fetching user {name}", status_code=resp.status_code)
        return self.decode(resp)

    async def get_user(self, name: str) -> Any:
        return await self.fetch(self.user_descriptor(name), name)

    async def lookup_email(self, email: str) -> Any:
        return await self.call(
            RequestDescriptor(url=self.url("user", email)),
            f"error looking up username(s) for {email}",
        )

    async def signup(self, record: dict) -> Any:
        return await self.call(
            RequestDescriptor(url=self.url("user"), method="PUT", json=record),
            f"error creating user {record.get('name')}",
        )

    async def save(self, record: dict) -> Any:
        name = record["name"]
        return await self.call(
            RequestDescriptor(url=self.url("user", name), method="POST", json=record),
            f"error updating profile for {name}",
        )

    async def login(self, name: str, password: str) -> Any:
        descriptor = RequestDescriptor(
            url=self.url("user", name, "login"),
            method="POST",
            json={"password": password},
        )
        resp = await self.send(descriptor)
        if resp.status_code == 401:
            raise IncorrectPassword(f"password is incorrect for {name}", status_code=401)
        if resp.status_code == 404:
            raise UserNotFound(f"user {name} not found", status_code=404)
        if resp.status_code > 399:
            raise UpstreamError(f"error logging in {name}", status_code=resp.status_code)
        return self.decode(resp)

    async def confirm_email(self, record: dict) -> Any:
        name = record["name"]
        return await self.call(
            RequestDescriptor(
                url=self.url("user", name, "verify"),
                method="POST",
                json={"verification_key": record.get("verification_key")},
            ),
            f"error verifying user {name}",
        )

    async def get_stars(self, name: str) -> Any:
        return await self.call(
            RequestDescriptor(
                url=self.url("user", name, "stars"),
                headers=self._identity_headers(),
            ),
            f"error getting stars for user {name}",
        )

    async def get_packages(self, name: str) -> Any:
        return await self.call(
            RequestDescriptor(
                url=self.url("user", name, "package"),
                headers=self._identity_headers(),
                params={"per_page": PACKAGES_PER_PAGE},
            ),
            f"error getting packages for user {name}",
        )

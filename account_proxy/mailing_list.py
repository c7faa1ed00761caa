"""
Mailing-list subscriptions through the Mailchimp 2.0 API.

Subscriptions are a side channel of signup: :meth:`MailingListClient.dispatch`
runs them as background tasks whose failures are logged and never reach the
request that triggered them.
"""
import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class MailingListClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str, list_id: str) -> None:
        self.http = http
        self.api_key = api_key
        self.list_id = list_id
        self._pending: set[asyncio.Task] = set()

    @property
    def endpoint(self) -> str:
        # Keys look like "<hex>-us6"; the suffix names the datacenter.
        _, sep, dc = self.api_key.rpartition("-")
        return f"https://{dc if sep and dc else 'us1'}.api.mailchimp.com/2.0/lists/subscribe.json"

    async def subscribe(self, email: str) -> dict:
        payload = {"apikey": self.api_key, "id": self.list_id, "email": {"email": email}}
        resp = await self.http.post(self.endpoint, json=payload)
        resp.raise_for_status()
        return resp.json()

    def dispatch(self, email: str) -> asyncio.Task:
        """Subscribe *email* in the background without joining the caller."""
        task = asyncio.create_task(self._subscribe_quietly(email))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _subscribe_quietly(self, email: str) -> None:
        try:
            await self.subscribe(email)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Could not register user for npm Weekly: %s", email)
            logger.error("%s", exc)

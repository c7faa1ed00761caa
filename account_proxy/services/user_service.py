"""
User service: the read/write facade over the remote account API.

``UserAccessor`` composes the remote client with the stale-tolerant cache.
Only the core record read goes through the cache; related collections
(stars, packages) are always fetched live with the caller's identity, and
writes never touch the cache, so callers drop the record after a write.
"""
import logging

from email_validator import EmailNotValidError, validate_email

from account_proxy.cache import CacheSegment
from account_proxy.client import UserApiClient
from account_proxy.errors import InvalidEmail
from account_proxy.mailing_list import MailingListClient

logger = logging.getLogger(__name__)

_OPT_IN_VALUES = ("on", True)


def is_valid_email(email: str) -> bool:
    """Syntax check only; no DNS lookups."""
    try:
        validate_email(email or "", check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class UserAccessor:
    def __init__(
        self,
        client: UserApiClient,
        cache: CacheSegment | None = None,
        mailing_list: MailingListClient | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.mailing_list = mailing_list

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, name: str, stars: bool = False, packages: bool = False) -> dict:
        """
        Return the record for *name*, optionally enriched.

        Stars and packages are fetched one after the other and attached to
        a copy of the record, so the cached payload is never mutated.
        """
        if self.cache is not None:
            descriptor = self.client.user_descriptor(name)
            record = await self.cache.get(
                descriptor, lambda: self.client.fetch(descriptor, name)
            )
        else:
            record = await self.client.get_user(name)

        user = dict(record or {})
        name = user.setdefault("name", name)
        if stars:
            user["stars"] = await self.client.get_stars(name)
        if packages:
            user["packages"] = await self.client.get_packages(name)
        return user

    async def lookup_email(self, email: str):
        """Return the usernames registered to *email*."""
        if not is_valid_email(email):
            logger.debug("Rejected malformed email %r", email)
            raise InvalidEmail("email is invalid")
        return await self.client.lookup_email(email)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, name: str, password: str):
        return await self.client.login(name, password)

    async def verify_password(self, name: str, password: str):
        """Same as :meth:`login`; kept for callers holding separate values."""
        return await self.login(name, password)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def signup(self, record: dict):
        """
        Create the account, then subscribe it to the mailing list if asked.

        The subscription starts only after the create succeeded and runs in
        the background; its failures are logged by the mailing-list client.
        """
        user = await self.client.signup(record)
        if record.get("npmweekly") in _OPT_IN_VALUES:
            if self.mailing_list is None:
                logger.info("Mailing list not configured; skipping %s", record.get("email"))
            else:
                self.mailing_list.dispatch(record["email"])
        return user

    async def save(self, record: dict):
        return await self.client.save(record)

    async def confirm_email(self, record: dict):
        return await self.client.confirm_email(record)

    async def drop(self, name: str) -> None:
        if self.cache is None:
            return
        await self.cache.drop(self.client.user_descriptor(name))

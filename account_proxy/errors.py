"""
Error taxonomy for the account proxy.

Transport failures are not wrapped: ``httpx.TransportError`` and its
subclasses reach the caller unchanged.  Everything in this module is
raised by this layer itself.
"""


class AccountServiceError(Exception):
    """Base class for errors raised by the account proxy."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidEmail(AccountServiceError):
    """The email failed syntax validation; no request was sent."""

    status_code = 400


class UpstreamError(AccountServiceError):
    """The remote account service answered with a status >= 400."""


class UserNotFound(UpstreamError):
    status_code = 404


class IncorrectPassword(UpstreamError):
    status_code = 401

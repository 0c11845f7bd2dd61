"""
Exception hierarchy for the BungieKit client SDK.

Every error raised by the request pipeline, the OAuth flow and the Destiny
endpoints derives from BungieError so callers can catch a single type.
"""

from typing import Optional


class BungieError(Exception):
    """Base exception for BungieKit."""
    pass


class InvalidURLError(BungieError):
    """The request URL could not be built."""
    pass


class NetworkError(BungieError):
    """Network-related error (connection, timeout, DNS...)."""
    pass


class HTTPStatusError(BungieError):
    """Non-success HTTP status without a parseable API envelope."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"HTTP error {status_code}")
        self.status_code = status_code


class BungieAPIError(BungieError):
    """The API answered with an ErrorCode other than Success (1)."""

    def __init__(
        self,
        error_code: int,
        message: str,
        error_status: Optional[str] = None,
        throttle_seconds: int = 0,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"[{error_code}] {error_status or 'Error'}: {message}")
        self.error_code = error_code
        self.message = message
        self.error_status = error_status
        self.throttle_seconds = throttle_seconds
        self.status_code = status_code


class EmptyResponseError(BungieError):
    """The API envelope reported success but carried no Response."""
    pass


class DecodingError(BungieError):
    """The response body could not be decoded into the expected type."""
    pass


class AuthError(BungieError):
    """Base class for OAuth failures."""
    pass


class MissingCredentialsError(AuthError):
    """The OAuth client id or secret is not configured."""
    pass


class InvalidTokenError(AuthError):
    """The authorization code or refresh token was rejected."""
    pass


class DestinyServiceError(BungieError):
    """Base class for Destiny endpoint errors."""
    pass


class NoClanFoundError(DestinyServiceError):
    """The member does not belong to any clan."""
    pass


__all__ = [
    "BungieError",
    "InvalidURLError",
    "NetworkError",
    "HTTPStatusError",
    "BungieAPIError",
    "EmptyResponseError",
    "DecodingError",
    "AuthError",
    "MissingCredentialsError",
    "InvalidTokenError",
    "DestinyServiceError",
    "NoClanFoundError",
]

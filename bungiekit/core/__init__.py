"""Configuration, errors and the HTTP request pipeline."""

from .config import Settings, get_settings, default_cache_dir
from .errors import (
    BungieError,
    InvalidURLError,
    NetworkError,
    HTTPStatusError,
    BungieAPIError,
    EmptyResponseError,
    DecodingError,
    AuthError,
    MissingCredentialsError,
    InvalidTokenError,
    DestinyServiceError,
    NoClanFoundError,
)
from .http import APIService, HTTPMethod
from .rate_limit import RateLimiter

__all__ = [
    "Settings",
    "get_settings",
    "default_cache_dir",
    "APIService",
    "HTTPMethod",
    "RateLimiter",
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

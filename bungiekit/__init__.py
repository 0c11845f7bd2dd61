"""
BungieKit - Bungie.net API client SDK

Async client for the Bungie.net platform API: typed models, an HTTP
request pipeline, the OAuth authorization-code flow and reset-time helpers.
The downloadable content database lives in the companion package
bungiekit_manifest.
"""

from .client import BungieClient
from .auth import AuthService, AuthToken, OAuthScope, TokenResponse
from .core import (
    # Configuration
    Settings,
    get_settings,

    # Request pipeline
    APIService,
    HTTPMethod,
    RateLimiter,

    # Exceptions
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
from .models import (
    BungieMembershipType,
    DestinyComponentType,
    DestinyManifestResponse,
)
from .services import DestinyService, ResetService

__version__ = "0.1.0"
__all__ = [
    # Main classes
    "BungieClient",
    "APIService",
    "AuthService",
    "DestinyService",
    "ResetService",
    "RateLimiter",

    # Configuration
    "Settings",
    "get_settings",

    # Data models
    "AuthToken",
    "OAuthScope",
    "TokenResponse",
    "HTTPMethod",
    "BungieMembershipType",
    "DestinyComponentType",
    "DestinyManifestResponse",

    # Exceptions
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

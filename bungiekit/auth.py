"""
BungieKit - OAuth

Authorization-code flow for Bungie.net applications:
- building the authorization URL the user is sent to
- exchanging the returned code for access/refresh tokens
- refreshing an access token before it expires

Token storage is left to the application; AuthToken is a plain dataclass
that can be serialized with to_dict()/from_dict().
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlencode

from pydantic import BaseModel

from .core.config import Settings
from .core.errors import (
    BungieAPIError,
    HTTPStatusError,
    InvalidTokenError,
    MissingCredentialsError,
)
from .core.http import APIService, HTTPMethod

logger = logging.getLogger("bungiekit.auth")

TOKEN_ENDPOINT = "App/OAuth/Token/"


class OAuthScope(str, Enum):
    """OAuth scopes an application can be granted."""
    READ_BASIC_USER_PROFILE = "ReadBasicUserProfile"
    READ_GROUPS = "ReadGroups"
    WRITE_GROUPS = "WriteGroups"
    ADMIN_GROUPS = "AdminGroups"
    MOVE_EQUIP_DESTINY_ITEMS = "MoveEquipDestinyItems"
    READ_DESTINY_INVENTORY_AND_VAULT = "ReadDestinyInventoryAndVault"
    READ_USER_DATA = "ReadUserData"
    EDIT_USER_DATA = "EditUserData"
    READ_AND_APPLY_TOKENS = "ReadAndApplyTokens"
    ADVANCED_WRITE_ACTIONS = "AdvancedWriteActions"


class TokenResponse(BaseModel):
    """Body returned by the token endpoint (snake_case on the wire)."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    refresh_expires_in: Optional[int] = None
    membership_id: str


@dataclass
class AuthToken:
    """OAuth token with absolute expiry times."""
    access_token: str
    membership_id: str
    expires_at: datetime
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    refresh_expires_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, response: TokenResponse, now: Optional[datetime] = None) -> "AuthToken":
        """Convert relative expiry seconds into absolute timestamps."""
        now = now or datetime.now(timezone.utc)
        refresh_expires_at = None
        if response.refresh_expires_in is not None:
            refresh_expires_at = now + timedelta(seconds=response.refresh_expires_in)
        return cls(
            access_token=response.access_token,
            membership_id=response.membership_id,
            expires_at=now + timedelta(seconds=response.expires_in),
            token_type=response.token_type,
            refresh_token=response.refresh_token,
            refresh_expires_at=refresh_expires_at,
        )

    @property
    def is_expired(self) -> bool:
        """Check if token is expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def can_refresh(self) -> bool:
        """True if a refresh token exists and has not expired."""
        if not self.refresh_token:
            return False
        if self.refresh_expires_at is None:
            return True
        return datetime.now(timezone.utc) < self.refresh_expires_at

    def needs_refresh(self, buffer_seconds: int = 300) -> bool:
        """Check if token needs refresh (within buffer of expiry)."""
        buffer = timedelta(seconds=buffer_seconds)
        return datetime.now(timezone.utc) >= (self.expires_at - buffer)

    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"{self.token_type} {self.access_token}"}

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "access_token": self.access_token,
            "membership_id": self.membership_id,
            "expires_at": self.expires_at.isoformat(),
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "refresh_expires_at": self.refresh_expires_at.isoformat() if self.refresh_expires_at else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AuthToken":
        """Create from dictionary."""
        refresh_expires_at = d.get("refresh_expires_at")
        return cls(
            access_token=d["access_token"],
            membership_id=d["membership_id"],
            expires_at=datetime.fromisoformat(d["expires_at"]),
            token_type=d.get("token_type", "Bearer"),
            refresh_token=d.get("refresh_token"),
            refresh_expires_at=datetime.fromisoformat(refresh_expires_at) if refresh_expires_at else None,
        )


class AuthService:
    """Handles the OAuth authorization-code flow."""

    def __init__(self, settings: Settings, api_service: APIService):
        self.settings = settings
        self.api_service = api_service

        if not settings.has_oauth_credentials:
            logger.warning("AuthService initialized without client ID or secret")

    def _credentials(self) -> tuple[str, str]:
        if not self.settings.client_id or not self.settings.client_secret:
            raise MissingCredentialsError("OAuth client ID and secret are required")
        return self.settings.client_id, self.settings.client_secret

    def get_authorization_url(self, scopes: Iterable[OAuthScope], state: str) -> str:
        """URL to send the user to so they can authorize this application."""
        if not self.settings.client_id:
            raise MissingCredentialsError("Cannot create authorization URL without client ID")

        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "state": state,
        }
        scope_values = [OAuthScope(s).value for s in scopes]
        if scope_values:
            params["scope"] = " ".join(scope_values)

        return f"{self.settings.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenResponse:
        """Exchange an authorization code for access and refresh tokens."""
        client_id, client_secret = self._credentials()
        logger.info("Exchanging authorization code for tokens")
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
        })

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        """Obtain a new access token using a refresh token."""
        client_id, client_secret = self._credentials()
        logger.info("Refreshing authentication token...")
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        })

    async def refresh_if_needed(self, token: AuthToken, buffer_seconds: int = 300) -> AuthToken:
        """Return token unchanged, or a refreshed copy when close to expiry."""
        if not token.needs_refresh(buffer_seconds):
            return token
        if not token.can_refresh:
            raise InvalidTokenError("Access token expired and no valid refresh token is available")
        response = await self.refresh_token(token.refresh_token)
        return AuthToken.from_response(response)

    async def _token_request(self, form: dict[str, str]) -> TokenResponse:
        try:
            return await self.api_service.request(
                TOKEN_ENDPOINT,
                method=HTTPMethod.POST,
                data=form,
                response_model=TokenResponse,
            )
        except (HTTPStatusError, BungieAPIError) as e:
            if getattr(e, "status_code", None) in (400, 401):
                raise InvalidTokenError(f"Token request rejected: {e}") from e
            raise

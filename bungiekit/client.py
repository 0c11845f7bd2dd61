"""
BungieKit - Client facade

Wires configuration, the request pipeline and the endpoint services into a
single object.

Usage:
    async with BungieClient.basic("my-api-key") as client:
        manifest = await client.destiny.get_manifest()
"""

import logging
from typing import Optional

import httpx

from .auth import AuthService
from .core.config import Settings, get_settings
from .core.http import APIService
from .services.destiny import DestinyService
from .services.reset import ResetService

logger = logging.getLogger("bungiekit.client")


class BungieClient:
    """Main client for interacting with the Bungie.net API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        api_service: Optional[APIService] = None,
        auth_service: Optional[AuthService] = None,
        destiny_service: Optional[DestinyService] = None,
        reset_service: Optional[ResetService] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.api = api_service or APIService(self.settings, http_client=http_client)

        # OAuth is only available to confidential clients
        if auth_service is None and self.settings.has_oauth_credentials:
            auth_service = AuthService(self.settings, self.api)
        self.auth = auth_service

        self.destiny = destiny_service or DestinyService(self.api)
        self.reset = reset_service or ResetService()

        logger.info("BungieClient initialized")

    @classmethod
    def basic(cls, api_key: str, **kwargs) -> "BungieClient":
        """Create a client configured with just an API key."""
        return cls(Settings(api_key=api_key), **kwargs)

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> "BungieClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

"""
Destiny 2 endpoints of the Bungie.net platform API.
"""

import logging
from typing import Iterable, Optional

from ..core.errors import NoClanFoundError
from ..core.http import APIService, HTTPMethod
from ..models.schemas import (
    BungieMembershipType,
    DestinyCharacterResponse,
    DestinyComponentType,
    DestinyItemResponse,
    DestinyManifestResponse,
    DestinyProfileResponse,
    GetGroupsForMemberResponse,
    GroupMember,
    UserInfoCard,
    components_param,
)

logger = logging.getLogger("bungiekit.destiny")

# GroupV2 filter / group type used for clan lookups
_GROUP_FILTER_ALL = 0
_GROUP_TYPE_CLAN = 1


class DestinyService:
    """Typed wrappers around the Destiny2 and GroupV2 endpoints."""

    def __init__(self, api_service: APIService):
        self.api_service = api_service

    async def get_manifest(self) -> DestinyManifestResponse:
        """Get the current Destiny 2 manifest descriptor."""
        logger.debug("Getting Destiny manifest")
        return await self.api_service.request(
            "Destiny2/Manifest/",
            response_model=DestinyManifestResponse,
        )

    async def get_profile(
        self,
        membership_type: BungieMembershipType,
        destiny_membership_id: str,
        components: Iterable[DestinyComponentType],
        access_token: Optional[str] = None,
    ) -> DestinyProfileResponse:
        """Get a Destiny profile with the requested components."""
        membership_type = BungieMembershipType(membership_type)
        logger.debug(f"Getting profile for {membership_type.value}/{destiny_membership_id}")
        return await self.api_service.request(
            f"Destiny2/{membership_type.value}/Profile/{destiny_membership_id}/",
            params={"components": components_param(components)},
            access_token=access_token,
            response_model=DestinyProfileResponse,
        )

    async def get_character(
        self,
        membership_type: BungieMembershipType,
        destiny_membership_id: str,
        character_id: str,
        components: Iterable[DestinyComponentType],
        access_token: Optional[str] = None,
    ) -> DestinyCharacterResponse:
        """Get one character of a profile."""
        membership_type = BungieMembershipType(membership_type)
        logger.debug(
            f"Getting character {character_id} for {membership_type.value}/{destiny_membership_id}"
        )
        return await self.api_service.request(
            f"Destiny2/{membership_type.value}/Profile/{destiny_membership_id}"
            f"/Character/{character_id}/",
            params={"components": components_param(components)},
            access_token=access_token,
            response_model=DestinyCharacterResponse,
        )

    async def get_item(
        self,
        membership_type: BungieMembershipType,
        destiny_membership_id: str,
        item_instance_id: str,
        components: Iterable[DestinyComponentType],
        access_token: Optional[str] = None,
    ) -> DestinyItemResponse:
        """Get details of an instanced item."""
        membership_type = BungieMembershipType(membership_type)
        logger.debug(
            f"Getting item {item_instance_id} for {membership_type.value}/{destiny_membership_id}"
        )
        return await self.api_service.request(
            f"Destiny2/{membership_type.value}/Profile/{destiny_membership_id}"
            f"/Item/{item_instance_id}/",
            params={"components": components_param(components)},
            access_token=access_token,
            response_model=DestinyItemResponse,
        )

    async def search_destiny_player(
        self,
        display_name: str,
        display_name_code: int = 0,
        membership_type: BungieMembershipType = BungieMembershipType.ALL,
    ) -> list[UserInfoCard]:
        """Find players by Bungie name (display name plus 4 digit code)."""
        membership_type = BungieMembershipType(membership_type)
        logger.debug(f"Searching for player: {display_name}#{display_name_code:04d}")
        return await self.api_service.request(
            f"Destiny2/SearchDestinyPlayerByBungieName/{membership_type.value}/",
            method=HTTPMethod.POST,
            json={"displayName": display_name, "displayNameCode": display_name_code},
            response_model=list[UserInfoCard],
        )

    async def get_clan_memberships(
        self,
        membership_id: str,
        membership_type: BungieMembershipType,
        access_token: Optional[str] = None,
    ) -> GroupMember:
        """Get the clan membership of a user."""
        membership_type = BungieMembershipType(membership_type)
        logger.debug(f"Getting clan memberships for {membership_type.value}/{membership_id}")
        response = await self.api_service.request(
            f"GroupV2/User/{membership_type.value}/{membership_id}"
            f"/{_GROUP_FILTER_ALL}/{_GROUP_TYPE_CLAN}/",
            access_token=access_token,
            response_model=GetGroupsForMemberResponse,
        )

        if not response.results:
            raise NoClanFoundError(f"No clan found for {membership_type.value}/{membership_id}")
        return response.results[0].member

"""Data models for Bungie.net API payloads."""

from .schemas import (
    BungieModel,
    BungieMembershipType,
    DestinyComponentType,
    components_param,
    GearAssetDataBaseDefinition,
    DestinyManifestResponse,
    UserInfoCard,
    GroupResponse,
    GroupUserInfoCard,
    GroupMember,
    GroupMembership,
    GetGroupsForMemberResponse,
    DestinyProfileResponse,
    DestinyCharacterResponse,
    DestinyItemResponse,
)

__all__ = [
    "BungieModel",
    "BungieMembershipType",
    "DestinyComponentType",
    "components_param",
    "GearAssetDataBaseDefinition",
    "DestinyManifestResponse",
    "UserInfoCard",
    "GroupResponse",
    "GroupUserInfoCard",
    "GroupMember",
    "GroupMembership",
    "GetGroupsForMemberResponse",
    "DestinyProfileResponse",
    "DestinyCharacterResponse",
    "DestinyItemResponse",
]

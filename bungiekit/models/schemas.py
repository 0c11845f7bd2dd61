"""
Pydantic schemas for the Bungie.net platform API.

Field names are snake_case in Python and camelCase on the wire; every
model accepts either form.
"""

from datetime import datetime
from enum import IntEnum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BungieModel(BaseModel):
    """Base model for API payloads (camelCase aliases, unknown keys ignored)."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Enums
# =============================================================================

class BungieMembershipType(IntEnum):
    """Account platforms known to Bungie.net."""
    NONE = 0
    TIGER_XBOX = 1
    TIGER_PSN = 2
    TIGER_STEAM = 3
    TIGER_BLIZZARD = 4
    TIGER_STADIA = 5
    TIGER_EGS = 6
    TIGER_DEMON = 10
    BUNGIE_NEXT = 254
    ALL = -1  # Not a real membership type, only valid in queries

    @property
    def display_name(self) -> str:
        return _MEMBERSHIP_DISPLAY_NAMES[self]


_MEMBERSHIP_DISPLAY_NAMES = {
    BungieMembershipType.NONE: "None",
    BungieMembershipType.TIGER_XBOX: "Xbox",
    BungieMembershipType.TIGER_PSN: "PlayStation",
    BungieMembershipType.TIGER_STEAM: "Steam",
    BungieMembershipType.TIGER_BLIZZARD: "Battle.net",
    BungieMembershipType.TIGER_STADIA: "Stadia",
    BungieMembershipType.TIGER_EGS: "Epic Games",
    BungieMembershipType.TIGER_DEMON: "Demon",
    BungieMembershipType.BUNGIE_NEXT: "Bungie.net",
    BungieMembershipType.ALL: "All",
}


class DestinyComponentType(IntEnum):
    """Components that can be requested from the profile endpoints."""
    NONE = 0

    # Profile components
    PROFILES = 100
    VENDOR_RECEIPTS = 101
    PROFILE_INVENTORIES = 102
    PROFILE_CURRENCIES = 103
    PROFILE_PROGRESSION = 104
    PLATFORM_SILVER = 105

    # Character components
    CHARACTERS = 200
    CHARACTER_INVENTORIES = 201
    CHARACTER_PROGRESSIONS = 202
    CHARACTER_RENDER_DATA = 203
    CHARACTER_ACTIVITIES = 204
    CHARACTER_EQUIPMENT = 205
    CHARACTER_LOADOUTS = 206

    # Item components
    ITEM_INSTANCES = 300
    ITEM_OBJECTIVES = 301
    ITEM_PERKS = 302
    ITEM_RENDER_DATA = 303
    ITEM_STATS = 304
    ITEM_SOCKETS = 305
    ITEM_TALENT_GRIDS = 306
    ITEM_COMMON_DATA = 307
    ITEM_PLUG_STATES = 308
    ITEM_PLUG_OBJECTIVES = 309
    ITEM_REUSABLE_PLUGS = 310
    ITEM_UNINSTANCED_ITEM_OBJECTIVES = 311

    # Vendor components
    VENDORS = 400
    VENDOR_CATEGORIES = 401
    VENDOR_SALES = 402

    # Profile-wide components
    KIOSKS = 500
    CURRENCY_LOOKUPS = 600
    PRESENTATION_NODES = 700
    RECORDS = 800
    COLLECTIBLES = 900
    TRANSITORY = 1000
    METRICS = 1100
    STRING_VARIABLES = 1200
    CRAFTABLES = 1300
    SOCIAL_COMMENDATIONS = 1400


def components_param(components: Iterable[DestinyComponentType]) -> str:
    """Format components for the `components` query parameter."""
    return ",".join(str(int(c)) for c in components)


# =============================================================================
# Manifest
# =============================================================================

class GearAssetDataBaseDefinition(BungieModel):
    """Location of a gear asset database."""
    version: int
    path: str


class DestinyManifestResponse(BungieModel):
    """The published description of the current content snapshot."""
    version: str
    mobile_world_content_paths: dict[str, str] = Field(default_factory=dict)
    mobile_asset_content_path: Optional[str] = None
    mobile_gear_asset_data_bases: list[GearAssetDataBaseDefinition] = Field(default_factory=list)
    json_world_content_paths: dict[str, str] = Field(default_factory=dict)
    json_world_component_content_paths: dict[str, dict[str, str]] = Field(default_factory=dict)

    @property
    def available_locales(self) -> list[str]:
        return sorted(self.mobile_world_content_paths)

    def world_content_url(
        self,
        locale: str = "en",
        host: str = "https://www.bungie.net",
    ) -> Optional[str]:
        """URL of the world content database for a locale, None if unpublished."""
        path = self.mobile_world_content_paths.get(locale)
        if not path:
            return None

        # Full URLs are used as-is, everything else is a path on the content host
        if path.startswith("http"):
            return path
        return f"{host.rstrip('/')}/{path.lstrip('/')}"


# =============================================================================
# Users and Groups
# =============================================================================

class UserInfoCard(BungieModel):
    """Public information about one platform membership."""
    membership_id: str
    membership_type: BungieMembershipType
    display_name: Optional[str] = None
    bungie_global_display_name: Optional[str] = None
    bungie_global_display_name_code: Optional[int] = None
    icon_path: Optional[str] = None
    cross_save_override: BungieMembershipType = BungieMembershipType.NONE
    applicable_membership_types: list[BungieMembershipType] = Field(default_factory=list)
    is_public: bool = False
    date_last_played: Optional[datetime] = None

    @property
    def bungie_name(self) -> Optional[str]:
        """Name#0000 form of the global display name, when known."""
        if not self.bungie_global_display_name:
            return None
        code = self.bungie_global_display_name_code or 0
        return f"{self.bungie_global_display_name}#{code:04d}"


class GroupResponse(BungieModel):
    """A clan."""
    group_id: str
    name: str
    group_type: int
    creation_date: Optional[datetime] = None
    about: Optional[str] = None


class GroupUserInfoCard(BungieModel):
    """Group membership details of a user."""
    membership_id: Optional[str] = None
    membership_type: Optional[BungieMembershipType] = None
    display_name: Optional[str] = None
    bungie_global_display_name: Optional[str] = None
    bungie_global_display_name_code: Optional[int] = None
    destiny_membership_id: Optional[str] = None
    destiny_membership_type: Optional[BungieMembershipType] = None
    icon_path: Optional[str] = None
    cross_save_override: Optional[BungieMembershipType] = None
    applicable_membership_types: list[BungieMembershipType] = Field(default_factory=list)
    is_public: Optional[bool] = None
    member_type: Optional[int] = None
    join_date: Optional[datetime] = None


class GroupMember(BungieModel):
    """Wrapper around the destiny user info of a group member."""
    member_type: Optional[int] = None
    is_online: Optional[bool] = None
    group_id: Optional[str] = None
    destiny_user_info: GroupUserInfoCard = Field(default_factory=GroupUserInfoCard)
    join_date: Optional[datetime] = None


class GroupMembership(BungieModel):
    member: GroupMember
    group: GroupResponse


class GetGroupsForMemberResponse(BungieModel):
    results: list[GroupMembership] = Field(default_factory=list)
    total_results: int = 0


# =============================================================================
# Profile / Character / Item
# =============================================================================
# Component payloads are large and change with every game release, so they
# are exposed as plain dictionaries.

class DestinyProfileResponse(BungieModel):
    profile: Optional[dict[str, Any]] = None
    characters: Optional[dict[str, Any]] = None
    character_inventories: Optional[dict[str, Any]] = None
    character_equipment: Optional[dict[str, Any]] = None
    item_components: Optional[dict[str, Any]] = None
    character_progressions: Optional[dict[str, Any]] = None
    character_activities: Optional[dict[str, Any]] = None
    profile_inventory: Optional[dict[str, Any]] = None
    profile_currencies: Optional[dict[str, Any]] = None
    profile_progression: Optional[dict[str, Any]] = None
    character_loadouts: Optional[dict[str, Any]] = None


class DestinyCharacterResponse(BungieModel):
    character: Optional[dict[str, Any]] = None
    inventory: Optional[dict[str, Any]] = None
    equipment: Optional[dict[str, Any]] = None
    progressions: Optional[dict[str, Any]] = None
    activities: Optional[dict[str, Any]] = None


class DestinyItemResponse(BungieModel):
    character_id: Optional[str] = None
    item: Optional[dict[str, Any]] = None
    instance: Optional[dict[str, Any]] = None
    stats: Optional[dict[str, Any]] = None
    perks: Optional[dict[str, Any]] = None
    sockets: Optional[dict[str, Any]] = None

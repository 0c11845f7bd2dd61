"""
Definition categories, content hashes and typed definition models.

The content database holds one table per definition category, named after
the category (e.g. DestinyInventoryItemDefinition). Rows are keyed by the
definition's 32-bit hash and carry the definition as a JSON document.
"""

import re
from enum import Enum
from functools import lru_cache
from typing import Any, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from bungiekit.models.schemas import BungieModel

from .errors import DefinitionDecodeError

# Tables that look like content tables; anything else in the staging
# database (metadata, indexes) is ignored.
TABLE_NAME_PATTERN = re.compile(r"^Destiny[A-Za-z0-9]+Definition$")

MAX_HASH = 0xFFFFFFFF
_MIN_SIGNED = -(2 ** 31)


class DefinitionType(str, Enum):
    """Definition categories imported from the content database."""
    INVENTORY_ITEM = "DestinyInventoryItemDefinition"
    CLASS = "DestinyClassDefinition"
    RACE = "DestinyRaceDefinition"
    GENDER = "DestinyGenderDefinition"
    ACTIVITY_MODE = "DestinyActivityModeDefinition"
    ACTIVITY = "DestinyActivityDefinition"
    DESTINATION = "DestinyDestinationDefinition"
    PLACE = "DestinyPlaceDefinition"
    VENDOR = "DestinyVendorDefinition"
    TALENT_GRID = "DestinyTalentGridDefinition"
    STAT_GROUP = "DestinyStatGroupDefinition"
    FACTION = "DestinyFactionDefinition"
    SEASON = "DestinySeasonDefinition"
    SEASON_PASS = "DestinySeasonPassDefinition"
    COLLECTIBLE = "DestinyCollectibleDefinition"
    PRESENTATION_NODE = "DestinyPresentationNodeDefinition"
    RECORD = "DestinyRecordDefinition"
    LORE = "DestinyLoreDefinition"
    METRIC = "DestinyMetricDefinition"
    OBJECTIVE = "DestinyObjectiveDefinition"
    ITEM = "DestinyItemDefinition"
    SOCKET_TYPE = "DestinySocketTypeDefinition"
    STAT = "DestinyStatDefinition"
    TRAIT = "DestinyTraitDefinition"
    DAMAGE_TYPE = "DestinyDamageTypeDefinition"
    POWER_CAP = "DestinyPowerCapDefinition"
    MATERIAL_REQUIREMENT = "DestinyMaterialRequirementSetDefinition"

    @property
    def table_name(self) -> str:
        return self.value

    @property
    def short_name(self) -> str:
        """Category name without the Destiny/Definition affixes."""
        return self.value[len("Destiny"):-len("Definition")]

    @classmethod
    def from_table_name(cls, name: str) -> Optional["DefinitionType"]:
        """Category for a staging table name, None if it is not a known one."""
        if not TABLE_NAME_PATTERN.match(name):
            return None
        try:
            return cls(name)
        except ValueError:
            return None

    @classmethod
    def parse(cls, value: Union["DefinitionType", str]) -> "DefinitionType":
        """
        Resolve a category from a member, table name, member name or short name.

        "DestinyInventoryItemDefinition", "INVENTORY_ITEM", "inventoryItem"
        and "InventoryItem" all resolve to INVENTORY_ITEM.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown definition type: {value!r}")

        wanted = value.replace("_", "").lower()
        if wanted in _SHORTHANDS:
            return _SHORTHANDS[wanted]
        for member in cls:
            if value == member.value:
                return member
            if wanted in (member.name.replace("_", "").lower(), member.short_name.lower()):
                return member
        raise ValueError(f"Unknown definition type: {value!r}")


# Lowercased camelCase names that do not follow the member naming
_SHORTHANDS = {
    "statdefinition": DefinitionType.STAT,
    "traitdefinition": DefinitionType.TRAIT,
    "power": DefinitionType.POWER_CAP,
}


def normalize_hash(value: int) -> int:
    """
    Convert a stored row id to an unsigned 32-bit content hash.

    The content database stores hashes as signed 32-bit integers, so values
    above 2**31 - 1 show up negative.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Content hash must be an integer, got {type(value).__name__}")
    if not _MIN_SIGNED <= value <= MAX_HASH:
        raise ValueError(f"Content hash out of 32-bit range: {value}")
    return value & MAX_HASH


def check_hash(value: int) -> int:
    """Validate a hash used for lookups (0 <= hash <= 2**32 - 1)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Content hash must be an integer, got {type(value).__name__}")
    if not 0 <= value <= MAX_HASH:
        raise ValueError(f"Content hash out of range: {value}")
    return value


# =============================================================================
# Decoding
# =============================================================================

@lru_cache(maxsize=64)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


def decode_definition(payload: Union[bytes, str], model: Any = None) -> Any:
    """
    Decode a stored definition payload.

    Args:
        payload: JSON document as stored in the content store
        model: Type to validate into; the parsed JSON object if None

    Raises:
        DefinitionDecodeError: payload is not valid JSON or does not fit model
    """
    if model is None:
        model = dict[str, Any]
    try:
        return _adapter(model).validate_json(payload)
    except ValidationError as e:
        name = getattr(model, "__name__", str(model))
        raise DefinitionDecodeError(f"Could not decode definition as {name}: {e}") from e


# =============================================================================
# Typed Definitions
# =============================================================================
# Partial models: only commonly used fields are declared, the rest of each
# document is ignored.

class DisplayProperties(BungieModel):
    name: str = ""
    description: str = ""
    icon: Optional[str] = None
    has_icon: bool = False


class Definition(BungieModel):
    """Fields shared by every definition document."""
    hash: int = 0
    index: int = 0
    redacted: bool = False
    blacklisted: bool = False
    display_properties: DisplayProperties = Field(default_factory=DisplayProperties)

    @property
    def name(self) -> str:
        return self.display_properties.name


class InventoryItemDefinition(Definition):
    item_type_display_name: Optional[str] = None
    item_type_and_tier_display_name: Optional[str] = None
    flavor_text: Optional[str] = None
    item_type: int = 0
    item_sub_type: int = 0
    class_type: int = 3
    default_damage_type: int = 0
    equippable: bool = False
    screenshot: Optional[str] = None
    inventory: dict[str, Any] = Field(default_factory=dict)
    stats: Optional[dict[str, Any]] = None

    @property
    def tier_type_name(self) -> Optional[str]:
        return self.inventory.get("tierTypeName")


class ClassDefinition(Definition):
    class_type: int = 3
    gendered_class_names: dict[str, str] = Field(default_factory=dict)


class ActivityDefinition(Definition):
    activity_light_level: int = 0
    destination_hash: int = 0
    place_hash: int = 0
    activity_type_hash: int = 0
    tier: int = 0
    pgcr_image: Optional[str] = None
    is_playlist: bool = False
    is_pvp: bool = Field(default=False, alias="isPvP")


class VendorDefinition(Definition):
    vendor_identifier: Optional[str] = None
    enabled: bool = True
    visible: bool = True
    faction_hash: int = 0
    reset_interval_minutes: int = 0
    groups: list[dict[str, Any]] = Field(default_factory=list)

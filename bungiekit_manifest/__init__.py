"""
BungieKit Manifest - local cache of the Destiny 2 world content database.

Usage:
    async with BungieClient.basic("my-api-key") as client:
        manifest = await client.destiny.get_manifest()

    provider = ManifestProvider.from_settings()
    if provider.needs_update(manifest):
        await provider.update_manifest(manifest, locale="en")

    item = provider.get_definition(3588934839, DefinitionType.INVENTORY_ITEM,
                                   InventoryItemDefinition)
"""

from .definitions import (
    DefinitionType,
    decode_definition,
    normalize_hash,
    DisplayProperties,
    Definition,
    InventoryItemDefinition,
    ClassDefinition,
    ActivityDefinition,
    VendorDefinition,
)
from .errors import (
    ManifestError,
    LocaleUnavailable,
    DownloadFailed,
    NoContentEntryFound,
    InvalidArchive,
    ImportFailed,
    DefinitionNotFound,
    DefinitionDecodeError,
    StoreUnavailable,
    SyncInProgress,
)
from .importer import ImportSummary, ManifestImporter
from .provider import ManifestObserver, ManifestProvider, SyncState
from .store import ContentStore, VersionInfo, VersionTracker
from .unpacker import ArchiveUnpacker

__all__ = [
    # Provider
    "ManifestProvider",
    "ManifestObserver",
    "SyncState",
    # Pipeline
    "ContentStore",
    "VersionInfo",
    "VersionTracker",
    "ArchiveUnpacker",
    "ManifestImporter",
    "ImportSummary",
    # Definitions
    "DefinitionType",
    "decode_definition",
    "normalize_hash",
    "DisplayProperties",
    "Definition",
    "InventoryItemDefinition",
    "ClassDefinition",
    "ActivityDefinition",
    "VendorDefinition",
    # Errors
    "ManifestError",
    "LocaleUnavailable",
    "DownloadFailed",
    "NoContentEntryFound",
    "InvalidArchive",
    "ImportFailed",
    "DefinitionNotFound",
    "DefinitionDecodeError",
    "StoreUnavailable",
    "SyncInProgress",
]

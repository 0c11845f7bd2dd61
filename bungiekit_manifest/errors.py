"""
Errors raised by the manifest subsystem.

All of them derive from ManifestError, which is itself a BungieError, so
callers that already catch SDK errors keep working.
"""

from typing import Iterable, Optional

from bungiekit.core.errors import BungieError


class ManifestError(BungieError):
    """Base exception for manifest operations."""
    pass


class LocaleUnavailable(ManifestError):
    """The manifest does not publish content for the requested locale."""

    def __init__(self, locale: str, available: Iterable[str] = ()):
        self.locale = locale
        self.available = list(available)
        message = f"No world content published for locale '{locale}'"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class DownloadFailed(ManifestError):
    """The content archive could not be fetched or written to disk."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoContentEntryFound(ManifestError):
    """The archive holds no extractable database file."""
    pass


class InvalidArchive(ManifestError):
    """The downloaded file is not a readable zip archive."""
    pass


class ImportFailed(ManifestError):
    """Copying the staging database into the content store failed."""
    pass


class DefinitionNotFound(ManifestError):
    """No definition is stored for a hash."""

    def __init__(self, hash: int, definition_type: str):
        super().__init__(f"{definition_type} {hash} not found")
        self.hash = hash
        self.definition_type = definition_type


class DefinitionDecodeError(ManifestError):
    """A stored definition could not be decoded into the requested type."""
    pass


class StoreUnavailable(ManifestError):
    """The content store database could not be opened or initialized."""
    pass


class SyncInProgress(ManifestError):
    """Another manifest sync is already running on this provider."""
    pass


__all__ = [
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

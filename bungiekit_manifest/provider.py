"""
BungieKit Manifest - Provider

Keeps a local copy of the world content database in sync with the published
manifest and serves definition lookups from it:
- version check against the imported snapshot
- streamed download with progress reporting
- extraction and transactional import in worker threads
- best-effort cleanup of temporary files on every exit path
"""

import asyncio
import logging
import os
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

import httpx

from bungiekit.core.config import Settings, get_settings
from bungiekit.models.schemas import DestinyManifestResponse

from .definitions import DefinitionType, decode_definition
from .errors import (
    DefinitionNotFound,
    DownloadFailed,
    ImportFailed,
    LocaleUnavailable,
    SyncInProgress,
)
from .importer import ImportSummary, ManifestImporter
from .store import ContentStore, VersionTracker
from .unpacker import ArchiveUnpacker

logger = logging.getLogger("bungiekit.manifest.provider")

DEFAULT_CONTENT_HOST = "https://www.bungie.net"

ProgressCallback = Callable[[float], None]


class SyncState(str, Enum):
    """Stage of the current (or last) sync attempt."""
    IDLE = "idle"
    DOWNLOADING = "downloading"
    UNPACKING = "unpacking"
    IMPORTING = "importing"
    DONE = "done"
    FAILED = "failed"


class ManifestObserver:
    """
    Hooks for sync events. The default implementation does nothing;
    subclass and override what you need. Hooks run on the event loop
    thread, and an exception raised by a hook is logged and ignored.
    """

    def on_state_change(self, state: SyncState) -> None:
        pass

    def on_import_complete(self, summary: ImportSummary) -> None:
        pass

    def on_sync_failed(self, error: BaseException) -> None:
        pass

    def on_cleanup_failed(self, path: Path, error: OSError) -> None:
        pass


class ManifestProvider:
    """Synchronizes and queries the local content database."""

    def __init__(
        self,
        store: ContentStore,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        content_host: str = DEFAULT_CONTENT_HOST,
        download_timeout: float = 300.0,
        temp_dir: Optional[Path] = None,
        observer: Optional[ManifestObserver] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.store = store
        self.tracker = VersionTracker(store)
        self.unpacker = ArchiveUnpacker(temp_dir=temp_dir)
        self.importer = ManifestImporter(store)
        self.content_host = content_host
        self.download_timeout = download_timeout
        self.temp_dir = temp_dir
        self.observer = observer or ManifestObserver()
        self.chunk_size = chunk_size

        self._http_client = http_client
        self._owns_client = http_client is None
        self._sync_lock = asyncio.Lock()
        self._state = SyncState.IDLE

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "ManifestProvider":
        """Provider over the store at settings.manifest_db_path."""
        settings = settings or get_settings()
        store = ContentStore(settings.manifest_db_path)
        kwargs.setdefault("content_host", settings.content_host)
        kwargs.setdefault("download_timeout", settings.download_timeout)
        return cls(store, **kwargs)

    async def __aenter__(self) -> "ManifestProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.download_timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._http_client

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    @property
    def current_version(self) -> Optional[str]:
        return self.tracker.current_version()

    def needs_update(self, manifest: DestinyManifestResponse) -> bool:
        """True if the published version differs from the imported one."""
        return self.tracker.needs_update(manifest.version)

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        logger.debug(f"Manifest sync state: {state.value}")
        self._notify("on_state_change", state)

    def _notify(self, hook: str, *args: Any) -> None:
        """Call an observer hook; its exceptions are logged, never raised."""
        try:
            getattr(self.observer, hook)(*args)
        except Exception as e:
            logger.warning(f"Manifest observer {hook} failed: {e!r}")

    # =========================================================================
    # Sync
    # =========================================================================

    async def update_manifest(
        self,
        manifest: DestinyManifestResponse,
        locale: str = "en",
        progress: Optional[ProgressCallback] = None,
    ) -> ImportSummary:
        """
        Download and import the world content for a locale.

        Attempts on the same provider are serialized. The previous content
        stays current and queryable if anything fails.

        Args:
            manifest: Published manifest
            locale: Content locale, e.g. "en"
            progress: Called with download progress in [0.0, 1.0]

        Raises:
            LocaleUnavailable, DownloadFailed, InvalidArchive,
            NoContentEntryFound, ImportFailed
        """
        async with self._sync_lock:
            return await self._sync(manifest, locale, progress)

    async def try_update_manifest(
        self,
        manifest: DestinyManifestResponse,
        locale: str = "en",
        progress: Optional[ProgressCallback] = None,
    ) -> ImportSummary:
        """Like update_manifest, but raises SyncInProgress instead of waiting."""
        if self._sync_lock.locked():
            raise SyncInProgress("A manifest sync is already running")
        return await self.update_manifest(manifest, locale, progress)

    async def sync_if_needed(
        self,
        manifest: DestinyManifestResponse,
        locale: str = "en",
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[ImportSummary]:
        """Update only when the published version differs; None if up to date."""
        if not self.needs_update(manifest):
            logger.info(f"Manifest {manifest.version} already imported")
            return None
        return await self.update_manifest(manifest, locale, progress)

    async def _sync(
        self,
        manifest: DestinyManifestResponse,
        locale: str,
        progress: Optional[ProgressCallback],
    ) -> ImportSummary:
        temp_files: list[Path] = []
        committed: Optional[ImportSummary] = None
        try:
            url = manifest.world_content_url(locale, self.content_host)
            if url is None:
                raise LocaleUnavailable(locale, manifest.available_locales)

            logger.info(f"Updating manifest to {manifest.version} ({locale})")

            self._set_state(SyncState.DOWNLOADING)
            archive = self._temp_path(".zip")
            temp_files.append(archive)
            await self._download(url, archive, progress)

            self._set_state(SyncState.UNPACKING)
            staging = await self._unpack(archive, temp_files)

            self._set_state(SyncState.IMPORTING)
            cancel_event = threading.Event()
            task = asyncio.ensure_future(asyncio.to_thread(
                self.importer.import_from, staging, manifest.version, locale, cancel_event,
            ))
            try:
                committed = await asyncio.shield(task)
            except asyncio.CancelledError:
                cancel_event.set()
                # The worker may already be past its last check and commit anyway
                committed = await _settle(task)
                raise

        except BaseException as e:
            if committed is None:
                self._set_state(SyncState.FAILED)
                logger.error(f"Manifest sync to {manifest.version} failed: {e!r}")
                self._notify("on_sync_failed", e)
            else:
                logger.warning(f"Sync cancelled after version {manifest.version} was committed")
            raise
        finally:
            self._cleanup(temp_files)
            if committed is not None:
                self._set_state(SyncState.DONE)
                self._notify("on_import_complete", committed)

        return committed

    async def _unpack(self, archive: Path, temp_files: list[Path]) -> Path:
        """Extract in a worker thread; a cancelled caller still waits for it to finish."""
        task = asyncio.ensure_future(asyncio.to_thread(self.unpacker.unpack, archive))
        try:
            staging = await asyncio.shield(task)
        except asyncio.CancelledError:
            staging = await _settle(task)
            if staging is not None:
                temp_files.append(staging)
            raise
        except OSError as e:
            raise ImportFailed(f"Could not extract {archive.name}: {e}") from e
        temp_files.append(staging)
        return staging

    def _temp_path(self, suffix: str) -> Path:
        try:
            fd, name = tempfile.mkstemp(prefix="bungiekit_manifest_", suffix=suffix, dir=self.temp_dir)
        except OSError as e:
            raise DownloadFailed(f"Cannot create temporary file: {e}") from e
        os.close(fd)
        return Path(name)

    async def _download(
        self,
        url: str,
        dest: Path,
        progress: Optional[ProgressCallback],
    ) -> None:
        """Stream url into dest, reporting progress when the size is known."""
        client = await self._get_http_client()
        logger.debug(f"Downloading {url}")

        received = 0
        last_reported = 0.0
        try:
            async with client.stream("GET", url, timeout=self.download_timeout) as response:
                if not response.is_success:
                    raise DownloadFailed(
                        f"Download of {url} failed with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                total = _content_length(response)
                with open(dest, "wb") as fh:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        fh.write(chunk)
                        received += len(chunk)
                        if progress and total:
                            fraction = received / total
                            # 1.0 is only reported once the file is complete
                            if last_reported < fraction < 1.0:
                                progress(fraction)
                                last_reported = fraction

        except httpx.HTTPError as e:
            raise DownloadFailed(f"Download of {url} failed: {e}") from e
        except OSError as e:
            raise DownloadFailed(f"Could not write {dest}: {e}") from e

        logger.info(f"Downloaded {received} bytes")
        if progress:
            progress(1.0)

    def _cleanup(self, paths: Iterable[Path]) -> None:
        """Delete temporary files; failures are logged and reported, never raised."""
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {path}: {e}")
                self._notify("on_cleanup_failed", path, e)

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_definition(
        self,
        hash: int,
        definition_type: Union[DefinitionType, str],
        model: Any = None,
    ) -> Any:
        """
        Decoded definition for a hash, None if it is not stored.

        Args:
            hash: Unsigned 32-bit content hash
            definition_type: Category to look in
            model: Type to decode into; the JSON object as a dict if None

        Raises:
            DefinitionDecodeError: the stored payload does not fit model
        """
        definition_type = DefinitionType.parse(definition_type)
        payload = self.store.lookup(definition_type, hash)
        if payload is None:
            return None
        return decode_definition(payload, model)

    def require_definition(
        self,
        hash: int,
        definition_type: Union[DefinitionType, str],
        model: Any = None,
    ) -> Any:
        """Like get_definition, but raises DefinitionNotFound when absent."""
        definition_type = DefinitionType.parse(definition_type)
        result = self.get_definition(hash, definition_type, model)
        if result is None:
            raise DefinitionNotFound(hash, definition_type.value)
        return result

    def get_definitions(
        self,
        hashes: Iterable[int],
        definition_type: Union[DefinitionType, str],
        model: Any = None,
    ) -> dict[int, Any]:
        """Decoded definitions for the stored hashes among `hashes`."""
        definition_type = DefinitionType.parse(definition_type)
        payloads = self.store.lookup_many(definition_type, hashes)
        return {h: decode_definition(p, model) for h, p in payloads.items()}


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value and value.isdigit() and int(value) > 0:
        return int(value)
    return None


async def _settle(task: "asyncio.Future[Any]") -> Any:
    """Wait for a worker task to finish; its result, or None if it raised."""
    try:
        return await task
    except Exception as e:
        logger.debug(f"Worker finished with {e!r} after cancellation")
        return None

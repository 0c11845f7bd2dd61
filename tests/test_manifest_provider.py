"""
Manifest Provider Tests

Tests for the sync pipeline and definition lookups. HTTP is served by
httpx.MockTransport.
"""

import asyncio
import json
import threading
from pathlib import Path

import httpx
import pytest

CONTENT_PATH = "/common/destiny2_content/sqlite/en/world_sql_content_test.content"


def make_manifest(version="v1", paths=None):
    from bungiekit.models.schemas import DestinyManifestResponse
    return DestinyManifestResponse(
        version=version,
        mobile_world_content_paths=paths if paths is not None else {"en": CONTENT_PATH},
    )


def ok(content, status=200):
    return lambda: httpx.Response(status, content=content)


def fail_with(error):
    def route():
        raise error
    return route


class RecordingObserver:
    """Observer that records every callback."""

    def __init__(self):
        self.states = []
        self.summaries = []
        self.failures = []
        self.cleanup_failures = []

    def on_state_change(self, state):
        self.states.append(state)

    def on_import_complete(self, summary):
        self.summaries.append(summary)

    def on_sync_failed(self, error):
        self.failures.append(error)

    def on_cleanup_failed(self, path, error):
        self.cleanup_failures.append(path)


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def archive_bytes(make_archive_bytes, sample_tables):
    return make_archive_bytes(sample_tables)


@pytest.fixture
def served(archive_bytes):
    """Response factories keyed by URL path, and a log of requested paths."""
    return {"routes": {CONTENT_PATH: ok(archive_bytes)}, "requests": []}


@pytest.fixture
def make_provider(store, temp_dir, served):
    """Build a provider whose HTTP client answers from `served`."""
    from bungiekit_manifest.provider import ManifestProvider

    def handler(request):
        served["requests"].append(request.url.path)
        route = served["routes"].get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route()

    def build(observer=None, chunk_size=64 * 1024, transport=None):
        client = httpx.AsyncClient(transport=transport or httpx.MockTransport(handler))
        return ManifestProvider(
            store,
            http_client=client,
            temp_dir=temp_dir,
            observer=observer,
            chunk_size=chunk_size,
        )

    return build


class TestNeedsUpdate:

    def test_fresh_store_needs_update(self, make_provider):
        """Test any manifest is newer than an empty store."""
        provider = make_provider()
        assert provider.current_version is None
        assert provider.needs_update(make_manifest("v1")) is True
        assert provider.state.value == "idle"

    def test_up_to_date_after_sync(self, make_provider):
        """Test a synced manifest no longer needs an update."""
        provider = make_provider()
        manifest = make_manifest("v1")

        asyncio.run(provider.update_manifest(manifest, "en"))

        assert provider.needs_update(manifest) is False
        assert provider.current_version == "v1"
        assert provider.needs_update(make_manifest("v2")) is True


class TestUpdateManifest:

    def test_successful_sync(self, make_provider, served, temp_dir):
        """Test download, import, state and cleanup of a full sync."""
        from bungiekit_manifest.definitions import DefinitionType
        from bungiekit_manifest.provider import SyncState

        observer = RecordingObserver()
        provider = make_provider(observer=observer)

        summary = asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))

        assert summary.version == "v1"
        assert summary.locale == "en"
        assert summary.rows_by_category[DefinitionType.INVENTORY_ITEM] == 2
        assert served["requests"] == [CONTENT_PATH]
        assert provider.state is SyncState.DONE
        assert observer.states == [
            SyncState.DOWNLOADING,
            SyncState.UNPACKING,
            SyncState.IMPORTING,
            SyncState.DONE,
        ]
        assert observer.summaries == [summary]
        assert list(temp_dir.iterdir()) == []

    def test_absolute_content_url(self, make_provider, served, archive_bytes):
        """Test absolute content paths are downloaded as-is."""
        served["routes"]["/mirror/content.zip"] = ok(archive_bytes)
        provider = make_provider()
        manifest = make_manifest("v1", {"en": "https://cdn.example.com/mirror/content.zip"})

        asyncio.run(provider.update_manifest(manifest, "en"))

        assert served["requests"] == ["/mirror/content.zip"]
        assert provider.current_version == "v1"

    def test_progress_reports(self, make_provider):
        """Test progress is monotonic, below 1.0 until done, then exactly 1.0."""
        reported = []
        provider = make_provider(chunk_size=64)

        asyncio.run(provider.update_manifest(make_manifest(), "en", progress=reported.append))

        assert len(reported) > 2
        assert reported[-1] == 1.0
        assert all(0.0 < value < 1.0 for value in reported[:-1])
        assert reported == sorted(reported)

    def test_progress_without_content_length(self, make_provider, served, archive_bytes):
        """Test only completion is reported when the size is unknown."""

        async def stream():
            for i in range(0, len(archive_bytes), 100):
                yield archive_bytes[i:i + 100]

        served["routes"][CONTENT_PATH] = lambda: httpx.Response(200, content=stream())
        reported = []
        provider = make_provider()

        asyncio.run(provider.update_manifest(make_manifest(), "en", progress=reported.append))

        assert reported == [1.0]

    def test_sync_twice_is_idempotent(self, make_provider, store, dump_store):
        """Test syncing the same manifest twice leaves identical contents."""
        provider = make_provider()
        manifest = make_manifest("v1")

        async def run():
            await provider.update_manifest(manifest, "en")
            first = dump_store(store)
            await provider.update_manifest(manifest, "en")
            return first

        first = asyncio.run(run())
        assert dump_store(store) == first
        assert provider.current_version == "v1"

    def test_sync_if_needed(self, make_provider, served):
        """Test nothing is downloaded when already up to date."""
        provider = make_provider()
        manifest = make_manifest("v1")

        async def run():
            first = await provider.sync_if_needed(manifest, "en")
            second = await provider.sync_if_needed(manifest, "en")
            return first, second

        first, second = asyncio.run(run())
        assert first is not None
        assert second is None
        assert served["requests"] == [CONTENT_PATH]


class TestSyncFailures:
    """Tests for failed syncs leaving the store untouched."""

    @pytest.fixture
    def synced(self, make_provider):
        """Provider whose store already holds v1."""
        provider = make_provider(observer=RecordingObserver())
        asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))
        provider.observer.states.clear()
        return provider

    def assert_v1_intact(self, provider):
        assert provider.current_version == "v1"
        item = provider.get_definition(12345, "DestinyInventoryItemDefinition")
        assert item["name"] == "Test Item"

    def test_locale_unavailable(self, synced, served):
        """Test a missing locale fails without downloading anything."""
        from bungiekit_manifest.errors import LocaleUnavailable
        from bungiekit_manifest.provider import SyncState

        served["requests"].clear()
        manifest = make_manifest("v2", {"en": CONTENT_PATH})

        with pytest.raises(LocaleUnavailable) as exc_info:
            asyncio.run(synced.update_manifest(manifest, "fr"))

        assert exc_info.value.locale == "fr"
        assert exc_info.value.available == ["en"]
        assert served["requests"] == []
        assert synced.state is SyncState.FAILED
        self.assert_v1_intact(synced)

    def test_locale_unavailable_on_empty_store(self, make_provider):
        """Test the locale check on a store that was never synced."""
        from bungiekit_manifest.errors import LocaleUnavailable

        provider = make_provider()
        with pytest.raises(LocaleUnavailable):
            asyncio.run(provider.update_manifest(make_manifest("v1", {"en": CONTENT_PATH}), "fr"))
        assert provider.current_version is None

    def test_http_error(self, synced, served, temp_dir):
        """Test a non-success download status raises DownloadFailed."""
        from bungiekit_manifest.errors import DownloadFailed
        from bungiekit_manifest.provider import SyncState

        served["routes"][CONTENT_PATH] = ok(b"", status=503)

        with pytest.raises(DownloadFailed) as exc_info:
            asyncio.run(synced.update_manifest(make_manifest("v2"), "en"))

        assert exc_info.value.status_code == 503
        assert synced.state is SyncState.FAILED
        assert synced.observer.states == [SyncState.DOWNLOADING, SyncState.FAILED]
        assert list(temp_dir.iterdir()) == []
        self.assert_v1_intact(synced)

    def test_network_error(self, synced, served, temp_dir):
        """Test transport errors raise DownloadFailed."""
        from bungiekit_manifest.errors import DownloadFailed

        served["routes"][CONTENT_PATH] = fail_with(httpx.ConnectError("connection refused"))

        with pytest.raises(DownloadFailed):
            asyncio.run(synced.update_manifest(make_manifest("v2"), "en"))

        assert list(temp_dir.iterdir()) == []
        self.assert_v1_intact(synced)

    def test_invalid_archive(self, synced, served, temp_dir):
        """Test a non-zip download raises InvalidArchive."""
        from bungiekit_manifest.errors import InvalidArchive

        served["routes"][CONTENT_PATH] = ok(b"<html>maintenance</html>")

        with pytest.raises(InvalidArchive):
            asyncio.run(synced.update_manifest(make_manifest("v2"), "en"))

        assert list(temp_dir.iterdir()) == []
        self.assert_v1_intact(synced)

    def test_empty_archive(self, synced, served, temp_dir):
        """Test an archive without entries raises NoContentEntryFound."""
        import io
        import zipfile
        from bungiekit_manifest.errors import NoContentEntryFound

        buffer = io.BytesIO()
        zipfile.ZipFile(buffer, "w").close()
        served["routes"][CONTENT_PATH] = ok(buffer.getvalue())

        with pytest.raises(NoContentEntryFound):
            asyncio.run(synced.update_manifest(make_manifest("v2"), "en"))

        assert list(temp_dir.iterdir()) == []
        self.assert_v1_intact(synced)

    def test_import_failure(self, synced, served, make_archive_bytes, temp_dir):
        """Test a bad row fails the import and cleans up staging files."""
        from bungiekit_manifest.errors import ImportFailed
        from bungiekit_manifest.provider import SyncState

        bad = make_archive_bytes({"DestinyInventoryItemDefinition": {12345: 99}})
        served["routes"][CONTENT_PATH] = ok(bad)

        with pytest.raises(ImportFailed):
            asyncio.run(synced.update_manifest(make_manifest("v2"), "en"))

        assert synced.observer.states[-2:] == [SyncState.IMPORTING, SyncState.FAILED]
        assert list(temp_dir.iterdir()) == []
        self.assert_v1_intact(synced)

    def test_cleanup_failure_does_not_mask_success(self, make_provider, monkeypatch):
        """Test an undeletable temp file is reported but the sync succeeds."""
        observer = RecordingObserver()
        provider = make_provider(observer=observer)

        def refuse_unlink(self, missing_ok=False):
            raise PermissionError(f"locked: {self}")

        monkeypatch.setattr(Path, "unlink", refuse_unlink)

        summary = asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))

        assert summary.version == "v1"
        assert provider.current_version == "v1"
        assert len(observer.cleanup_failures) == 2


class RaisingObserver(RecordingObserver):
    """Records callbacks, then raises from the hooks named in `failing`."""

    def __init__(self, *failing):
        super().__init__()
        self.failing = set(failing)

    def _maybe_raise(self, hook):
        if hook in self.failing:
            raise RuntimeError(f"{hook} exploded")

    def on_state_change(self, state):
        super().on_state_change(state)
        self._maybe_raise("on_state_change")

    def on_import_complete(self, summary):
        super().on_import_complete(summary)
        self._maybe_raise("on_import_complete")

    def on_sync_failed(self, error):
        super().on_sync_failed(error)
        self._maybe_raise("on_sync_failed")

    def on_cleanup_failed(self, path, error):
        super().on_cleanup_failed(path, error)
        self._maybe_raise("on_cleanup_failed")


class TestObserverFailures:
    """Tests that a misbehaving observer never changes the reported outcome."""

    def test_raising_import_complete_still_returns_summary(self, make_provider):
        """Test a committed sync is reported as a success."""
        from bungiekit_manifest.provider import SyncState

        observer = RaisingObserver("on_import_complete")
        provider = make_provider(observer=observer)

        summary = asyncio.run(provider.update_manifest(make_manifest("v9"), "en"))

        assert summary.version == "v9"
        assert provider.state is SyncState.DONE
        assert provider.current_version == "v9"
        assert observer.summaries == [summary]
        assert not provider.needs_update(make_manifest("v9"))

    def test_raising_state_change_does_not_abort_sync(self, make_provider):
        """Test every stage still runs when each state notification raises."""
        from bungiekit_manifest.provider import SyncState

        observer = RaisingObserver("on_state_change")
        provider = make_provider(observer=observer)

        summary = asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))

        assert summary.total_rows == 4
        assert observer.states == [
            SyncState.DOWNLOADING,
            SyncState.UNPACKING,
            SyncState.IMPORTING,
            SyncState.DONE,
        ]
        assert provider.state is SyncState.DONE

    def test_raising_sync_failed_keeps_typed_error(self, make_provider, served):
        """Test the download error reaches the caller, not the observer's."""
        from bungiekit_manifest.errors import DownloadFailed
        from bungiekit_manifest.provider import SyncState

        served["routes"][CONTENT_PATH] = ok(b"", status=503)
        observer = RaisingObserver("on_sync_failed", "on_state_change")
        provider = make_provider(observer=observer)

        with pytest.raises(DownloadFailed) as exc_info:
            asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))

        assert exc_info.value.status_code == 503
        assert observer.failures == [exc_info.value]
        assert provider.state is SyncState.FAILED
        assert provider.current_version is None

    def test_raising_sync_failed_keeps_locale_error(self, make_provider):
        """Test a missing locale still surfaces as LocaleUnavailable."""
        from bungiekit_manifest.errors import LocaleUnavailable

        provider = make_provider(observer=RaisingObserver("on_sync_failed"))

        with pytest.raises(LocaleUnavailable):
            asyncio.run(provider.update_manifest(make_manifest("v1"), "fr"))

    def test_raising_cleanup_hook_does_not_mask_success(self, make_provider, monkeypatch):
        """Test a raising cleanup hook still lets the sync succeed."""
        observer = RaisingObserver("on_cleanup_failed")
        provider = make_provider(observer=observer)

        def refuse_unlink(self, missing_ok=False):
            raise PermissionError(f"locked: {self}")

        monkeypatch.setattr(Path, "unlink", refuse_unlink)

        summary = asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))

        assert summary.version == "v1"
        assert len(observer.cleanup_failures) == 2


class TestConcurrency:
    """Tests for the in-flight sync guard and cancellation."""

    @pytest.fixture
    def gated_transport(self, archive_bytes):
        """Transport that holds the download until the gate opens."""
        state = {"gate": None, "started": None}

        async def handler(request):
            state["started"].set()
            await state["gate"].wait()
            return httpx.Response(200, content=archive_bytes)

        state["transport"] = httpx.MockTransport(handler)
        return state

    def test_try_update_refuses_while_syncing(self, make_provider, gated_transport):
        """Test a second non-blocking sync raises SyncInProgress."""
        from bungiekit_manifest.errors import SyncInProgress

        provider = make_provider(transport=gated_transport["transport"])
        manifest = make_manifest("v1")

        async def run():
            gated_transport["gate"] = asyncio.Event()
            gated_transport["started"] = asyncio.Event()
            task = asyncio.create_task(provider.update_manifest(manifest, "en"))
            await gated_transport["started"].wait()

            assert provider.is_syncing
            with pytest.raises(SyncInProgress):
                await provider.try_update_manifest(manifest, "en")

            gated_transport["gate"].set()
            return await task

        summary = asyncio.run(run())
        assert summary.version == "v1"
        assert not provider.is_syncing

    def test_cancel_during_download(self, make_provider, gated_transport, store, temp_dir):
        """Test cancellation leaves the store untouched and cleans up."""
        from bungiekit_manifest.provider import SyncState

        store.replace_all("DestinyClassDefinition", [(1, b'{"v": 1}')])
        store.record_version("v0")
        provider = make_provider(transport=gated_transport["transport"])

        async def run():
            gated_transport["gate"] = asyncio.Event()
            gated_transport["started"] = asyncio.Event()
            task = asyncio.create_task(provider.update_manifest(make_manifest("v1"), "en"))
            await gated_transport["started"].wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert provider.state is SyncState.FAILED
        assert provider.current_version == "v0"
        assert store.lookup("DestinyClassDefinition", 1) == b'{"v": 1}'
        assert list(temp_dir.iterdir()) == []
        assert not provider.is_syncing

    def test_unpack_and_import_run_in_worker_threads(self, make_provider, monkeypatch):
        """Test extraction and import do not block the event loop thread."""
        provider = make_provider()
        threads = {}
        real_unpack = provider.unpacker.unpack
        real_import = provider.importer.import_from

        def recording_unpack(archive):
            threads["unpack"] = threading.get_ident()
            return real_unpack(archive)

        def recording_import(staging, version, locale=None, cancel_event=None):
            threads["import"] = threading.get_ident()
            return real_import(staging, version, locale, cancel_event)

        monkeypatch.setattr(provider.unpacker, "unpack", recording_unpack)
        monkeypatch.setattr(provider.importer, "import_from", recording_import)

        async def run():
            threads["loop"] = threading.get_ident()
            return await provider.update_manifest(make_manifest("v1"), "en")

        summary = asyncio.run(run())

        assert summary.version == "v1"
        assert threads["unpack"] != threads["loop"]
        assert threads["import"] != threads["loop"]

    def test_cancel_during_import(self, make_provider, store, temp_dir, monkeypatch):
        """Test cancelling mid-import rolls back and cleans up."""
        from bungiekit_manifest.provider import SyncState

        store.replace_all("DestinyClassDefinition", [(1, b'{"v": 1}')])
        store.record_version("v0")
        observer = RecordingObserver()
        provider = make_provider(observer=observer)
        started = threading.Event()
        real_import = provider.importer.import_from

        def blocking_import(staging, version, locale=None, cancel_event=None):
            started.set()
            cancel_event.wait(5)
            return real_import(staging, version, locale, cancel_event)

        monkeypatch.setattr(provider.importer, "import_from", blocking_import)

        async def run():
            task = asyncio.create_task(provider.update_manifest(make_manifest("v1"), "en"))
            await asyncio.to_thread(started.wait, 5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert SyncState.IMPORTING in observer.states
        assert provider.state is SyncState.FAILED
        assert provider.current_version == "v0"
        assert store.lookup("DestinyClassDefinition", 1) == b'{"v": 1}'
        assert list(temp_dir.iterdir()) == []
        assert not provider.is_syncing

    def test_cancel_after_commit_reports_done(self, make_provider, store, temp_dir, monkeypatch):
        """Test a cancel that loses the race to the commit keeps the new snapshot."""
        from bungiekit_manifest.provider import SyncState

        observer = RecordingObserver()
        provider = make_provider(observer=observer)
        committed = threading.Event()
        real_import = provider.importer.import_from

        def import_then_linger(staging, version, locale=None, cancel_event=None):
            summary = real_import(staging, version, locale)
            committed.set()
            cancel_event.wait(5)
            return summary

        monkeypatch.setattr(provider.importer, "import_from", import_then_linger)

        async def run():
            task = asyncio.create_task(provider.update_manifest(make_manifest("v1"), "en"))
            await asyncio.to_thread(committed.wait, 5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert provider.state is SyncState.DONE
        assert provider.current_version == "v1"
        assert [s.version for s in observer.summaries] == ["v1"]
        assert observer.failures == []
        assert list(temp_dir.iterdir()) == []


class TestLookups:
    """Tests for typed definition lookups."""

    @pytest.fixture
    def provider(self, make_provider):
        provider = make_provider()
        asyncio.run(provider.update_manifest(make_manifest("v1"), "en"))
        return provider

    def test_get_definition_typed(self, provider):
        """Test decoding into a typed model."""
        from bungiekit_manifest.definitions import DefinitionType, InventoryItemDefinition

        item = provider.get_definition(12345, DefinitionType.INVENTORY_ITEM, InventoryItemDefinition)
        assert isinstance(item, InventoryItemDefinition)
        assert item.name == "Test Item"

    def test_get_definition_signed_row(self, provider):
        """Test a row stored with a negative id is found by its unsigned hash."""
        item = provider.get_definition(4294967295, "inventoryItem")
        assert item["displayProperties"]["name"] == "Signed Item"

    def test_get_definition_missing(self, provider):
        """Test unknown hashes and unpopulated categories return None."""
        assert provider.get_definition(1, "DestinyInventoryItemDefinition") is None
        assert provider.get_definition(1, "DestinyVendorDefinition") is None

    def test_require_definition_missing(self, provider):
        """Test require_definition raises DefinitionNotFound."""
        from bungiekit_manifest.errors import DefinitionNotFound

        with pytest.raises(DefinitionNotFound) as exc_info:
            provider.require_definition(1, "DestinyClassDefinition")
        assert exc_info.value.hash == 1

    def test_decode_error_is_distinct(self, provider, store):
        """Test a payload that does not decode raises instead of returning None."""
        from bungiekit_manifest.errors import DefinitionDecodeError

        store.replace_all("DestinyLoreDefinition", [(7, b"not json")])
        with pytest.raises(DefinitionDecodeError):
            provider.get_definition(7, "DestinyLoreDefinition")

    def test_get_definitions(self, provider):
        """Test batch lookups return only stored hashes."""
        from bungiekit_manifest.definitions import ClassDefinition

        found = provider.get_definitions([671679327, 1, 2], "DestinyClassDefinition", ClassDefinition)
        assert list(found) == [671679327]
        assert found[671679327].name == "Titan"


def test_from_settings(tmp_path):
    """Test the provider opens the store configured in settings."""
    from bungiekit.core.config import Settings
    from bungiekit_manifest.provider import ManifestProvider

    settings = Settings(manifest_dir=tmp_path / "cache", content_host="https://content.example.com/")
    provider = ManifestProvider.from_settings(settings)

    assert provider.store.db_path == tmp_path / "cache" / "manifest.sqlite3"
    assert provider.content_host == "https://content.example.com"
    assert provider.download_timeout == settings.download_timeout

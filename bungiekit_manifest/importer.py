"""
BungieKit Manifest - Importer

Copies the definition tables of an extracted content database into the
content store. All categories and the version record are written in one
transaction: either the whole snapshot lands or nothing changes.
"""

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

from .definitions import DefinitionType, normalize_hash
from .errors import ImportFailed, ManifestError
from .store import ContentStore, VersionTracker

logger = logging.getLogger("bungiekit.manifest.importer")


@dataclass
class ImportSummary:
    """Result of a completed import."""
    version: str
    locale: Optional[str] = None
    rows_by_category: dict[DefinitionType, int] = field(default_factory=dict)
    skipped_tables: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def categories(self) -> list[DefinitionType]:
        return list(self.rows_by_category)

    @property
    def total_rows(self) -> int:
        return sum(self.rows_by_category.values())


class ManifestImporter:
    """Imports a staging database into a ContentStore."""

    def __init__(self, store: ContentStore):
        self.store = store
        self.tracker = VersionTracker(store)

    def import_from(
        self,
        staging_path: Union[str, Path],
        version: str,
        locale: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportSummary:
        """
        Replace the stored definitions with those of a staging database.

        Every recognized category table is fully replaced and the version
        record updated inside a single transaction. Unrecognized tables are
        skipped. On any error the store is left as it was.

        Setting cancel_event (from another thread) abandons the import at the
        next category boundary, or just before the commit, with the same effect.

        Raises:
            ImportFailed: staging database unreadable, bad row or write failure
        """
        staging_path = Path(staging_path)
        start_time = time.time()
        logger.info(f"Importing {staging_path.name} as version {version}")

        if not staging_path.is_file():
            raise ImportFailed(f"Staging database not found: {staging_path}")

        try:
            staging = sqlite3.connect(f"{staging_path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise ImportFailed(f"Cannot open staging database: {e}") from e

        summary = ImportSummary(version=version, locale=locale)
        try:
            categories = self._discover(staging, summary)
            if not categories:
                raise ImportFailed(f"{staging_path.name} contains no definition tables")

            with self.store.transaction() as conn:
                for category in categories:
                    _check_cancelled(cancel_event, version)
                    self.store.ensure_table(category, conn=conn)
                    rows = self._read_rows(staging, category)
                    count = self.store.replace_all(category, rows, conn=conn)
                    summary.rows_by_category[category] = count
                    logger.debug(f"Imported {count} rows into {category.value}")
                self.tracker.record_version(version, locale, conn=conn)
                _check_cancelled(cancel_event, version)

        except ManifestError:
            raise
        except sqlite3.Error as e:
            raise ImportFailed(f"Import of version {version} failed: {e}") from e
        finally:
            staging.close()

        summary.duration_seconds = time.time() - start_time
        logger.info(
            f"Imported version {version}: {len(summary.rows_by_category)} categories, "
            f"{summary.total_rows} rows in {summary.duration_seconds:.2f}s"
        )
        return summary

    def _discover(self, staging: sqlite3.Connection, summary: ImportSummary) -> list[DefinitionType]:
        """Recognized categories in the staging database; records skipped tables."""
        names = [
            row[0] for row in staging.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            )
        ]

        categories = []
        for name in names:
            category = DefinitionType.from_table_name(name)
            if category is None:
                summary.skipped_tables.append(name)
                continue
            categories.append(category)

        if summary.skipped_tables:
            logger.info(f"Skipping unrecognized tables: {', '.join(summary.skipped_tables)}")
        return categories

    def _read_rows(
        self,
        staging: sqlite3.Connection,
        category: DefinitionType,
    ) -> Iterator[tuple[int, bytes]]:
        """Yield (unsigned hash, payload) pairs from a staging table."""
        cursor = staging.execute(f'SELECT id, json FROM "{category.value}"')
        seen: set[int] = set()
        for row_id, payload in cursor:
            try:
                key = normalize_hash(row_id)
            except (TypeError, ValueError) as e:
                raise ImportFailed(f"Bad id in {category.value}: {e}") from e
            if key in seen:
                raise ImportFailed(
                    f"Duplicate hash {key} in {category.value} (row id {row_id} repeats an earlier row)"
                )
            seen.add(key)

            if isinstance(payload, str):
                payload = payload.encode("utf-8")
            elif isinstance(payload, (bytes, memoryview)):
                payload = bytes(payload)
            else:
                raise ImportFailed(
                    f"Bad payload for {category.value} {key}: {type(payload).__name__}"
                )
            yield key, payload


def _check_cancelled(cancel_event: Optional[threading.Event], version: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ImportFailed(f"Import of version {version} was cancelled")

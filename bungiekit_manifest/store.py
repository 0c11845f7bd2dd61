"""
BungieKit Manifest - Content store

SQLite database holding the imported definitions:
- manifest_version: single row with the imported snapshot version
- one table per definition category: (id INTEGER PRIMARY KEY, json BLOB)

Writes happen inside explicit transactions so readers only ever see the
state before or after a complete import.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .definitions import DefinitionType, check_hash
from .errors import StoreUnavailable

logger = logging.getLogger("bungiekit.manifest.store")

# Max host parameters per IN (...) clause for batched lookups
_LOOKUP_BATCH = 500


@dataclass
class VersionInfo:
    """The recorded content snapshot."""
    version: str
    locale: Optional[str]
    imported_at: datetime


class ContentStore:
    """SQLite-backed store of definition payloads keyed by content hash."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS manifest_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version TEXT NOT NULL,
        locale TEXT,
        imported_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailable(f"Cannot open content store at {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(self.SCHEMA)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper cleanup and retry for SQLITE_BUSY."""
        conn = None
        for attempt in range(5):
            try:
                # Autocommit mode: transactions are opened explicitly
                conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
                conn.row_factory = sqlite3.Row
                break
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < 4:
                    time.sleep(0.1 * (2 ** attempt))
                else:
                    raise
        try:
            yield conn
        finally:
            if conn:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block of writes as one transaction.

        Commits when the block exits normally and rolls back on any
        exception, including cancellation.
        """
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    @contextmanager
    def _writer(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction, or run in a new one."""
        if conn is not None:
            yield conn
        else:
            with self.transaction() as own:
                yield own

    @staticmethod
    def _table(category: Union[DefinitionType, str]) -> str:
        return DefinitionType.parse(category).table_name

    @staticmethod
    def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        ).fetchone()
        return row is not None

    # === Definition Tables ===

    def ensure_table(
        self,
        category: Union[DefinitionType, str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Create the category table and its key index if missing."""
        table = self._table(category)
        with self._writer(conn) as c:
            c.execute(
                f'CREATE TABLE IF NOT EXISTS "{table}" '
                f"(id INTEGER PRIMARY KEY, json BLOB NOT NULL)"
            )
            c.execute(f'CREATE INDEX IF NOT EXISTS "idx_{table}_id" ON "{table}"(id)')

    def replace_all(
        self,
        category: Union[DefinitionType, str],
        rows: Iterable[tuple[int, bytes]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Replace every row of a category table.

        Returns:
            Number of rows inserted
        """
        table = self._table(category)
        with self._writer(conn) as c:
            self.ensure_table(category, conn=c)
            c.execute(f'DELETE FROM "{table}"')
            cursor = c.executemany(f'INSERT INTO "{table}" (id, json) VALUES (?, ?)', rows)
            count = max(cursor.rowcount, 0)
        logger.debug(f"Replaced {table}: {count} rows")
        return count

    def lookup(self, category: Union[DefinitionType, str], key: int) -> Optional[bytes]:
        """Stored payload for a hash, None if the category or key is absent."""
        table = self._table(category)
        key = check_hash(key)
        try:
            with self._get_connection() as conn:
                if not self._table_exists(conn, table):
                    return None
                row = conn.execute(f'SELECT json FROM "{table}" WHERE id = ?', (key,)).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Lookup in {table} failed: {e}") from e

        if row is None:
            return None
        return _as_bytes(row["json"])

    def lookup_many(
        self,
        category: Union[DefinitionType, str],
        keys: Iterable[int],
    ) -> dict[int, bytes]:
        """Stored payloads for several hashes; missing hashes are left out."""
        table = self._table(category)
        wanted = sorted({check_hash(k) for k in keys})
        found: dict[int, bytes] = {}
        if not wanted:
            return found

        try:
            with self._get_connection() as conn:
                if not self._table_exists(conn, table):
                    return found
                for i in range(0, len(wanted), _LOOKUP_BATCH):
                    batch = wanted[i:i + _LOOKUP_BATCH]
                    placeholders = ", ".join("?" * len(batch))
                    cursor = conn.execute(
                        f'SELECT id, json FROM "{table}" WHERE id IN ({placeholders})',
                        batch,
                    )
                    for row in cursor:
                        found[row["id"]] = _as_bytes(row["json"])
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Lookup in {table} failed: {e}") from e
        return found

    def row_count(self, category: Union[DefinitionType, str]) -> int:
        """Number of stored definitions in a category (0 if never imported)."""
        table = self._table(category)
        try:
            with self._get_connection() as conn:
                if not self._table_exists(conn, table):
                    return 0
                return conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Counting rows in {table} failed: {e}") from e

    def populated_categories(self) -> dict[DefinitionType, int]:
        """Row counts for every category table present in the store."""
        counts: dict[DefinitionType, int] = {}
        try:
            with self._get_connection() as conn:
                names = [
                    row["name"] for row in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
                    )
                ]
                for name in names:
                    category = DefinitionType.from_table_name(name)
                    if category is None:
                        continue
                    counts[category] = conn.execute(f'SELECT COUNT(*) FROM "{name}"').fetchone()[0]
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Listing stored categories failed: {e}") from e
        return counts

    # === Version Record ===

    def record_version(
        self,
        version: str,
        locale: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Overwrite the single version row."""
        with self._writer(conn) as c:
            c.execute(
                """
                INSERT OR REPLACE INTO manifest_version (id, version, locale, imported_at)
                VALUES (1, ?, ?, ?)
                """,
                (version, locale, datetime.now(timezone.utc).isoformat()),
            )

    def version_info(self) -> Optional[VersionInfo]:
        """The recorded snapshot, None if nothing was ever imported."""
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT version, locale, imported_at FROM manifest_version WHERE id = 1"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot read manifest version: {e}") from e

        if row is None:
            return None
        return VersionInfo(
            version=row["version"],
            locale=row["locale"],
            imported_at=datetime.fromisoformat(row["imported_at"]),
        )

    def current_version(self) -> Optional[str]:
        info = self.version_info()
        return info.version if info else None


class VersionTracker:
    """Decides whether a published snapshot differs from the imported one."""

    def __init__(self, store: ContentStore):
        self.store = store

    def current_version(self) -> Optional[str]:
        return self.store.current_version()

    def needs_update(self, remote_version: str) -> bool:
        """
        True when nothing is imported or the versions differ.

        Versions are opaque build stamps and are compared as plain strings,
        so a server-side rollback also triggers a re-import.
        """
        return self.store.current_version() != remote_version

    def record_version(
        self,
        version: str,
        locale: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        self.store.record_version(version, locale, conn=conn)


def _as_bytes(value: Union[bytes, memoryview, str]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)

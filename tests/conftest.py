"""
Shared fixtures: temporary content stores, staging databases and
world content archives.
"""

import io
import json
import sqlite3
import zipfile
from pathlib import Path

import pytest


def _encode(payload):
    if isinstance(payload, (dict, list)):
        return json.dumps(payload)
    return payload


@pytest.fixture
def store(tmp_path):
    """Empty content store in a temp directory."""
    from bungiekit_manifest.store import ContentStore
    return ContentStore(tmp_path / "manifest.sqlite3")


@pytest.fixture
def make_staging(tmp_path):
    """
    Build a staging database from {table_name: {id: payload}}.

    Dict and list payloads are stored as JSON text, anything else as-is.
    """
    counter = {"n": 0}

    def build(tables: dict, path: Path = None) -> Path:
        counter["n"] += 1
        path = path or tmp_path / f"staging_{counter['n']}.sqlite3"
        conn = sqlite3.connect(str(path))
        try:
            for name, rows in tables.items():
                conn.execute(f'CREATE TABLE "{name}" (id INTEGER PRIMARY KEY NOT NULL, json BLOB)')
                conn.executemany(
                    f'INSERT INTO "{name}" (id, json) VALUES (?, ?)',
                    [(key, _encode(payload)) for key, payload in rows.items()],
                )
            conn.commit()
        finally:
            conn.close()
        return path

    return build


@pytest.fixture
def make_archive_bytes(make_staging):
    """Zip a staging database the way world content archives are packed."""

    def build(tables: dict, entry_name: str = "world_sql_content_test.content") -> bytes:
        staging = make_staging(tables)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.write(staging, entry_name)
        return buffer.getvalue()

    return build


@pytest.fixture
def sample_tables():
    """A small content snapshot with three categories and one unknown table."""
    return {
        "DestinyInventoryItemDefinition": {
            12345: {"hash": 12345, "displayProperties": {"name": "Test Item"}, "name": "Test Item"},
            -1: {"hash": 4294967295, "displayProperties": {"name": "Signed Item"}},
        },
        "DestinyClassDefinition": {
            671679327: {"hash": 671679327, "classType": 0, "displayProperties": {"name": "Titan"}},
        },
        "DestinyActivityDefinition": {
            2122313384: {"hash": 2122313384, "displayProperties": {"name": "Last Wish"}, "isPvP": False},
        },
    }


@pytest.fixture
def dump_store():
    """Read every definition row of a store as {table: {id: payload}}."""

    def dump(store) -> dict:
        conn = sqlite3.connect(str(store.db_path))
        try:
            tables = [
                row[0] for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE 'Destiny%'"
                )
            ]
            return {
                table: dict(conn.execute(f'SELECT id, json FROM "{table}"').fetchall())
                for table in tables
            }
        finally:
            conn.close()

    return dump

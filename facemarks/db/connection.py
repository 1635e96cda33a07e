"""Database connection management: read-only SQLite, one handle per process."""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

from facemarks.settings import Settings

if TYPE_CHECKING:
    from facemarks.db.index import FaceIndex

log = logging.getLogger(__name__)

_index: "FaceIndex | None" = None


class IndexOpenError(Exception):
    """The faces database is missing or could not be opened."""


def open_readonly(path: Path) -> sqlite3.Connection:
    """Open *path* read-only.  Raises IndexOpenError if that is not possible.

    The file is never created: ``mode=ro`` makes sqlite refuse a missing
    database instead of silently producing an empty one.  The handle may be
    used from the browse worker thread; there are no writers.
    """
    if not path.is_file():
        raise IndexOpenError(f"database file not found: {path}")
    uri = f"{path.resolve().as_uri()}?mode=ro"
    try:
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        # Force sqlite to read the header so a non-database file fails here
        conn.execute("PRAGMA schema_version").fetchone()
    except sqlite3.Error as exc:
        raise IndexOpenError(f"unable to open database {path}: {exc}") from exc
    conn.execute("PRAGMA query_only = ON")
    return conn


def get_index(settings: Settings | None = None) -> "FaceIndex":
    """Return the process-wide FaceIndex, opening it on first call.

    The index is opened once and never reopened; if the database is
    unavailable the returned index is permanently empty.
    """
    global _index
    if _index is not None:
        return _index

    from facemarks.db.index import FaceIndex

    settings = settings or Settings.from_env()
    _index = FaceIndex.open(settings.db_path, unknown_clusters=settings.unknown_clusters)
    return _index


def close_index() -> None:
    """Close the process-wide index if open."""
    global _index
    if _index is not None:
        _index.close()
        _index = None

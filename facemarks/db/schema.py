"""Schema of the faces index.

facemarks never writes to the index; these statements describe the tables
the external scanner/clusterer produces.  ``create_schema`` exists so tests
and tooling can build fixture databases with the same shape.

    file_paths(hash, path)                      content hash -> filesystem path
    face_data(hash, grp, left, top, right, bottom, inpic)
                                                one row per detected face
    face_groups(grp, label)                     cluster -> label (or _unknown_)
    face_labels(label)                          legacy: distinct labels
    face_scanner_config(key, value)             scanner diagnostics
"""
from __future__ import annotations

import sqlite3

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS file_paths (
        hash    TEXT NOT NULL,
        path    TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_file_paths_path ON file_paths(path);
    CREATE INDEX IF NOT EXISTS idx_file_paths_hash ON file_paths(hash);

    CREATE TABLE IF NOT EXISTS face_data (
        hash    TEXT    NOT NULL,
        grp     INTEGER NOT NULL,
        "left"  INTEGER NOT NULL,
        top     INTEGER NOT NULL,
        "right" INTEGER NOT NULL,
        bottom  INTEGER NOT NULL,
        inpic   INTEGER NOT NULL DEFAULT 0
    );
    CREATE INDEX IF NOT EXISTS idx_face_data_hash ON face_data(hash);
    CREATE INDEX IF NOT EXISTS idx_face_data_grp ON face_data(grp);

    CREATE TABLE IF NOT EXISTS face_groups (
        grp     INTEGER PRIMARY KEY,
        label   TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_face_groups_label ON face_groups(label);

    CREATE TABLE IF NOT EXISTS face_scanner_config (
        key     TEXT PRIMARY KEY,
        value   TEXT
    );
"""

LEGACY_LABELS_SQL = """
    CREATE TABLE IF NOT EXISTS face_labels (
        label   TEXT PRIMARY KEY
    );
"""


def create_schema(conn: sqlite3.Connection, legacy_labels: bool = False) -> None:
    """Create the index tables on a writable connection (fixtures only)."""
    conn.executescript(SCHEMA_SQL)
    if legacy_labels:
        conn.executescript(LEGACY_LABELS_SQL)
    conn.commit()


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", [table]
    ).fetchone()
    return row is not None

"""Shared fixtures: small faces databases built in tmp_path."""
from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from PIL import Image


def _write_index(db_path: Path, files: dict[str, str], faces: list[tuple], groups: dict[int, str],
                 scanner: dict[str, str] | None = None, legacy_labels: list[str] | None = None,
                 with_groups: bool = True) -> Path:
    from facemarks.db.schema import create_schema

    conn = sqlite3.connect(db_path)
    create_schema(conn, legacy_labels=legacy_labels is not None)
    if not with_groups:
        conn.execute("DROP TABLE face_groups")
    conn.executemany("INSERT INTO file_paths (hash, path) VALUES (?, ?)",
                     [(h, p) for p, h in files.items()])
    conn.executemany(
        'INSERT INTO face_data (hash, grp, "left", top, "right", bottom, inpic) VALUES (?, ?, ?, ?, ?, ?, ?)',
        faces,
    )
    if with_groups:
        conn.executemany("INSERT INTO face_groups (grp, label) VALUES (?, ?)", list(groups.items()))
    if scanner:
        conn.executemany("INSERT INTO face_scanner_config (key, value) VALUES (?, ?)",
                         list(scanner.items()))
    if legacy_labels:
        conn.executemany("INSERT INTO face_labels (label) VALUES (?)", [(x,) for x in legacy_labels])
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def photos(tmp_path):
    """Three real JPEGs on disk: a.jpg (400×300), b.jpg and c.jpg (200×200)."""
    d = tmp_path / "photos"
    d.mkdir()
    paths = {}
    for name, size in (("a.jpg", (400, 300)), ("b.jpg", (200, 200)), ("c.jpg", (200, 200))):
        p = d / name
        Image.new("RGB", size, (90, 110, 130)).save(p, format="JPEG")
        paths[name] = p
    return paths


@pytest.fixture
def faces_db(tmp_path, photos):
    """Index with alice on a.jpg and b.jpg, bob on a.jpg and two unlabelled clusters.

    Cluster 7 has faces on b.jpg and c.jpg (2 faces), cluster 9 on c.jpg (1),
    cluster 8 also has 2 faces so ties are ordered by id.
    """
    a, b, c = (str(photos[n]) for n in ("a.jpg", "b.jpg", "c.jpg"))
    files = {a: "ha", b: "hb", c: "hc"}
    faces = [
        ("ha", 1, 100, 100, 200, 200, 1),   # alice, known
        ("ha", 2, 250, 50, 350, 150, 0),    # bob, not placed
        ("hb", 1, 10, 10, 60, 60, 1),       # alice
        ("hb", 7, 100, 100, 150, 150, 0),
        ("hc", 7, 20, 20, 80, 80, 0),
        ("hc", 8, 90, 20, 150, 80, 0),
        ("hc", 8, 90, 100, 150, 160, 0),
        ("hc", 9, 10, 100, 50, 150, 0),
    ]
    groups = {1: "alice", 2: "bob", 7: "_unknown_", 8: "_unknown_", 9: "_unknown_"}
    return _write_index(tmp_path / "faces.db", files, faces, groups,
                        scanner={"model": "hog", "threshold": "0.6"})


@pytest.fixture
def make_index_db(tmp_path):
    """Factory for one-off databases: ``make_index_db(files, faces, groups, **kw)``."""
    counter = {"n": 0}

    def _make(files, faces, groups, **kwargs) -> Path:
        counter["n"] += 1
        return _write_index(tmp_path / f"custom{counter['n']}.db", files, faces, groups, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep host environment toggles out of tests and reset the shared index."""
    for name in ("FACEMARKS_DB_PATH", "FACEMARKS_DEBUG",
                 "FACEMARKS_LEGACY_LOADER", "FACEMARKS_UNKNOWN_CLUSTERS"):
        monkeypatch.delenv(name, raising=False)
    from facemarks.db.connection import close_index
    close_index()
    yield
    close_index()

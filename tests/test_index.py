"""Tests for the face index, its connection handling and settings."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import pytest


# ── local_path ────────────────────────────────────────────────────────────────

class TestLocalPath:
    def test_plain_path(self):
        from facemarks.models import local_path
        assert local_path("/photos/a.jpg") == "/photos/a.jpg"

    def test_pathlib_path(self):
        from facemarks.models import local_path
        assert local_path(Path("/photos/a.jpg")) == "/photos/a.jpg"

    def test_file_uri_is_unquoted(self):
        from facemarks.models import local_path
        assert local_path("file:///photos/my%20trip/a.jpg") == "/photos/my trip/a.jpg"

    def test_remote_and_virtual_uris(self):
        from facemarks.models import local_path
        assert local_path("https://example.com/a.jpg") is None
        assert local_path("face:///alice") is None
        assert local_path("file://otherhost/a.jpg") is None

    def test_empty(self):
        from facemarks.models import local_path
        assert local_path("") is None
        assert local_path(None) is None


class TestAnnotation:
    def test_known_follows_inpic(self):
        from facemarks.models import Annotation, Rect
        r = Rect(0, 0, 10, 10)
        assert Annotation(r, "alice", 1, inpic=1).is_known
        assert not Annotation(r, "alice", 1, inpic=0).is_known

    def test_caption(self):
        from facemarks.models import Annotation, Rect
        assert Annotation(Rect(0, 0, 10, 10), "alice", 3).caption == "alice (3)"

    def test_rect_validity(self):
        from facemarks.models import Rect
        assert Rect(1, 1, 2, 2).is_valid()
        assert not Rect(5, 1, 5, 9).is_valid()
        assert not Rect(1, 9, 5, 1).is_valid()


# ── Opening ───────────────────────────────────────────────────────────────────

class TestOpen:
    def test_missing_file_degrades(self, tmp_path):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(tmp_path / "nope.db")
        assert not index.available
        assert index.lookup_by_path("/a.jpg") == []
        assert index.lookup_by_label("alice") == []
        assert index.lookup_by_cluster(7) == []
        assert index.enumerate_labels() == []
        assert index.scanner_config() == {}
        assert not (tmp_path / "nope.db").exists()

    def test_not_a_database_degrades(self, tmp_path):
        from facemarks.db.index import FaceIndex
        junk = tmp_path / "junk.db"
        junk.write_bytes(b"this is not sqlite at all" * 100)
        index = FaceIndex.open(junk)
        assert not index.available
        assert index.enumerate_labels() == []

    def test_open_readonly_raises(self, tmp_path):
        from facemarks.db.connection import IndexOpenError, open_readonly
        with pytest.raises(IndexOpenError):
            open_readonly(tmp_path / "missing.db")

    def test_connection_is_read_only(self, faces_db):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db)
        assert index.available
        with pytest.raises(sqlite3.Error):
            index.conn.execute("INSERT INTO face_groups (grp, label) VALUES (99, 'eve')")
        index.close()
        assert not index.available

    def test_get_index_is_shared(self, faces_db):
        from facemarks.db.connection import close_index, get_index
        from facemarks.settings import Settings
        settings = Settings(db_path=faces_db)
        first = get_index(settings)
        assert get_index(settings) is first
        close_index()
        assert get_index(settings) is not first


# ── Lookups ───────────────────────────────────────────────────────────────────

class TestLookupByPath:
    def test_single_face(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db({"/a.jpg": "h1"}, [("h1", 1, 10, 20, 110, 140, 1)], {1: "alice"})
        index = FaceIndex.open(db)
        faces = index.lookup_by_path("/a.jpg")
        assert len(faces) == 1
        face = faces[0]
        assert face.rect.as_tuple() == (10, 20, 110, 140)
        assert face.label == "alice"
        assert face.group_id == 1
        assert face.is_known

    def test_stored_order(self, faces_db, photos):
        from facemarks.db.index import FaceIndex
        faces = FaceIndex.open(faces_db).lookup_by_path(str(photos["a.jpg"]))
        assert [f.label for f in faces] == ["alice", "bob"]
        assert [f.is_known for f in faces] == [True, False]

    def test_file_uri_and_path_object(self, faces_db, photos):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db)
        assert len(index.lookup_by_path(photos["a.jpg"])) == 2
        assert len(index.lookup_by_path(photos["a.jpg"].as_uri())) == 2

    def test_unknown_and_non_local(self, faces_db):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db)
        assert index.lookup_by_path("/not/indexed.jpg") == []
        assert index.lookup_by_path("face:///alice") == []
        assert index.lookup_by_path("") == []

    def test_degenerate_rows_skipped(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db(
            {"/a.jpg": "h1"},
            [("h1", 1, 50, 50, 50, 80, 0), ("h1", 1, 10, 10, 40, 40, 0)],
            {1: "alice"},
        )
        faces = FaceIndex.open(db).lookup_by_path("/a.jpg")
        assert [f.rect.as_tuple() for f in faces] == [(10, 10, 40, 40)]

    def test_duplicate_rows_collapse(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db(
            {"/a.jpg": "h1"},
            [("h1", 1, 10, 10, 40, 40, 0), ("h1", 1, 10, 10, 40, 40, 0)],
            {1: "alice"},
        )
        assert len(FaceIndex.open(db).lookup_by_path("/a.jpg")) == 1

    def test_query_failure_returns_empty(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db({"/a.jpg": "h1"}, [("h1", 1, 10, 10, 40, 40, 0)], {},
                           with_groups=False)
        assert FaceIndex.open(db).lookup_by_path("/a.jpg") == []

    def test_step_failure_keeps_rows_already_read(self):
        from facemarks.db.index import FaceIndex
        first = {"left": 10, "top": 20, "right": 110, "bottom": 140,
                 "label": "alice", "grp": 1, "inpic": 1}
        cursor = MagicMock()
        cursor.fetchone.side_effect = [first, sqlite3.OperationalError("database disk image is malformed")]
        conn = MagicMock()
        conn.execute.return_value = cursor

        faces = FaceIndex(conn).lookup_by_path("/a.jpg")

        assert [(f.label, f.rect.as_tuple()) for f in faces] == [("alice", (10, 20, 110, 140))]
        assert cursor.fetchone.call_count == 2

    def test_step_failure_in_path_listing(self):
        from facemarks.db.index import FaceIndex
        cursor = MagicMock()
        cursor.fetchone.side_effect = [{"path": "/a.jpg"}, sqlite3.DatabaseError("locked")]
        conn = MagicMock()
        conn.execute.return_value = cursor
        assert FaceIndex(conn).lookup_by_label("alice") == ["/a.jpg"]


class TestLookupByLabelAndCluster:
    def test_label_paths_sorted_distinct(self, faces_db, photos):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db)
        assert index.lookup_by_label("alice") == [str(photos["a.jpg"]), str(photos["b.jpg"])]
        assert index.lookup_by_label("bob") == [str(photos["a.jpg"])]
        assert index.lookup_by_label("carol") == []

    def test_cluster_paths(self, faces_db, photos):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db)
        assert index.lookup_by_cluster(7) == [str(photos["b.jpg"]), str(photos["c.jpg"])]
        assert index.lookup_by_cluster(8) == [str(photos["c.jpg"])]
        assert index.lookup_by_cluster(404) == []


# ── Enumeration ───────────────────────────────────────────────────────────────

class TestEnumeration:
    def test_labels_with_face_counts(self, faces_db):
        from facemarks.db.index import FaceIndex
        labels = FaceIndex.open(faces_db).enumerate_labels()
        assert labels == [("_unknown_", 5), ("alice", 2), ("bob", 1)]

    def test_count_is_per_face(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db(
            {"/a.jpg": "h1"},
            [("h1", 1, 10, 10, 40, 40, 0), ("h1", 1, 60, 10, 90, 40, 0)],
            {1: "alice"},
        )
        assert FaceIndex.open(db).enumerate_labels() == [("alice", 2)]

    def test_legacy_label_table(self, make_index_db):
        from facemarks.db.index import FaceIndex
        db = make_index_db({}, [], {}, with_groups=False, legacy_labels=["bob", "alice"])
        assert FaceIndex.open(db).enumerate_labels() == [("alice", 0), ("bob", 0)]

    def test_clusters_disabled_by_default(self, faces_db):
        from facemarks.db.index import FaceIndex
        assert FaceIndex.open(faces_db).enumerate_unknown_clusters() == []

    def test_clusters_largest_first_then_id(self, faces_db):
        from facemarks.db.index import FaceIndex
        index = FaceIndex.open(faces_db, unknown_clusters=True)
        assert index.enumerate_unknown_clusters() == [(7, 2), (8, 2), (9, 1)]

    def test_scanner_config(self, faces_db):
        from facemarks.db.index import FaceIndex
        assert FaceIndex.open(faces_db).scanner_config() == {"model": "hog", "threshold": "0.6"}


# ── Settings ──────────────────────────────────────────────────────────────────

class TestSettings:
    def test_defaults(self):
        from facemarks.settings import DEFAULT_DB_PATH, Settings
        settings = Settings.from_env()
        assert settings.db_path == DEFAULT_DB_PATH
        assert not settings.debug
        assert not settings.legacy_loader
        assert not settings.unknown_clusters

    def test_env_overrides(self, monkeypatch, tmp_path):
        from facemarks.settings import Settings
        monkeypatch.setenv("FACEMARKS_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("FACEMARKS_DEBUG", "1")
        monkeypatch.setenv("FACEMARKS_UNKNOWN_CLUSTERS", "yes")
        monkeypatch.setenv("FACEMARKS_LEGACY_LOADER", "off")
        settings = Settings.from_env()
        assert settings.db_path == tmp_path / "x.db"
        assert settings.debug
        assert settings.unknown_clusters
        assert not settings.legacy_loader

    def test_blank_path_falls_back(self):
        from facemarks.settings import DEFAULT_DB_PATH, resolve_db_path
        assert resolve_db_path("") == DEFAULT_DB_PATH
        assert resolve_db_path("   ") == DEFAULT_DB_PATH
        assert resolve_db_path(None) == DEFAULT_DB_PATH

    def test_report_open(self, faces_db):
        from facemarks.db.index import FaceIndex
        from facemarks.settings import Settings, settings_report
        settings = Settings(db_path=faces_db)
        text = settings_report(settings, FaceIndex.open(faces_db))
        assert f"Database: {faces_db}" in text
        assert "Status: open (read-only)" in text
        assert "Unknown clusters: off" in text
        assert "  model = hog" in text

    def test_report_unavailable(self, tmp_path):
        from facemarks.db.index import FaceIndex
        from facemarks.settings import Settings, settings_report
        missing = tmp_path / "missing.db"
        text = settings_report(Settings(db_path=missing), FaceIndex.open(missing))
        assert "Status: unavailable" in text
        assert "Scanner config" not in text

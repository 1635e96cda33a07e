"""Face index: read-only queries translating paths, labels and clusters.

Every query goes through ``_rows`` so that a failing statement (missing
table, corrupt page, locked file) is logged and ends that call's results
instead of raising into the viewer.  Rows already fetched before the
failure are kept; nothing is retried.

When the database could not be opened the index is *degraded*: it has no
connection and every lookup returns an empty result.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterator, Sequence

from facemarks.db.connection import IndexOpenError, open_readonly
from facemarks.db.schema import table_exists
from facemarks.models import UNKNOWN_LABEL, Annotation, Rect, local_path

log = logging.getLogger(__name__)

_LOOKUP_BY_PATH_SQL = """
    SELECT d."left", d.top, d."right", d.bottom, g.label, g.grp, d.inpic,
           MIN(d.rowid) AS first_row
    FROM file_paths AS f
    INNER JOIN face_data AS d ON d.hash = f.hash
    INNER JOIN face_groups AS g ON g.grp = d.grp
    WHERE f.path = ?
    GROUP BY d."left", d.top, d."right", d.bottom, g.label, g.grp, d.inpic
    ORDER BY first_row
"""

_LOOKUP_BY_LABEL_SQL = """
    SELECT DISTINCT p.path
    FROM face_groups AS g
    INNER JOIN face_data AS d ON g.grp = d.grp
    INNER JOIN file_paths AS p ON p.hash = d.hash
    WHERE g.label = ?
    ORDER BY p.path
"""

_LOOKUP_BY_CLUSTER_SQL = """
    SELECT DISTINCT p.path
    FROM face_data AS d
    INNER JOIN file_paths AS p ON p.hash = d.hash
    WHERE d.grp = ?
    ORDER BY p.path
"""

# Counts are face rows, not distinct photographs: an image showing the same
# person twice contributes two.
_ENUMERATE_LABELS_SQL = """
    SELECT g.label, COUNT(d.grp) AS face_count
    FROM face_groups AS g
    INNER JOIN face_data AS d ON d.grp = g.grp
    GROUP BY g.label
    ORDER BY g.label
"""

_ENUMERATE_LEGACY_LABELS_SQL = """
    SELECT label, 0 AS face_count FROM face_labels ORDER BY label
"""

_ENUMERATE_UNKNOWN_CLUSTERS_SQL = """
    SELECT d.grp, COUNT(*) AS face_count
    FROM face_data AS d
    INNER JOIN face_groups AS g ON g.grp = d.grp
    WHERE g.label = ?
    GROUP BY d.grp
    ORDER BY face_count DESC, d.grp ASC
"""


class FaceIndex:
    """Query facade over the faces database.

    Construct with an open connection, or ``None`` for a degraded index.
    Use ``FaceIndex.open(path)`` to open a database file with the degrade-
    on-failure behaviour.
    """

    def __init__(
        self,
        conn: sqlite3.Connection | None,
        unknown_clusters: bool = False,
        source: Path | None = None,
    ) -> None:
        if conn is not None:
            conn.row_factory = sqlite3.Row
        self.conn = conn
        self.unknown_clusters = unknown_clusters
        self.source = source

    @classmethod
    def open(cls, path: Path, unknown_clusters: bool = False) -> "FaceIndex":
        """Open *path* read-only; on failure log once and return a degraded index."""
        try:
            conn = open_readonly(path)
        except IndexOpenError as exc:
            log.warning("faces: %s; face lookups disabled", exc)
            return cls(None, unknown_clusters=unknown_clusters, source=path)
        log.debug("faces: opened index %s", path)
        return cls(conn, unknown_clusters=unknown_clusters, source=path)

    @property
    def available(self) -> bool:
        return self.conn is not None

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # ── Query plumbing ────────────────────────────────────────────────────

    def _rows(self, sql: str, params: Sequence[Any] = ()) -> Iterator[sqlite3.Row]:
        """Yield rows for *sql*; stop quietly (after logging) on any sqlite error."""
        if self.conn is None:
            return
        try:
            cur = self.conn.execute(sql, list(params))
        except sqlite3.Error as exc:
            log.error("faces: query failed: %s", exc)
            return
        while True:
            try:
                row = cur.fetchone()
            except sqlite3.Error as exc:
                log.error("faces: reading query results failed: %s", exc)
                return
            if row is None:
                return
            yield row

    # ── Lookups ───────────────────────────────────────────────────────────

    def lookup_by_path(self, path: "str | Path") -> list[Annotation]:
        """Return the annotations on the image at *path*, in stored row order.

        Non-local references (remote URIs, virtual tree URIs) have no path
        to join against and yield an empty list.
        """
        key = local_path(path)
        if key is None:
            log.debug("faces: not a local image, skipping: %s", path)
            return []

        log.debug("faces: querying for faces in file: %s", key)
        annotations: list[Annotation] = []
        for row in self._rows(_LOOKUP_BY_PATH_SQL, [key]):
            rect = Rect(int(row["left"]), int(row["top"]), int(row["right"]), int(row["bottom"]))
            if not rect.is_valid():
                log.warning(
                    "faces: skipping degenerate rectangle %s for %s (%s)",
                    rect.as_tuple(), key, row["label"],
                )
                continue
            annotations.append(Annotation(
                rect=rect,
                label=row["label"],
                group_id=int(row["grp"]),
                inpic=int(row["inpic"] or 0),
            ))
        log.debug("faces: %d face(s) in %s", len(annotations), key)
        return annotations

    def lookup_by_label(self, label: str) -> list[str]:
        """Return the distinct image paths showing *label*, sorted."""
        return [row["path"] for row in self._rows(_LOOKUP_BY_LABEL_SQL, [label])]

    def lookup_by_cluster(self, group_id: int) -> list[str]:
        """Return the distinct image paths containing a face in cluster *group_id*."""
        return [row["path"] for row in self._rows(_LOOKUP_BY_CLUSTER_SQL, [int(group_id)])]

    # ── Enumeration ───────────────────────────────────────────────────────

    def enumerate_labels(self) -> list[tuple[str, int]]:
        """Return ``(label, face_count)`` pairs ordered by label.

        ``face_count`` counts face rows and therefore over-counts photographs
        that show a person more than once.  Databases predating
        ``face_groups`` only provide the label list; counts are 0 there.
        """
        if self.conn is None:
            return []
        sql = _ENUMERATE_LABELS_SQL
        try:
            if not table_exists(self.conn, "face_groups") and table_exists(self.conn, "face_labels"):
                sql = _ENUMERATE_LEGACY_LABELS_SQL
        except sqlite3.Error as exc:
            log.error("faces: schema check failed: %s", exc)
            return []
        return [(row["label"], int(row["face_count"])) for row in self._rows(sql)]

    def enumerate_unknown_clusters(self) -> list[tuple[int, int]]:
        """Return ``(cluster_id, face_count)`` for unlabelled clusters, largest first.

        Only available when unknown-cluster browsing is enabled; otherwise
        returns an empty list without touching the database.
        """
        if not self.unknown_clusters:
            return []
        return [
            (int(row["grp"]), int(row["face_count"]))
            for row in self._rows(_ENUMERATE_UNKNOWN_CLUSTERS_SQL, [UNKNOWN_LABEL])
        ]

    def scanner_config(self) -> dict[str, str]:
        """Return ``face_scanner_config`` as a dict (diagnostics only)."""
        if self.conn is None:
            return {}
        try:
            if not table_exists(self.conn, "face_scanner_config"):
                return {}
        except sqlite3.Error as exc:
            log.error("faces: schema check failed: %s", exc)
            return {}
        return {
            str(row["key"]): "" if row["value"] is None else str(row["value"])
            for row in self._rows("SELECT key, value FROM face_scanner_config ORDER BY key")
        }

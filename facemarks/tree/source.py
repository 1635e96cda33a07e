"""Face tree file source: labels and clusters as browsable directories.

The tree is two levels deep:

    face:///                   one directory per label (plus, when enabled,
                               one per unlabelled cluster)
    face:///<label>            the photographs showing that label
    face:///_unk_:<cluster>    the photographs in that cluster

Nothing is cached; every browse queries the index afresh.  Enumeration
runs on a single background worker (the equivalent of an idle callback),
so requests complete in submission order and each one delivers its whole
child list at once through a ``Future``.

The source is read-only.  Mutating calls are accepted and do nothing.
"""
from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from facemarks.tree.nodes import (
    SCHEME,
    ClusterRef,
    FileEntry,
    LabelRef,
    NodeRef,
    RootRef,
    TreeNode,
    cluster_node,
    label_node,
    node_for,
    parse_uri,
    root_node,
)

if TYPE_CHECKING:
    from facemarks.db.index import FaceIndex

log = logging.getLogger(__name__)

Child = Union[TreeNode, FileEntry]


class FaceFileSource:
    """Read-only virtual directory tree over a FaceIndex."""

    scheme = SCHEME

    def __init__(self, index: "FaceIndex", executor: Optional[Executor] = None) -> None:
        self.index = index
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()

    # ── Resolution ────────────────────────────────────────────────────────

    def get_entry_points(self) -> list[TreeNode]:
        return [root_node()]

    def resolve(self, uri: str) -> NodeRef:
        """Parse *uri* into a node reference.  Raises ValueError for foreign URIs."""
        return parse_uri(uri)

    def get_file_info(self, uri: str) -> dict[str, Any]:
        return node_for(self.resolve(uri)).file_info()

    def get_metadata(self, path: str) -> FileEntry | None:
        """Stat a photograph; None (with a warning) if it can't be read."""
        try:
            st = os.stat(path)
        except OSError as exc:
            log.warning("faces: warning: unable to read file info: %s (%s)", path, exc)
            return None
        return FileEntry(path=path, size=st.st_size, mtime=st.st_mtime)

    # ── Enumeration ───────────────────────────────────────────────────────

    def list_children(
        self, uri: str, cancel: Optional[threading.Event] = None
    ) -> list[Child]:
        """Return the children of *uri* synchronously.

        An empty list is returned for foreign URIs and for cancelled
        requests; a cancelled request issues no further queries and keeps
        none of the children it had already found.
        """
        log.debug("faces: for_each_child (%s): enter", uri)
        try:
            ref = parse_uri(uri)
        except ValueError as exc:
            log.error("faces: %s", exc)
            return []
        if _cancelled(cancel):
            log.debug("faces: for_each_child (%s): cancelled before query", uri)
            return []

        if isinstance(ref, RootRef):
            children: list[Child] = list(self._list_root(cancel))
        elif isinstance(ref, LabelRef):
            children = self._list_files(self.index.lookup_by_label(ref.name), cancel)
        elif isinstance(ref, ClusterRef):
            children = self._list_files(self.index.lookup_by_cluster(ref.group_id), cancel)
        else:
            children = []

        if _cancelled(cancel):
            log.debug("faces: for_each_child (%s): cancelled", uri)
            return []
        log.debug("faces: for_each_child (%s): exit, %d children", uri, len(children))
        return children

    def enumerate_children(
        self, uri: str, cancel: Optional[threading.Event] = None
    ) -> "Future[list[Child]]":
        """Schedule ``list_children`` on the browse worker and return its future."""
        return self._get_executor().submit(self.list_children, uri, cancel)

    def _list_root(self, cancel: Optional[threading.Event]) -> Iterable[TreeNode]:
        nodes = [label_node(label, count) for label, count in self.index.enumerate_labels()]
        if self.index.unknown_clusters and not _cancelled(cancel):
            nodes.extend(
                cluster_node(group_id, count)
                for group_id, count in self.index.enumerate_unknown_clusters()
            )
        return nodes

    def _list_files(self, paths: list[str], cancel: Optional[threading.Event]) -> list[Child]:
        files: list[Child] = []
        for path in paths:
            if _cancelled(cancel):
                return []
            entry = self.get_metadata(path)
            if entry is not None:
                files.append(entry)
        return files

    def _get_executor(self) -> Executor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="facemarks-browse"
                )
            return self._executor

    def shutdown(self) -> None:
        with self._lock:
            if self._executor is not None and self._owns_executor:
                self._executor.shutdown(wait=True)
                self._executor = None

    # ── Unsupported operations (read-only source) ─────────────────────────

    def write_metadata(self, *args: Any, **kwargs: Any) -> bool:
        log.debug("faces: write_metadata ignored")
        return True

    def read_metadata(self, *args: Any, **kwargs: Any) -> bool:
        return True

    def rename(self, *args: Any, **kwargs: Any) -> bool:
        log.debug("faces: rename ignored")
        return True

    def copy(self, *args: Any, **kwargs: Any) -> bool:
        log.debug("faces: copy ignored")
        return True

    def reorder(self, *args: Any, **kwargs: Any) -> bool:
        log.debug("faces: reorder ignored")
        return True

    def remove(self, *args: Any, **kwargs: Any) -> bool:
        log.debug("faces: remove ignored")
        return True

    def can_cut(self, *args: Any) -> bool:
        return False

    def is_reorderable(self) -> bool:
        return False

    def shows_extra_widget(self) -> bool:
        return False


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()

"""Single-slot annotation cache for the image currently on display."""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import TYPE_CHECKING

from facemarks.models import Annotation

if TYPE_CHECKING:
    from facemarks.db.index import FaceIndex

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CacheEntry:
    path: str
    annotations: tuple[Annotation, ...]
    original_size: tuple[int, int] | None = None


class AnnotationCache:
    """Holds the annotations of the most recently displayed image only.

    ``on_display_changed`` builds a complete new entry before swapping it in
    with a single assignment, so a painter reading ``current()`` sees either
    the old entry or the new one, never a mix.
    """

    def __init__(self, index: "FaceIndex") -> None:
        self.index = index
        self._entry: CacheEntry | None = None

    def on_display_changed(
        self,
        path: "str | os.PathLike[str]",
        original_size: tuple[int, int] | None = None,
        loaded: bool = True,
    ) -> CacheEntry | None:
        """Re-query the index for *path* and replace the cached entry.

        When the image failed to load the cache is left as it was.
        """
        if not loaded:
            log.debug("faces: load failed for %s, keeping cached annotations", path)
            return self._entry
        annotations = tuple(self.index.lookup_by_path(path))
        entry = CacheEntry(os.fspath(path), annotations, original_size)
        self._entry = entry
        return entry

    def current(self) -> CacheEntry | None:
        return self._entry

    def clear(self) -> None:
        self._entry = None

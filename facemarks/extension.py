"""Extension lifecycle: activate, configure, deactivate.

``activate`` opens the index once, builds the overlay and the face tree,
and either hooks the host's JPEG/PNG loaders (legacy mode) or leaves the
overlay to be driven by viewer paint events.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import MutableMapping, Optional

from facemarks.db.index import FaceIndex
from facemarks.overlay.viewer import FaceOverlay, Loader, install_loader_hooks
from facemarks.settings import Settings, settings_report
from facemarks.tree.source import FaceFileSource

log = logging.getLogger(__name__)


@dataclasses.dataclass
class Extension:
    settings: Settings
    index: FaceIndex
    overlay: FaceOverlay
    file_source: FaceFileSource
    hooked_mime_types: list[str] = dataclasses.field(default_factory=list)

    def configure(self) -> str:
        """Text for the "show current settings" action."""
        return settings_report(self.settings, self.index)

    def deactivate(self) -> None:
        self.file_source.shutdown()
        self.overlay.cache.clear()
        self.index.close()
        log.debug("faces: deactivated")


def activate(
    settings: Optional[Settings] = None,
    loaders: Optional[MutableMapping[str, Loader]] = None,
) -> Extension:
    """Open the index and wire up the overlay and face tree.

    *loaders* is the host's MIME type -> decode function registry; it is
    only modified when legacy loader interception is enabled.
    """
    settings = settings or Settings.from_env()
    log.debug("faces: dbpath=%s", settings.db_path)
    index = FaceIndex.open(settings.db_path, unknown_clusters=settings.unknown_clusters)
    overlay = FaceOverlay(index)
    ext = Extension(
        settings=settings,
        index=index,
        overlay=overlay,
        file_source=FaceFileSource(index),
    )
    if settings.legacy_loader:
        if loaders is None:
            log.warning("faces: legacy loader mode requested but no loader registry given")
        else:
            ext.hooked_mime_types = install_loader_hooks(loaders, overlay)
    return ext

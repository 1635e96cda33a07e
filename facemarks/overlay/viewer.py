"""Viewer integration: the face overlay as seen by an image browser.

Two ways of getting faces on screen:

* ``FaceOverlay.on_display_changed`` + ``FaceOverlay.paint``: the viewer
  reports each newly displayed image, then calls ``paint`` on every frame
  with a drawing context and its current zoom/scroll geometry.

* Loader interception (legacy): ``install_loader_hooks`` wraps the decode
  functions for JPEG and PNG so every decoded surface leaves the loader
  with its faces already drawn in.
"""
from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Callable, MutableMapping

from PIL import Image, ImageDraw

from facemarks.overlay.cache import AnnotationCache, CacheEntry
from facemarks.overlay.projector import ViewerGeometry, bake_scale, project_bake
from facemarks.overlay.renderer import OverlayRenderer

if TYPE_CHECKING:
    from facemarks.db.index import FaceIndex
    from facemarks.readers.standard import LoadedImage

log = logging.getLogger(__name__)

Loader = Callable[..., "LoadedImage | None"]

INTERCEPTED_MIME_TYPES = ("image/jpeg", "image/png")


class FaceOverlay:
    """Display-event handler and painter for one image viewer."""

    def __init__(
        self,
        index: "FaceIndex",
        renderer: OverlayRenderer | None = None,
        enabled: bool = True,
    ) -> None:
        self.index = index
        self.cache = AnnotationCache(index)
        self.renderer = renderer or OverlayRenderer()
        self.enabled = enabled

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        log.debug("faces: overlay %s", "enabled" if self.enabled else "disabled")
        return self.enabled

    # ── Live overlay ──────────────────────────────────────────────────────

    def on_display_changed(
        self,
        path: "str | os.PathLike[str]",
        original_size: tuple[int, int] | None = None,
        loaded: bool = True,
    ) -> CacheEntry | None:
        return self.cache.on_display_changed(path, original_size=original_size, loaded=loaded)

    def paint(self, context: ImageDraw.ImageDraw | None, geometry: ViewerGeometry) -> int:
        """Draw the cached faces for the current frame; returns the number drawn."""
        if not self.enabled:
            self.renderer.draw_disabled_marker(context)
            return 0
        entry = self.cache.current()
        if entry is None or not entry.annotations:
            return 0
        if geometry.original_size is None and entry.original_size is not None:
            geometry = ViewerGeometry(
                zoom=geometry.zoom,
                image_area_offset=geometry.image_area_offset,
                scroll_offset=geometry.scroll_offset,
                original_size=entry.original_size,
            )
        if not geometry.can_project():
            log.debug("faces: cannot project %s (zoom=%s, size=%s)",
                      entry.path, geometry.zoom, geometry.original_size)
            return 0
        return self.renderer.draw_all(
            context, ((a, geometry.project(a.rect)) for a in entry.annotations)
        )

    # ── Bake-in ───────────────────────────────────────────────────────────

    def bake(
        self,
        surface: Image.Image | None,
        path: "str | os.PathLike[str]",
        original_size: tuple[int, int] | None,
    ) -> int:
        """Draw the faces of *path* directly into the decoded *surface*.

        Queries the index directly; the display cache belongs to the viewer
        and is not touched by decodes (thumbnails, previews).  While the
        overlay is switched off the surface is left untouched; the disabled
        marker is only ever painted live.
        """
        if surface is None:
            log.warning("faces: no decoded surface for %s", path)
            return 0
        if not self.enabled:
            return 0
        draw = ImageDraw.Draw(surface)
        annotations = self.index.lookup_by_path(path)
        if not annotations:
            return 0
        scale = bake_scale(surface.size, original_size)
        if scale is None:
            log.debug("faces: unknown original size for %s, not drawing", path)
            return 0
        for a in annotations:
            log.debug("\t%s@%s original %s, this %s",
                      a.caption, a.rect.as_tuple(), original_size, surface.size)
        return self.renderer.draw_all(draw, ((a, project_bake(a.rect, scale)) for a in annotations))


def wrap_loader(prev: Loader, overlay: FaceOverlay) -> Loader:
    """Return a loader that chains to *prev* and bakes faces into its result."""

    def intercept(path: Any, *args: Any, **kwargs: Any) -> "LoadedImage | None":
        image = prev(path, *args, **kwargs)
        if image is None or not image.ok:
            log.debug("faces: loader returned no surface for %s", path)
            return image
        overlay.bake(image.surface, path, image.original_size)
        return image

    intercept.__wrapped__ = prev  # type: ignore[attr-defined]
    return intercept


def install_loader_hooks(loaders: MutableMapping[str, Loader], overlay: FaceOverlay) -> list[str]:
    """Wrap the JPEG and PNG entries of *loaders* in place.

    Returns the MIME types that were hooked; a type with no registered
    loader is logged and skipped.
    """
    hooked: list[str] = []
    for mime in INTERCEPTED_MIME_TYPES:
        prev = loaders.get(mime)
        if prev is None:
            log.warning("faces: unable to intercept %s loader", mime)
            continue
        loaders[mime] = wrap_loader(prev, overlay)
        hooked.append(mime)
    return hooked

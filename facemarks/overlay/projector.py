"""Coordinate projection from stored-image pixels to drawing space.

Face rectangles are stored in the pixel space of the original, undecoded
image.  They reach the screen one of two ways:

Bake-in
    drawn once into the decoded surface, which may be smaller than the
    original (thumbnails, reduced-size loads).  Each axis is scaled by
    ``decoded / original``.

Live overlay
    drawn on every paint over a zoomable, scrollable viewer.  Screen
    coordinates are ``stored * zoom + origin`` where ``origin`` is the
    image's top-left corner on screen: the viewer's image-area offset minus
    its scroll offset.  Nothing is stored; zoom and scroll change
    independently of the cached annotations.

An original size of zero (or unknown) cannot be projected; the helpers
return None and callers skip drawing.
"""
from __future__ import annotations

import dataclasses

from facemarks.models import Rect

Size = tuple[int, int]
Point = tuple[float, float]


def bake_scale(decoded_size: Size, original_size: Size | None) -> tuple[float, float] | None:
    """Return ``(sx, sy)`` mapping original pixels onto the decoded surface."""
    if not original_size:
        return None
    ow, oh = original_size
    dw, dh = decoded_size
    if ow <= 0 or oh <= 0 or dw <= 0 or dh <= 0:
        return None
    return dw / ow, dh / oh


def project_bake(rect: Rect, scale: tuple[float, float]) -> Rect:
    sx, sy = scale
    return Rect(rect.left * sx, rect.top * sy, rect.right * sx, rect.bottom * sy)


def image_origin(image_area_offset: Point, scroll_offset: Point) -> Point:
    """Screen position of the image's top-left pixel."""
    return (
        image_area_offset[0] - scroll_offset[0],
        image_area_offset[1] - scroll_offset[1],
    )


def project_live(rect: Rect, zoom: float, origin: Point) -> Rect:
    ox, oy = origin
    return Rect(
        rect.left * zoom + ox,
        rect.top * zoom + oy,
        rect.right * zoom + ox,
        rect.bottom * zoom + oy,
    )


@dataclasses.dataclass(frozen=True)
class ViewerGeometry:
    """The viewer's transform at the moment of one paint."""

    zoom: float
    image_area_offset: Point = (0.0, 0.0)
    scroll_offset: Point = (0.0, 0.0)
    original_size: Size | None = None

    @property
    def origin(self) -> Point:
        return image_origin(self.image_area_offset, self.scroll_offset)

    def can_project(self) -> bool:
        if self.zoom <= 0 or not self.original_size:
            return False
        width, height = self.original_size
        return width > 0 and height > 0

    def project(self, rect: Rect) -> Rect:
        return project_live(rect, self.zoom, self.origin)

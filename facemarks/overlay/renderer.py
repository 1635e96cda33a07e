"""Overlay renderer: face rectangles and captions drawn with Pillow.

Colours follow a fixed two-class policy: green for faces placed/confirmed
in the picture (``inpic``), red for everything else.  Outline width, font
size and caption inset are in drawing-space pixels, so the overlay keeps
the same visual weight at any scale or zoom.

Pillow's ``ImageDraw`` takes colour, width and font per call; the renderer
passes them explicitly and never assigns ``draw.font`` / ``draw.ink``, so
nothing carries over from one annotation to the next.
"""
from __future__ import annotations

import functools
import logging
from typing import Iterable

from PIL import ImageDraw, ImageFont

from facemarks.models import Annotation, Rect

log = logging.getLogger(__name__)

KNOWN_COLOR = (0, 255, 0)
UNKNOWN_COLOR = (255, 0, 0)
DISABLED_COLOR = (160, 160, 160)

LINE_WIDTH = 2
FONT_SIZE = 20
CAPTION_INSET = 5

# Top-left corner and edge length of the "overlay off" marker
_MARKER_ORIGIN = (8, 8)
_MARKER_SIZE = 14


@functools.lru_cache(maxsize=8)
def _font(size: int) -> "ImageFont.ImageFont | ImageFont.FreeTypeFont":
    return ImageFont.load_default(size=size)


class OverlayRenderer:
    def __init__(
        self,
        line_width: int = LINE_WIDTH,
        font_size: int = FONT_SIZE,
        known_color: tuple[int, int, int] = KNOWN_COLOR,
        unknown_color: tuple[int, int, int] = UNKNOWN_COLOR,
    ) -> None:
        self.line_width = line_width
        self.font_size = font_size
        self.known_color = known_color
        self.unknown_color = unknown_color

    def color_for(self, is_known: bool) -> tuple[int, int, int]:
        return self.known_color if is_known else self.unknown_color

    def draw(
        self,
        context: ImageDraw.ImageDraw | None,
        rect: Rect,
        label: str,
        group: int,
        is_known: bool,
    ) -> bool:
        """Draw one outlined rectangle with a ``label (group)`` caption.

        *rect* is already in drawing space.  The caption sits inside the
        bottom-left corner.  Returns False when there was nothing to draw on
        or the rectangle is degenerate.
        """
        if context is None:
            log.warning("faces: no drawing context, skipping %s (%s)", label, group)
            return False
        if not rect.is_valid():
            log.debug("faces: degenerate projected rectangle %s, skipping", rect.as_tuple())
            return False

        color = self.color_for(is_known)
        context.rectangle(rect.as_tuple(), outline=color, width=self.line_width)
        context.text(
            (rect.left + CAPTION_INSET, rect.bottom - CAPTION_INSET - self.font_size),
            f"{label} ({group})",
            fill=color,
            font=_font(self.font_size),
        )
        return True

    def draw_annotation(self, context: ImageDraw.ImageDraw | None, annotation: Annotation, rect: Rect) -> bool:
        return self.draw(context, rect, annotation.label, annotation.group_id, annotation.is_known)

    def draw_all(
        self,
        context: ImageDraw.ImageDraw | None,
        projected: Iterable[tuple[Annotation, Rect]],
    ) -> int:
        """Draw every ``(annotation, projected_rect)`` pair in order; returns the count drawn."""
        drawn = 0
        for annotation, rect in projected:
            if self.draw_annotation(context, annotation, rect):
                drawn += 1
        return drawn

    def draw_disabled_marker(self, context: ImageDraw.ImageDraw | None) -> bool:
        """Draw the small crossed box shown while the overlay is switched off."""
        if context is None:
            log.warning("faces: no drawing context for disabled marker")
            return False
        x, y = _MARKER_ORIGIN
        box = (x, y, x + _MARKER_SIZE, y + _MARKER_SIZE)
        context.rectangle(box, outline=DISABLED_COLOR, width=self.line_width)
        context.line((box[0], box[1], box[2], box[3]), fill=DISABLED_COLOR, width=self.line_width)
        context.line((box[0], box[3], box[2], box[1]), fill=DISABLED_COLOR, width=self.line_width)
        return True

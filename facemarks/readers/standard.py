"""Standard image reader using Pillow, the default decode step for the overlay."""
from __future__ import annotations

import dataclasses
from pathlib import Path

from PIL import Image


@dataclasses.dataclass
class LoadedImage:
    """A decoded surface plus the pixel size of the file it came from."""

    surface: Image.Image | None
    original_size: tuple[int, int]

    @property
    def ok(self) -> bool:
        return self.surface is not None


def _register_heif(path: Path) -> None:
    if path.suffix.lower() in (".heic", ".heif"):
        try:
            from pillow_heif import register_heif_opener
            register_heif_opener()
        except ImportError:
            raise ImportError(
                "pillow-heif is required for HEIC/HEIF files: pip install pillow-heif"
            )


def load(path: "Path | str", requested_size: int | None = None) -> LoadedImage:
    """Decode *path* to an RGB surface.

    With *requested_size* the surface is reduced to fit within a square of
    that many pixels (aspect ratio kept); ``original_size`` always reports
    the file's full dimensions.
    """
    path = Path(path)
    _register_heif(path)

    with Image.open(path) as img:
        original_size = img.size
        if requested_size and requested_size > 0:
            # draft() lets JPEG decode at a reduced scale directly
            img.draft("RGB", (requested_size, requested_size))
        surface = img.convert("RGB")
    if requested_size and requested_size > 0:
        surface.thumbnail((requested_size, requested_size), Image.Resampling.LANCZOS)
    return LoadedImage(surface=surface, original_size=original_size)


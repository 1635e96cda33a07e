"""Value objects shared by the index, overlay and tree layers."""
from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

UNKNOWN_LABEL = "_unknown_"


@dataclasses.dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle; coordinates are (left, top, right, bottom)."""

    left: float
    top: float
    right: float
    bottom: float

    def is_valid(self) -> bool:
        return self.left < self.right and self.top < self.bottom

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.left, self.top, self.right, self.bottom)


@dataclasses.dataclass(frozen=True)
class Annotation:
    """One face rectangle on one photograph, in original-image pixels."""

    rect: Rect
    label: str
    group_id: int
    inpic: int = 0

    @property
    def is_known(self) -> bool:
        return self.inpic > 0

    @property
    def caption(self) -> str:
        return f"{self.label} ({self.group_id})"

    def to_dict(self) -> dict:
        return {
            "rect": list(self.rect.as_tuple()),
            "label": self.label,
            "group_id": self.group_id,
            "is_known": self.is_known,
        }


def local_path(ref: "str | os.PathLike[str] | None") -> str | None:
    """Return the local filesystem path for *ref*, or None if it has none.

    Accepts plain paths and ``file://`` URIs.  Any other scheme (remote or
    virtual locations such as ``face:///``) has no path to resolve against
    the index.
    """
    if ref is None:
        return None
    if isinstance(ref, Path):
        return str(ref)
    text = os.fspath(ref)
    if not text:
        return None
    parsed = urlparse(text)
    if parsed.scheme == "file":
        if parsed.netloc not in ("", "localhost"):
            return None
        return unquote(parsed.path) or None
    # A single letter is a Windows drive, not a scheme
    if parsed.scheme and len(parsed.scheme) > 1:
        return None
    return text

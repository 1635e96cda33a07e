"""Database layer for facemarks: read-only access to the faces index."""
from __future__ import annotations

from facemarks.db.connection import IndexOpenError, close_index, get_index
from facemarks.db.index import FaceIndex

__all__ = ["FaceIndex", "IndexOpenError", "close_index", "get_index"]

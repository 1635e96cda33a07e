"""Runtime settings: database location and feature toggles from the environment.

All values come from environment variables (optionally seeded from a
``.env`` file by the entry points):

    FACEMARKS_DB_PATH           path to the faces SQLite index
    FACEMARKS_DEBUG             verbose diagnostic logging
    FACEMARKS_LEGACY_LOADER     bake annotations in at decode time
    FACEMARKS_UNKNOWN_CLUSTERS  expose unlabelled clusters in the face tree
"""
from __future__ import annotations

import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from facemarks.db.index import FaceIndex

DEFAULT_DB_PATH = Path("/home/shared/photos/faces.db")

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def resolve_db_path(raw: str | None) -> Path:
    """Return the configured database path, or the fallback when *raw* is empty."""
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return DEFAULT_DB_PATH


@dataclasses.dataclass(frozen=True)
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    debug: bool = False
    legacy_loader: bool = False
    unknown_clusters: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=resolve_db_path(os.getenv("FACEMARKS_DB_PATH", "")),
            debug=_flag("FACEMARKS_DEBUG"),
            legacy_loader=_flag("FACEMARKS_LEGACY_LOADER"),
            unknown_clusters=_flag("FACEMARKS_UNKNOWN_CLUSTERS"),
        )


def configure_logging(settings: Settings) -> None:
    """Send log records to stderr, DEBUG level when diagnostics are enabled."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.WARNING,
        format="[%(asctime)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def settings_report(settings: Settings, index: "FaceIndex | None" = None) -> str:
    """Plain-text summary for the "show current settings" action.

    Lists the resolved database path, index status, toggles and whatever the
    scanner recorded in ``face_scanner_config``.
    """
    lines = [f"Database: {settings.db_path}"]
    if index is None or not index.available:
        lines.append("Status: unavailable (lookups return no faces)")
    else:
        lines.append("Status: open (read-only)")
    lines.append(f"Debug logging: {'on' if settings.debug else 'off'}")
    lines.append(f"Legacy loader hooks: {'on' if settings.legacy_loader else 'off'}")
    lines.append(f"Unknown clusters: {'on' if settings.unknown_clusters else 'off'}")

    scanner = index.scanner_config() if index is not None else {}
    if scanner:
        lines.append("Scanner config:")
        for key, value in scanner.items():
            lines.append(f"  {key} = {value}")
    return "\n".join(lines)

"""Output tree helpers for camera recordings."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config import CameraConfig

logger = logging.getLogger(__name__)

PLAYLIST_NAME = "output.m3u8"


@dataclass(frozen=True, slots=True)
class CameraPaths:
    """Filesystem locations used by a single camera recorder."""

    recording_dir: Path
    log_dir: Path
    playlist: Path
    log_file: Path


def camera_paths(root: Path | str, camera: CameraConfig) -> CameraPaths:
    base = Path(root) / camera.label
    recording_dir = base / "recording"
    log_dir = base / "logs"
    return CameraPaths(
        recording_dir=recording_dir,
        log_dir=log_dir,
        playlist=recording_dir / PLAYLIST_NAME,
        log_file=log_dir / f"recorder_{camera.name}_{camera.id}.log",
    )


def ensure_directory(path: Path) -> bool:
    """Create ``path`` and its parents, returning ``False`` on failure."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        logger.exception("Failed creating output directory: %s", path)
        return False
    return True


def clean_directory(root: Path | str) -> int:
    """Remove everything below ``root`` while keeping ``root`` itself.

    Entries are deleted deepest-first. A failure on one entry is logged and
    the walk continues. Returns the number of entries removed.
    """

    directory = Path(root)
    if not directory.is_dir():
        logger.info("%s does not exist - no files/folders to clean", directory)
        return 0
    logger.info("%s found. Cleaning old files/folders", directory)

    def _walk_error(exc: OSError) -> None:
        logger.error("Error processing directory %s: %s", exc.filename, exc)

    removed = 0
    for current, dirnames, filenames in os.walk(directory, topdown=False, onerror=_walk_error):
        base = Path(current)
        for name in filenames:
            removed += _remove(base / name, is_dir=False)
        for name in dirnames:
            path = base / name
            # Symlinked directories are listed as dirnames but must be unlinked.
            removed += _remove(path, is_dir=not path.is_symlink())
    return removed


def _remove(path: Path, *, is_dir: bool) -> int:
    try:
        if is_dir:
            path.rmdir()
        else:
            path.unlink()
    except OSError as exc:
        logger.error("Failed to delete %s: %s", path, exc)
        return 0
    return 1


__all__ = ["CameraPaths", "PLAYLIST_NAME", "camera_paths", "clean_directory", "ensure_directory"]

"""Background watcher reloading the camera configuration on change."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping, Tuple

from .config import TIME_FORMAT, CameraConfig, ConfigError, read_cameras
from .supervisor import RecordingSupervisor

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[Path], Mapping[int, CameraConfig]]
_EntryStamp = Tuple[int, int, int]


class ChangeKind(str, Enum):
    """Kinds of directory entry changes reported by the watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: ChangeKind
    path: Path


def snapshot_directory(directory: Path) -> Dict[str, _EntryStamp]:
    """Return ``name -> (mtime_ns, size, inode)`` for entries of ``directory``."""

    entries: Dict[str, _EntryStamp] = {}
    with os.scandir(directory) as iterator:
        for entry in iterator:
            try:
                stat = entry.stat(follow_symlinks=True)
            except OSError:
                # Entry vanished between listing and stat; the next poll sees it gone.
                continue
            entries[entry.name] = (stat.st_mtime_ns, stat.st_size, stat.st_ino)
    return entries


def diff_snapshots(
    directory: Path,
    before: Mapping[str, _EntryStamp],
    after: Mapping[str, _EntryStamp],
) -> Iterator[ChangeEvent]:
    for name in sorted(set(before) | set(after)):
        if name not in before:
            yield ChangeEvent(ChangeKind.CREATED, directory / name)
        elif name not in after:
            yield ChangeEvent(ChangeKind.DELETED, directory / name)
        elif before[name] != after[name]:
            yield ChangeEvent(ChangeKind.MODIFIED, directory / name)


def _has_content(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


class ConfigWatcher:
    """Poll the configuration directory and reconcile on modifications.

    Registration is the initial listing of the directory. When it fails the
    watcher logs the error and ends; recording continues without dynamic
    reconfiguration.
    """

    def __init__(
        self,
        config_path: Path | str,
        supervisor: RecordingSupervisor,
        *,
        loader: ConfigLoader = read_cameras,
        interval_s: float = 1.0,
    ) -> None:
        self._path = Path(config_path)
        self._supervisor = supervisor
        self._loader = loader
        self._interval = max(0.01, float(interval_s))
        self._stop_event = threading.Event()
        self._registered = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def config_path(self) -> Path:
        return self._path

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        thread = threading.Thread(target=self.watch, name="config-file-watcher", daemon=True)
        self._thread = thread
        thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait_registered(self, timeout: float | None = None) -> bool:
        return self._registered.wait(timeout)

    def watch(self) -> None:
        """Blocking watch loop; returns when stopped or the directory is lost."""

        directory = self._path.parent
        logger.info("Starting config file watcher on %s", directory)
        try:
            snapshot = snapshot_directory(directory)
        except OSError:
            logger.exception("Failed to configure watch service on %s", self._path)
            return
        self._registered.set()
        logger.info("Config file watcher successfully configured")
        while not self._stop_event.wait(self._interval):
            try:
                current = snapshot_directory(directory)
            except OSError:
                logger.exception("Config directory %s is no longer accessible; watcher stopped", directory)
                return
            for event in diff_snapshots(directory, snapshot, current):
                self._dispatch(event)
            snapshot = current
        logger.info("Config file watcher stopped")

    # ------------------------------------------------------------------
    def _dispatch(self, event: ChangeEvent) -> None:
        if event.path.name != self._path.name:
            logger.debug("Ignoring %s event for %s", event.kind.value, event.path)
            return
        timestamp = datetime.now().strftime(TIME_FORMAT)
        if event.kind is ChangeKind.MODIFIED:
            logger.info("%s modified at %s", self._path.name, timestamp)
            self.reload()
        elif event.kind is ChangeKind.CREATED and _has_content(event.path):
            # Replaced by delete-then-write; the content written counts as a modification.
            logger.info("%s recreated at %s", self._path.name, timestamp)
            self.reload()
        else:
            logger.info(
                "Ignoring unsupported action (%s) performed on %s at %s",
                event.kind.value,
                self._path.name,
                timestamp,
            )

    def reload(self) -> None:
        complete = True
        try:
            cameras: Mapping[int, CameraConfig] = self._loader(self._path)
        except ConfigError as exc:
            logger.error("Failed to read config file: %s", exc)
            cameras = {}
            complete = False
        try:
            self._supervisor.reconcile(cameras, complete=complete)
        except Exception:
            logger.exception("Failed to apply configuration change")


__all__ = ["ChangeEvent", "ChangeKind", "ConfigWatcher", "diff_snapshots", "snapshot_directory"]

"""Compose the recorder components in their startup order."""
from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Dict

from .config import CameraConfig, RecorderSettings, load_cameras, read_cameras
from .recorder import PopenFactory
from .storage import clean_directory
from .supervisor import RecordingSupervisor
from .watcher import ConfigWatcher

logger = logging.getLogger(__name__)


class RecorderError(RuntimeError):
    """Raised when the recorder service is driven in an invalid order."""


class RecorderService:
    """Run one supervisor, its configuration watcher and the output tree."""

    def __init__(
        self,
        config_path: Path | str,
        settings: RecorderSettings | None = None,
        *,
        supervisor: RecordingSupervisor | None = None,
        popen: PopenFactory = subprocess.Popen,
        watch: bool = True,
    ) -> None:
        self._config_path = Path(config_path)
        self._settings = settings if settings is not None else RecorderSettings()
        self._supervisor = (
            supervisor
            if supervisor is not None
            else RecordingSupervisor(self._settings, popen=popen)
        )
        self._watcher: ConfigWatcher | None = (
            ConfigWatcher(
                self._config_path,
                self._supervisor,
                loader=read_cameras,
                interval_s=self._settings.watch_interval_s,
            )
            if watch
            else None
        )
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False

    @property
    def supervisor(self) -> RecordingSupervisor:
        return self._supervisor

    @property
    def watcher(self) -> ConfigWatcher | None:
        return self._watcher

    @property
    def settings(self) -> RecorderSettings:
        return self._settings

    def start(self) -> Dict[int, CameraConfig]:
        """Clean the output tree, begin watching and schedule every camera.

        Cleaning completes before anything can create per-camera directories.
        Returns the cameras loaded at startup.
        """

        with self._lock:
            if self._started:
                raise RecorderError("Recorder service already started")
            self._started = True
        clean_directory(self._settings.output_root)
        if self._watcher is not None:
            self._watcher.start()
        cameras = load_cameras(self._config_path)
        self._supervisor.reconcile(cameras)
        logger.info("Recorder service started with %d camera(s)", len(cameras))
        return cameras

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        logger.info("Shutting down recorder service")
        if self._watcher is not None:
            self._watcher.stop()
        self._supervisor.close()
        logger.info("Recorder service stopped")


__all__ = ["RecorderError", "RecorderService"]

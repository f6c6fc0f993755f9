"""Reconcile configured cameras with running FFmpeg recorders."""
from __future__ import annotations

import logging
import subprocess
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from .config import CameraConfig, RecorderSettings
from .recorder import PopenFactory, RecordingHandler

logger = logging.getLogger(__name__)

HandlerFactory = Callable[[CameraConfig, RecorderSettings, Optional[RecordingHandler]], RecordingHandler]


class ScheduledLaunch:
    """A callable delayed on a timer and then executed on a shared pool.

    The timer holds the delay so waiting launches do not occupy pool workers.
    """

    def __init__(
        self,
        executor: ThreadPoolExecutor,
        delay_s: float,
        target: Callable[[], None],
        *,
        name: str = "launch",
    ) -> None:
        self._executor = executor
        self._target = target
        self._name = name
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._future: Future[None] | None = None
        self._cancelled = False
        self._timer = threading.Timer(max(0.0, float(delay_s)), self._submit)
        self._timer.name = name
        self._timer.daemon = True

    @property
    def name(self) -> str:
        return self._name

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> bool:
        """Prevent the launch from running. Returns ``False`` once it started."""

        with self._lock:
            if self._cancelled:
                return True
            if self._future is None:
                self._timer.cancel()
            elif not self._future.cancel():
                return False
            self._cancelled = True
        self._finished.set()
        return True

    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def done(self) -> bool:
        return self._finished.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._finished.wait(timeout)

    def _submit(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            try:
                self._future = self._executor.submit(self._invoke)
            except RuntimeError:
                logger.warning("Launch pool shut down; dropping %s", self._name)
                self._cancelled = True
                self._finished.set()

    def _invoke(self) -> None:
        try:
            self._target()
        except Exception:
            logger.exception("Scheduled %s failed", self._name)
        finally:
            self._finished.set()


@dataclass(slots=True)
class RunningEntry:
    """Bookkeeping for the most recent launch scheduled for a camera."""

    handler: RecordingHandler
    launch: ScheduledLaunch


class RecordingSupervisor:
    """Own the desired camera set and the recorders scheduled for it.

    ``reconcile`` bodies are serialised by one lock; every read-modify-write
    of the desired and running maps additionally happens under the state
    lock, including :meth:`stop_all`.
    """

    def __init__(
        self,
        settings: RecorderSettings | None = None,
        *,
        popen: PopenFactory = subprocess.Popen,
        handler_factory: HandlerFactory | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._settings = settings if settings is not None else RecorderSettings()
        if handler_factory is None:

            def handler_factory(
                camera: CameraConfig,
                settings: RecorderSettings,
                previous: RecordingHandler | None,
            ) -> RecordingHandler:
                return RecordingHandler(camera, settings, popen=popen, previous=previous)

        self._handler_factory = handler_factory
        self._owns_executor = executor is None
        self._executor = (
            executor
            if executor is not None
            else ThreadPoolExecutor(
                max_workers=self._settings.pool_size,
                thread_name_prefix="recorder-launch",
            )
        )
        self._reconcile_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._desired: Dict[int, CameraConfig] = {}
        self._running: Dict[int, RunningEntry] = {}
        self._closed = False

    # ------------------------------------------------------------------
    @property
    def settings(self) -> RecorderSettings:
        return self._settings

    @property
    def closed(self) -> bool:
        with self._state_lock:
            return self._closed

    def desired(self) -> Dict[int, CameraConfig]:
        with self._state_lock:
            return dict(self._desired)

    def running(self) -> Dict[int, RunningEntry]:
        with self._state_lock:
            return dict(self._running)

    # ------------------------------------------------------------------
    def reconcile(self, new_desired: Mapping[int, CameraConfig], *, complete: bool = True) -> List[int]:
        """Merge ``new_desired`` and schedule a fresh launch for every camera.

        ``complete`` marks ``new_desired`` as a full snapshot. Removed cameras
        are only pruned for complete snapshots when ``prune_removed`` is set.
        Returns the camera ids scheduled, in scheduling order.
        """

        with self._reconcile_lock:
            retired: Dict[int, RunningEntry] = {}
            scheduled: List[int] = []
            with self._state_lock:
                if self._closed:
                    logger.warning("Supervisor closed; ignoring configuration update")
                    return []
                if self._settings.prune_removed and complete:
                    for camera_id in [key for key in self._desired if key not in new_desired]:
                        del self._desired[camera_id]
                        entry = self._running.pop(camera_id, None)
                        if entry is not None:
                            entry.launch.cancel()
                            retired[camera_id] = entry
                        logger.info("Camera %s removed from configuration", camera_id)
                    for camera_id, camera in new_desired.items():
                        if self._desired.get(camera_id) != camera:
                            logger.info("Camera %s (%s) configured", camera_id, camera.name)
                        self._desired[camera_id] = camera
                else:
                    for camera_id, camera in new_desired.items():
                        if camera_id not in self._desired:
                            self._desired[camera_id] = camera
                            logger.info("Camera %s (%s) added", camera_id, camera.name)
                for camera_id, camera in self._desired.items():
                    self._running[camera_id] = self._schedule(camera, self._running.get(camera_id))
                    scheduled.append(camera_id)
            if retired:
                self._stop_entries(retired)
        return scheduled

    def stop_all(self) -> int:
        """Cancel pending launches and stop every recorder.

        Stops run concurrently under one shared deadline. Returns the number
        of entries that were stopped.
        """

        with self._state_lock:
            if not self._running:
                logger.info("No recorder launches or processes exist that need to be stopped")
                return 0
            entries = dict(self._running)
            self._running.clear()
        logger.info("Stopping all recorder launches and processes")
        for entry in entries.values():
            entry.launch.cancel()
        self._stop_entries(entries)
        return len(entries)

    def close(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        self.stop_all()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    def _schedule(self, camera: CameraConfig, previous: RunningEntry | None) -> RunningEntry:
        superseded: RecordingHandler | None = None
        if previous is not None and self._settings.cancel_superseded:
            if previous.launch.cancel():
                logger.debug("Cancelled pending launch for camera %s", camera.id)
            superseded = previous.handler
        handler = self._handler_factory(camera, self._settings, superseded)
        launch = ScheduledLaunch(
            self._executor,
            self._settings.launch_delay_s,
            handler.run,
            name=f"launch-{camera.label}",
        )
        launch.start()
        logger.info(
            "Scheduled recorder for camera %s in %.1fs",
            camera.name,
            self._settings.launch_delay_s,
        )
        return RunningEntry(handler=handler, launch=launch)

    def _stop_entries(self, entries: Mapping[int, RunningEntry]) -> None:
        deadline = time.monotonic() + self._settings.stop_timeout_s

        def _stop(camera_id: int, handler: RecordingHandler) -> None:
            remaining = max(0.0, deadline - time.monotonic())
            try:
                handler.stop(remaining)
            except Exception:
                logger.exception("Error stopping recorder for camera id %s", camera_id)

        with ThreadPoolExecutor(
            max_workers=max(1, len(entries)),
            thread_name_prefix="recorder-stop",
        ) as pool:
            for camera_id, entry in entries.items():
                pool.submit(_stop, camera_id, entry.handler)


__all__ = ["HandlerFactory", "RecordingSupervisor", "RunningEntry", "ScheduledLaunch"]

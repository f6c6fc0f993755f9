"""FFmpeg process handling for a single camera."""
from __future__ import annotations

import logging
import subprocess
import threading
from typing import Callable, List

from .config import CameraConfig, RecorderSettings
from .storage import CameraPaths, camera_paths, ensure_directory

logger = logging.getLogger(__name__)

KILL_REAP_TIMEOUT_S = 5.0

PopenFactory = Callable[..., "subprocess.Popen[bytes]"]


def build_ffmpeg_args(camera: CameraConfig, paths: CameraPaths, *, binary: str = "ffmpeg") -> List[str]:
    """Return the FFmpeg argument vector recording ``camera`` to HLS.

    Both streams are copied without re-encoding and the playlist keeps every
    segment (``-hls_list_size 0``).
    """

    return [
        binary,
        "-i",
        camera.rtsp_url,
        "-c:v",
        "copy",
        "-c:a",
        "copy",
        "-hls_time",
        str(camera.chunk_size),
        "-hls_list_size",
        "0",
        str(paths.playlist),
    ]


class RecordingHandler:
    """Launch and terminate the FFmpeg process of one camera.

    :meth:`run` is the task body executed once by the launch pool. The process
    handle it creates is only written through :meth:`_launch` and only read
    by :meth:`stop`, both under the handler lock.
    """

    def __init__(
        self,
        camera: CameraConfig,
        settings: RecorderSettings,
        *,
        popen: PopenFactory = subprocess.Popen,
        previous: "RecordingHandler | None" = None,
    ) -> None:
        self._camera = camera
        self._settings = settings
        self._paths = camera_paths(settings.output_root, camera)
        self._popen = popen
        self._previous = previous
        self._lock = threading.Lock()
        self._process: subprocess.Popen[bytes] | None = None
        self._stopped = False

    # ------------------------------------------------------------------
    @property
    def camera(self) -> CameraConfig:
        return self._camera

    @property
    def paths(self) -> CameraPaths:
        return self._paths

    @property
    def pid(self) -> int | None:
        with self._lock:
            process = self._process
        return process.pid if process is not None else None

    @property
    def returncode(self) -> int | None:
        with self._lock:
            process = self._process
        return process.poll() if process is not None else None

    def is_alive(self) -> bool:
        with self._lock:
            process = self._process
        return process is not None and process.poll() is None

    def build_args(self) -> List[str]:
        return build_ffmpeg_args(self._camera, self._paths, binary=self._settings.ffmpeg_binary)

    # ------------------------------------------------------------------
    def run(self) -> None:
        name = self._camera.name
        with self._lock:
            previous = self._previous
            self._previous = None
        if previous is not None:
            # Superseded recorder for the same camera; it must exit before ours starts.
            previous.stop()
        logger.info("Starting recorder for camera %s (id=%s)", name, self._camera.id)
        for directory in (self._paths.recording_dir, self._paths.log_dir):
            logger.info("Creating %s for %s", directory, name)
            ensure_directory(directory)
        self._launch(self.build_args())

    def _launch(self, args: List[str]) -> None:
        name = self._camera.name
        with self._lock:
            if self._stopped:
                logger.debug("Recorder for camera %s stopped before launch; skipping", name)
                return
            if self._process is not None:
                logger.warning("Recorder for camera %s already launched", name)
                return
            logger.info("Executing ffmpeg task: %s for camera: %s", " ".join(args), name)
            try:
                with self._paths.log_file.open("ab") as log_handle:
                    process = self._popen(
                        args,
                        stdin=subprocess.DEVNULL,
                        stdout=subprocess.DEVNULL,
                        stderr=log_handle,
                    )
            except OSError:
                logger.exception("Failed to start ffmpeg process for: %s", name)
                return
            self._process = process
        logger.info("FFmpeg process for camera %s started successfully (pid=%s)", name, process.pid)

    def stop(self, timeout: float | None = None) -> bool:
        """Terminate the process, escalating to a kill after ``timeout``.

        Returns ``True`` when a live process was signalled.
        """

        name = self._camera.name
        wait_s = self._settings.stop_timeout_s if timeout is None else max(0.0, float(timeout))
        logger.info("Attempting to stop ffmpeg process for cam %s", name)
        with self._lock:
            self._stopped = True
            process = self._process
            previous = self._previous
            self._previous = None
        if previous is not None:
            previous.stop(timeout)
        if process is None or process.poll() is not None:
            logger.warning("No alive ffmpeg process found for cam %s that can be stopped", name)
            return False
        process.terminate()
        try:
            process.wait(timeout=wait_s)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Failed to gracefully stop ffmpeg process for %s within %.1fs, killing it",
                name,
                wait_s,
            )
            process.kill()
            try:
                process.wait(timeout=KILL_REAP_TIMEOUT_S)
            except subprocess.TimeoutExpired:
                logger.error("FFmpeg process for cam %s did not exit after kill", name)
                return True
        except OSError:
            logger.exception("Error while waiting for ffmpeg process of cam %s to exit", name)
            return True
        logger.info("FFmpeg process for cam %s stopped (returncode=%s)", name, process.returncode)
        return True


__all__ = ["KILL_REAP_TIMEOUT_S", "PopenFactory", "RecordingHandler", "build_ffmpeg_args"]

"""CCTV recorder package supervising one FFmpeg HLS recorder per camera."""

from .config import CameraConfig, ConfigError, RecorderSettings, load_cameras, read_cameras
from .recorder import RecordingHandler, build_ffmpeg_args
from .service import RecorderError, RecorderService
from .storage import CameraPaths, camera_paths, clean_directory
from .supervisor import RecordingSupervisor, RunningEntry, ScheduledLaunch
from .version import APP_VERSION
from .watcher import ConfigWatcher

__all__ = [
    "APP_VERSION",
    "CameraConfig",
    "CameraPaths",
    "ConfigError",
    "ConfigWatcher",
    "RecorderError",
    "RecorderService",
    "RecorderSettings",
    "RecordingHandler",
    "RecordingSupervisor",
    "RunningEntry",
    "ScheduledLaunch",
    "build_ffmpeg_args",
    "camera_paths",
    "clean_directory",
    "load_cameras",
    "read_cameras",
]

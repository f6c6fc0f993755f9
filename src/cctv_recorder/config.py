"""Configuration structures for the CCTV recorder."""
from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_OUTPUT_ROOT = Path("cctv_recording_output")
DEFAULT_APP_LOG_PATH = Path("logs/app.log")
DEFAULT_LAUNCH_DELAY_S = 5.0
DEFAULT_POOL_SIZE = 10
DEFAULT_STOP_TIMEOUT_S = 15.0
DEFAULT_FFMPEG_BINARY = "ffmpeg"
DEFAULT_WATCH_INTERVAL_S = 1.0


@dataclass(frozen=True, slots=True)
class CameraConfig:
    """A single camera entry read from the configuration file.

    ``start_time`` and ``end_time`` are kept for reference only; recording is
    not restricted to that window.
    """

    id: int
    name: str
    rtsp_url: str
    chunk_size: int
    start_time: datetime | None = None
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Camera name must not be empty")
        if not self.rtsp_url:
            raise ValueError("Camera source URL must not be empty")
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be a positive number of seconds")

    @property
    def label(self) -> str:
        return f"CAM_{self.name}_{self.id}"


class CameraPayload(BaseModel):
    """Raw camera entry as stored in ``config.json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    name: str = Field(min_length=1)
    rtsp_url: str = Field(alias="rtspUrl", min_length=1)
    chunk_size: int = Field(alias="chunkSize", gt=0)
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")


def _parse_time(value: str | None, *, field_name: str, camera_id: int) -> datetime | None:
    if value is None or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), TIME_FORMAT)
    except ValueError:
        logger.warning(
            "Ignoring invalid %s %r for camera %s (expected YYYY-MM-DD HH:mm:ss)",
            field_name,
            value,
            camera_id,
        )
        return None


class ConfigError(ValueError):
    """Raised when the configuration file cannot be read or understood."""


def parse_cameras(payload: object) -> Dict[int, CameraConfig]:
    """Convert a decoded configuration document into camera records.

    Entries that are not objects are skipped silently; entries failing
    validation are skipped with a warning.
    """

    if not isinstance(payload, Mapping):
        raise ConfigError("Configuration file must contain a JSON object")
    entries = payload.get("cameras")
    if not isinstance(entries, list):
        raise ConfigError("Configuration file does not define a 'cameras' array")
    cameras: Dict[int, CameraConfig] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            continue
        try:
            raw = CameraPayload.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Skipping invalid camera entry #%d: %s", index, exc)
            continue
        cameras[raw.id] = CameraConfig(
            id=raw.id,
            name=raw.name,
            rtsp_url=raw.rtsp_url,
            chunk_size=raw.chunk_size,
            start_time=_parse_time(raw.start_time, field_name="startTime", camera_id=raw.id),
            end_time=_parse_time(raw.end_time, field_name="endTime", camera_id=raw.id),
        )
    return cameras


def read_cameras(path: Path | str) -> Dict[int, CameraConfig]:
    """Read ``path`` and return the configured cameras keyed by id."""

    config_path = Path(path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Unable to read {config_path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    cameras = parse_cameras(payload)
    logger.info("Config file read successfully: %d camera(s)", len(cameras))
    return cameras


def load_cameras(path: Path | str) -> Dict[int, CameraConfig]:
    """Like :func:`read_cameras` but never raises.

    A failure is logged and reported as an empty mapping so callers keep
    their current state.
    """

    try:
        return read_cameras(path)
    except ConfigError as exc:
        logger.error("Failed to read config file: %s", exc)
        return {}


@dataclass(frozen=True, slots=True)
class RecorderSettings:
    """Runtime tunables for supervision and storage."""

    output_root: Path = DEFAULT_OUTPUT_ROOT
    app_log_path: Path = DEFAULT_APP_LOG_PATH
    launch_delay_s: float = DEFAULT_LAUNCH_DELAY_S
    pool_size: int = DEFAULT_POOL_SIZE
    stop_timeout_s: float = DEFAULT_STOP_TIMEOUT_S
    ffmpeg_binary: str = DEFAULT_FFMPEG_BINARY
    watch_interval_s: float = DEFAULT_WATCH_INTERVAL_S
    cancel_superseded: bool = True
    prune_removed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_root", Path(self.output_root))
        object.__setattr__(self, "app_log_path", Path(self.app_log_path))
        for field_name in ("launch_delay_s", "stop_timeout_s", "watch_interval_s"):
            try:
                value = float(getattr(self, field_name))
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{field_name} must be numeric") from exc
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{field_name} must be a non-negative finite value")
            object.__setattr__(self, field_name, value)
        if self.watch_interval_s <= 0:
            raise ValueError("watch_interval_s must be positive")
        if int(self.pool_size) < 1:
            raise ValueError("pool_size must be at least 1")
        object.__setattr__(self, "pool_size", int(self.pool_size))
        if not str(self.ffmpeg_binary).strip():
            raise ValueError("ffmpeg_binary must not be empty")

    def with_overrides(self, **changes: Any) -> "RecorderSettings":
        cleaned = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **cleaned)


def _env_float(name: str) -> float | None:
    env_value = os.getenv(name)
    if not env_value:
        return None
    try:
        value = float(env_value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r; ignoring", name, env_value)
        return None
    if not math.isfinite(value) or value < 0:
        logger.warning("Invalid %s value %r; ignoring", name, env_value)
        return None
    return value


def settings_from_env(base: RecorderSettings | None = None) -> RecorderSettings:
    """Apply ``CCTV_*`` environment overrides on top of ``base``."""

    settings = base if base is not None else RecorderSettings()
    return settings.with_overrides(
        ffmpeg_binary=os.getenv("CCTV_FFMPEG_BINARY") or None,
        output_root=os.getenv("CCTV_OUTPUT_ROOT") or None,
        launch_delay_s=_env_float("CCTV_LAUNCH_DELAY"),
        stop_timeout_s=_env_float("CCTV_STOP_TIMEOUT"),
    )


__all__ = [
    "CameraConfig",
    "CameraPayload",
    "ConfigError",
    "RecorderSettings",
    "TIME_FORMAT",
    "load_cameras",
    "parse_cameras",
    "read_cameras",
    "settings_from_env",
]

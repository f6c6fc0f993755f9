from __future__ import annotations

import subprocess
import threading
from pathlib import Path
from typing import Iterator

import pytest

from cctv_recorder.config import CameraConfig, RecorderSettings


class FakeProcess:
    """Stand-in for :class:`subprocess.Popen` driven by the tests."""

    _next_pid = 4000

    def __init__(self, args, *, ignore_terminate: bool = False) -> None:
        FakeProcess._next_pid += 1
        self.args = list(args)
        self.pid = FakeProcess._next_pid
        self.returncode: int | None = None
        self.ignore_terminate = ignore_terminate
        self.terminate_calls = 0
        self.kill_calls = 0
        self.wait_timeouts: list[float | None] = []

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminate_calls += 1
        if not self.ignore_terminate:
            self.returncode = -15

    def kill(self) -> None:
        self.kill_calls += 1
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        self.wait_timeouts.append(timeout)
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode


class FakePopen:
    """Callable recording every launch request."""

    def __init__(self, *, ignore_terminate: bool = False, error: OSError | None = None) -> None:
        self.calls: list[dict[str, object]] = []
        self.processes: list[FakeProcess] = []
        self.ignore_terminate = ignore_terminate
        self.error = error
        self.launched = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, args, **kwargs) -> FakeProcess:
        with self._lock:
            self.calls.append({"args": list(args), **kwargs})
            if self.error is not None:
                self.launched.set()
                raise self.error
            process = FakeProcess(args, ignore_terminate=self.ignore_terminate)
            self.processes.append(process)
        self.launched.set()
        return process


@pytest.fixture()
def fake_popen() -> FakePopen:
    return FakePopen()


@pytest.fixture()
def door_camera() -> CameraConfig:
    return CameraConfig(id=1, name="Door", rtsp_url="rtsp://x", chunk_size=10)


@pytest.fixture()
def settings(tmp_path: Path) -> Iterator[RecorderSettings]:
    yield RecorderSettings(
        output_root=tmp_path / "output",
        app_log_path=tmp_path / "logs" / "app.log",
        launch_delay_s=0.05,
        stop_timeout_s=1.0,
        watch_interval_s=0.05,
    )

"""Tests for output tree helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from cctv_recorder.config import CameraConfig
from cctv_recorder.storage import camera_paths, clean_directory, ensure_directory


def _populate(root: Path) -> None:
    recording = root / "CAM_Door_1" / "recording"
    logs = root / "CAM_Door_1" / "logs"
    recording.mkdir(parents=True)
    logs.mkdir(parents=True)
    (recording / "output.m3u8").write_text("#EXTM3U\n", encoding="utf-8")
    (recording / "output0.ts").write_bytes(b"\x47" * 188)
    (logs / "recorder_Door_1.log").write_text("ffmpeg version\n", encoding="utf-8")
    (root / "stray.txt").write_text("left over", encoding="utf-8")
    (root / "empty").mkdir()


def test_clean_directory_removes_contents_but_keeps_root(tmp_path: Path) -> None:
    root = tmp_path / "cctv_recording_output"
    _populate(root)

    removed = clean_directory(root)

    assert root.is_dir()
    assert list(root.iterdir()) == []
    assert removed == 8


def test_clean_directory_missing_root_is_noop(tmp_path: Path) -> None:
    root = tmp_path / "absent"

    assert clean_directory(root) == 0
    assert not root.exists()


def test_clean_directory_continues_after_delete_failure(tmp_path: Path, monkeypatch, caplog) -> None:
    caplog.set_level(logging.ERROR, logger="cctv_recorder.storage")
    root = tmp_path / "out"
    _populate(root)
    stuck = root / "CAM_Door_1" / "recording" / "output0.ts"
    original_unlink = Path.unlink

    def flaky_unlink(self: Path, *args, **kwargs) -> None:
        if self == stuck:
            raise PermissionError("busy")
        original_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", flaky_unlink)

    clean_directory(root)

    assert stuck.exists()
    assert not (root / "stray.txt").exists()
    assert not (root / "CAM_Door_1" / "logs").exists()
    assert f"Failed to delete {stuck}" in caplog.text


def test_clean_directory_unlinks_directory_symlinks(tmp_path: Path) -> None:
    root = tmp_path / "out"
    root.mkdir()
    outside = tmp_path / "keep"
    outside.mkdir()
    (outside / "precious.txt").write_text("do not delete", encoding="utf-8")
    (root / "link").symlink_to(outside, target_is_directory=True)

    clean_directory(root)

    assert not (root / "link").exists()
    assert (outside / "precious.txt").exists()


def test_camera_paths_layout(tmp_path: Path) -> None:
    camera = CameraConfig(id=3, name="Yard", rtsp_url="rtsp://yard", chunk_size=6)

    paths = camera_paths(tmp_path, camera)

    assert paths.recording_dir == tmp_path / "CAM_Yard_3" / "recording"
    assert paths.log_dir == tmp_path / "CAM_Yard_3" / "logs"
    assert paths.playlist == tmp_path / "CAM_Yard_3" / "recording" / "output.m3u8"
    assert paths.log_file == tmp_path / "CAM_Yard_3" / "logs" / "recorder_Yard_3.log"


def test_ensure_directory_reports_failure(tmp_path: Path, caplog) -> None:
    caplog.set_level(logging.ERROR, logger="cctv_recorder.storage")
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    assert ensure_directory(blocker / "sub") is False
    assert "Failed creating output directory" in caplog.text
    assert ensure_directory(tmp_path / "a" / "b") is True
    assert (tmp_path / "a" / "b").is_dir()

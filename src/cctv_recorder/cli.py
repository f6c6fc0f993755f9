"""Command-line entry point for the CCTV recorder."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from types import FrameType
from typing import Sequence

from .config import TIME_FORMAT, RecorderSettings, settings_from_env
from .service import RecorderService
from .version import APP_VERSION

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the recorder CLI."""

    parser = argparse.ArgumentParser(
        prog="cctv-recorder",
        description="Record RTSP camera streams to HLS with FFmpeg.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Camera configuration file (watched for changes).",
    )
    parser.add_argument("--output-root", type=Path, help="Directory receiving recordings.")
    parser.add_argument("--log-file", type=Path, help="Application log file, truncated at startup.")
    parser.add_argument("--ffmpeg", help="FFmpeg executable to run.")
    parser.add_argument("--launch-delay", type=float, help="Seconds to wait before launching a recorder.")
    parser.add_argument(
        "--stop-timeout",
        type=float,
        help="Seconds to wait for a graceful exit before killing a recorder.",
    )
    parser.add_argument(
        "--prune-removed",
        action="store_true",
        help="Stop cameras that disappear from the configuration file.",
    )
    parser.add_argument(
        "--allow-duplicate-launches",
        action="store_true",
        help="Do not cancel a camera's previous launch when the configuration changes.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser


def settings_from_args(args: argparse.Namespace) -> RecorderSettings:
    settings = settings_from_env(RecorderSettings())
    return settings.with_overrides(
        output_root=args.output_root,
        app_log_path=args.log_file,
        ffmpeg_binary=args.ffmpeg,
        launch_delay_s=args.launch_delay,
        stop_timeout_s=args.stop_timeout,
        prune_removed=True if args.prune_removed else None,
        cancel_superseded=False if args.allow_duplicate_launches else None,
    )


def configure_logging(log_path: Path, *, verbose: bool = False) -> None:
    """Log to stderr and to ``log_path``, truncating the previous run's log."""

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))
    except OSError as exc:
        print(f"Failed to open log file {log_path}: {exc}", file=sys.stderr)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def serve(service: RecorderService, stop_event: threading.Event, *, poll_interval: float = 0.5) -> None:
    """Start ``service`` and block until ``stop_event`` is set, then stop it."""

    service.start()
    try:
        while not stop_event.wait(poll_interval):
            pass
    finally:
        service.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by ``python -m cctv_recorder``."""

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = settings_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(settings.app_log_path, verbose=args.verbose)
    logger.info("Application started at %s", datetime.now().strftime(TIME_FORMAT))

    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: FrameType | None) -> None:
        del frame
        logger.info("Received signal %s, shutting down", signum)
        stop_event.set()

    previous_handlers = {
        signum: signal.signal(signum, _handle_signal) for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        serve(RecorderService(args.config, settings), stop_event)
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)
    return 0


__all__ = ["build_parser", "configure_logging", "main", "serve", "settings_from_args"]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())

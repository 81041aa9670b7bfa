"""
GazeNav - hands-free pointer control

Main entry point: webcam blink monitor.

Reads frames from the camera, reduces each to a luminance sample and
feeds the blink detector. Detected blinks are logged at INFO together
with the diagnostics status line. Gaze prediction is supplied by the
host application through ``Controller.on_raw_gaze``.

Optional extras:
- ``--cursor`` moves the OS pointer to each gaze point and clicks on
  dwell activations (pynput)
- ``--overlay`` shows the click-through diagnostics overlay (PyQt6,
  ``pip install gazenav[gui]``)

Logging defaults to INFO for the monitor; ``--log-level`` or the
``GAZENAV_LOG_LEVEL`` environment variable override it.

Privacy & Security:
- No data sent over network
- All processing local
- No video recording

Usage:
    python -m gazenav.main [--cursor] [--overlay] [--screen 1920x1080]
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2

from gazenav.core.bridge import Diagnostics, connect
from gazenav.core.config import get_default_config
from gazenav.core.controller import Controller
from gazenav.core.samples import Viewport
from gazenav.os_control.cursor_controller import CursorControlError, CursorController
from gazenav.utils.logger import get_logger, setup_logger
from gazenav.utils.timing import monotonic_ms
from gazenav.vision.luminance import LuminanceSampler

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_size(text: str) -> Tuple[int, int]:
    try:
        width, height = (int(part) for part in text.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError("size must be 'WIDTHxHEIGHT'")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("size must be positive")
    return width, height


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="gazenav",
        description="Webcam blink monitor with optional cursor control and overlay",
    )
    parser.add_argument("--camera", type=int, default=0, help="Camera index")
    parser.add_argument(
        "--screen",
        type=_parse_size,
        metavar="WxH",
        help="Viewport size for gaze coordinates (default: camera frame size)",
    )
    parser.add_argument("--cursor", action="store_true", help="Drive the OS pointer")
    parser.add_argument("--overlay", action="store_true", help="Show the diagnostics overlay")
    parser.add_argument("--data-dir", type=Path, help="Directory for calibration data")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Console log level")
    return parser.parse_args(argv)


def _create_overlay(hub):
    """Start (or reuse) the QApplication and show the overlay on the primary screen."""
    from PyQt6.QtCore import Qt
    from PyQt6.QtWidgets import QApplication

    from gazenav.gui.overlay import DiagnosticsOverlay

    app = QApplication.instance() or QApplication(sys.argv)
    overlay = DiagnosticsOverlay(hub)
    overlay.setWindowFlags(
        Qt.WindowType.FramelessWindowHint
        | Qt.WindowType.WindowStaysOnTopHint
        | Qt.WindowType.Tool
    )
    screen = app.primaryScreen()
    if screen is not None:
        overlay.setGeometry(screen.geometry())
    overlay.attach()
    overlay.show()
    return app, overlay


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""

    args = parse_args(argv)
    config = get_default_config()

    if args.log_level:
        config.log_level = args.log_level
    elif "GAZENAV_LOG_LEVEL" not in os.environ:
        config.log_level = "INFO"

    if args.data_dir is not None:
        config.storage.data_dir = args.data_dir

    setup_logger(
        name="gazenav",
        level=config.log_level,
        log_file=config.storage.log_path,
        enable_file_logging=config.storage.enable_file_logging,
    )

    logger = get_logger(__name__)
    logger.info("=" * 60)
    logger.info("GazeNav Starting")
    logger.info(f"Version: {config.version}")
    logger.info("=" * 60)

    capture = cv2.VideoCapture(args.camera)
    if not capture.isOpened():
        logger.error(f"Failed to open camera {args.camera}")
        return 1

    if args.screen is not None:
        width, height = args.screen
    else:
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 640)
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 480)

    controller = Controller(config, Viewport(width, height))
    if not controller.initialize():
        logger.error(f"Initialization failed: {controller.error.message}")
        capture.release()
        return 1

    cursor = None
    if args.cursor:
        try:
            cursor = CursorController(width, height)
        except CursorControlError as e:
            logger.error(f"Cursor control unavailable: {e}")
            capture.release()
            return 1
        cursor.attach(controller.hub)

    app = overlay = None
    if args.overlay:
        try:
            app, overlay = _create_overlay(controller.hub)
        except ImportError as e:
            logger.error(f"Overlay needs PyQt6 (pip install gazenav[gui]): {e}")
            if cursor is not None:
                cursor.detach()
            capture.release()
            return 1

    diagnostics = Diagnostics(controller.hub)
    diagnostics.enable()
    connection = connect(
        controller.hub,
        on_blink=lambda event: logger.info(
            f"Blink {event.duration_ms:.0f}ms - {diagnostics.status_text()}"
        ),
    )

    sampler = LuminanceSampler()

    try:
        while True:
            ret, frame = capture.read()
            if not ret:
                logger.warning("Camera stopped delivering frames")
                break

            sample = sampler.sample(frame, monotonic_ms())
            if sample is not None:
                controller.on_luminance(sample)
            controller.tick()

            if app is not None:
                app.processEvents()
                if not overlay.isVisible():
                    logger.info("Overlay closed")
                    break

    except KeyboardInterrupt:
        logger.info("Interrupted")

    finally:
        connection.disconnect()
        diagnostics.disable()
        if cursor is not None:
            cursor.detach()
        if overlay is not None:
            overlay.detach()
            overlay.close()
        controller.shutdown()
        capture.release()

    logger.info(
        f"Application exiting ({diagnostics.blink_count} blinks, "
        f"{sampler.dropped_frames} dropped frames)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

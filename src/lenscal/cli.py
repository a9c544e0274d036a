#!/usr/bin/env python3
"""
lenscal CLI - lens calibration and radial correction.

Usage:
    lenscal board [OUTPUT]               - Render the calibration board image
    lenscal probe                        - List capture devices that open
    lenscal calibrate IMAGE [IMAGE ...]  - Calibrate from still images of the board
    lenscal live [DEVICE] [FRAMES]       - Calibrate from a live camera
    lenscal undistort INPUT OUTPUT       - Apply the saved calibration to an image
    lenscal init-config                  - Write a default lenscal.toml
    lenscal --help                       - Show this help

Settings are read from ./lenscal.toml when it exists.
"""

import queue
import sys
from pathlib import Path
from time import perf_counter

import cv2

import lenscal.logger
from lenscal.calibration import render_board
from lenscal.capture import CaptureWorker, OpenCVDevice, discover_devices
from lenscal.config import (
    FileStore,
    create_default_config,
    load_config,
    save_config,
)
from lenscal.errors import LensCalError
from lenscal.session import CalibrationSession

logger = lenscal.logger.get(__name__)

CONFIG_FILE = Path("lenscal.toml")


def _load_config():
    if CONFIG_FILE.exists():
        config = load_config(CONFIG_FILE)
    else:
        config = create_default_config()
    lenscal.logger.set_level(config.log_level)
    return config


def _read_image(path: str):
    img = cv2.imread(path)
    if img is None:
        raise LensCalError(f"Cannot read image: {path}")
    return img


def cmd_board(args):
    config = _load_config()
    output = args[0] if args else config.paths.board_image
    img = render_board(config.board, 2400)
    cv2.imwrite(output, img)
    print(f"Wrote {config.board.columns}x{config.board.rows} board to {output}")
    return 0


def cmd_probe(args):
    config = _load_config()
    found = discover_devices(
        max_consecutive_failures=config.capture.max_consecutive_failures,
        max_index=config.capture.max_probe_index,
    )
    if not found:
        print("No capture devices found")
        return 1
    for index in found:
        print(f"  device {index}")
    return 0


def cmd_calibrate(args):
    if not args:
        print("calibrate needs at least one image")
        return 1

    config = _load_config()
    session = CalibrationSession.from_config(config, store=FileStore(Path(".")))

    size = None
    for path in args:
        img = _read_image(path)
        size = (img.shape[1], img.shape[0])
        report = session.observe(img, accumulate=True)
        if report.observation.is_empty:
            logger.info(f"{path}: no board found, skipped")
            continue
        status = "accepted" if report.accumulated else "too few corners"
        print(f"  {path}: {report.detections.count} markers, "
              f"{report.observation.count} corners ({status})")

    result = session.solve(*size)
    return _report_solve(session, config, result)


def cmd_live(args):
    try:
        device = int(args[0]) if args else 0
        target = int(args[1]) if len(args) > 1 else 20
    except ValueError:
        print("live needs integer DEVICE and FRAMES arguments")
        return 1
    config = _load_config()

    session = CalibrationSession.from_config(config, store=FileStore(Path(".")))
    worker = CaptureWorker(
        command_queue_size=config.capture.command_queue_size,
        frame_queue_size=config.capture.frame_queue_size,
    )
    worker.start()
    worker.register(device, OpenCVDevice(device))
    worker.open(device)

    size = None
    last_accept = 0.0
    try:
        while session.observation_count < target:
            packet = worker.frames.get(timeout=5.0)
            # space accepted views out so the board can move between them
            if perf_counter() - last_accept < 0.5:
                continue
            size = (packet.frame.shape[1], packet.frame.shape[0])
            report = session.observe(packet.frame, accumulate=True)
            if report.accumulated:
                last_accept = perf_counter()
                print(f"  view {session.observation_count}/{target}: "
                      f"{report.observation.count} corners")
    except queue.Empty:
        print("Timed out waiting for frames")
    except KeyboardInterrupt:
        print("Interrupted")
    finally:
        worker.shutdown()
        worker.join()

    if size is None:
        print("No frames received")
        return 1
    result = session.solve(*size)
    return _report_solve(session, config, result)


def cmd_undistort(args):
    if len(args) != 2:
        print("undistort needs INPUT and OUTPUT")
        return 1
    config = _load_config()
    session = CalibrationSession.from_config(config, store=FileStore(Path(".")))
    session.load_calibration()
    corrected = session.correct(_read_image(args[0]))
    cv2.imwrite(args[1], corrected)
    print(f"Wrote {args[1]}")
    return 0


def cmd_init_config(args):
    path = Path(args[0]) if args else CONFIG_FILE
    save_config(create_default_config(), path)
    print(f"Wrote {path}")
    return 0


def _report_solve(session, config, result):
    _print_result(result)
    if session.persistence_error is not None:
        print(f"Warning: calibration not saved: {session.persistence_error}")
        return 1
    print(f"Saved to {config.paths.calibration_file}")
    return 0


def _print_result(result):
    fx, fy = result.matrix[0, 0], result.matrix[1, 1]
    cx, cy = result.matrix[0, 2], result.matrix[1, 2]
    print(f"Calibrated from {result.view_count} views, RMS error {result.rms_error:.4f}px")
    print(f"  focal: ({fx:.2f}, {fy:.2f})  principal point: ({cx:.2f}, {cy:.2f})")
    print(f"  distortion: {result.distortion.round(6).tolist()}")


COMMANDS = {
    "board": cmd_board,
    "probe": cmd_probe,
    "calibrate": cmd_calibrate,
    "live": cmd_live,
    "undistort": cmd_undistort,
    "init-config": cmd_init_config,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(__doc__)
        return 0

    command = sys.argv[1]
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print("Run 'lenscal --help' for usage")
        return 1

    try:
        return handler(sys.argv[2:])
    except LensCalError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

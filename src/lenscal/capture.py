# The capture worker owns every camera handle and runs on its own thread.
# The foreground talks to it only through two bounded queues: commands in,
# frames out. Nothing outside the worker thread touches a handle after it
# has been registered.

from __future__ import annotations

import queue
from dataclasses import dataclass
from threading import Thread
from time import perf_counter, sleep
from typing import Callable, Hashable, Protocol

import cv2
import numpy as np

import lenscal.logger

from .errors import DeviceUnavailable

logger = lenscal.logger.get(__name__)

IDLE_SLEEP = 0.005  # seconds to yield when no command and no frame arrived


# ============================================================================
# Devices
# ============================================================================


class DeviceHandle(Protocol):
    def open(self) -> bool: ...

    def read(self) -> np.ndarray | None: ...

    def release(self) -> None: ...


class OpenCVDevice:
    """A cv2.VideoCapture source addressed by index or path."""

    def __init__(self, source: int | str, resolution: tuple[int, int] | None = None):
        self.source = source
        self.resolution = resolution
        self.capture: cv2.VideoCapture | None = None

    def open(self) -> bool:
        self.capture = cv2.VideoCapture(self.source)
        if not self.capture.isOpened():
            self.capture.release()
            self.capture = None
            return False
        if self.resolution is not None:
            self.capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
            self.capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        return True

    def read(self) -> np.ndarray | None:
        if self.capture is None:
            return None
        if not self.capture.grab():
            return None
        success, frame = self.capture.retrieve()
        return frame if success else None

    def release(self) -> None:
        if self.capture is not None:
            self.capture.release()
            self.capture = None


def discover_devices(
    max_consecutive_failures: int = 3,
    max_index: int = 16,
    factory: Callable[[int], DeviceHandle] = OpenCVDevice,
) -> list[int]:
    """
    Probe device indices from 0 until enough consecutive ones fail to open.

    Returns:
        Indices that opened successfully
    """
    found = []
    failures = 0
    for index in range(max_index):
        if failures >= max_consecutive_failures:
            break
        device = factory(index)
        try:
            opened = device.open()
        finally:
            device.release()
        if opened:
            logger.info(f"Found capture device at index {index}")
            found.append(index)
            failures = 0
        else:
            failures += 1
    return found


# ============================================================================
# Messages
# ============================================================================


@dataclass(frozen=True)
class RegisterDevice:
    device_id: Hashable
    handle: DeviceHandle


@dataclass(frozen=True)
class Open:
    device_id: Hashable


@dataclass(frozen=True)
class Close:
    device_id: Hashable


@dataclass(frozen=True)
class Shutdown:
    pass


Command = RegisterDevice | Open | Close | Shutdown


@dataclass(frozen=True)
class FrameAvailable:
    device_id: Hashable
    frame: np.ndarray
    timestamp: float


# ============================================================================
# Worker
# ============================================================================


class CaptureWorker:
    def __init__(self, command_queue_size: int = 32, frame_queue_size: int = 4):
        self.commands: queue.Queue = queue.Queue(maxsize=command_queue_size)
        self.frames: queue.Queue = queue.Queue(maxsize=frame_queue_size)

        # only touched from the worker thread
        self._devices: dict[Hashable, DeviceHandle] = {}
        self._open: list[Hashable] = []

        self.dropped_frames = 0
        self.thread = Thread(target=self._run, args=(), daemon=True)

    def start(self) -> None:
        logger.info("Starting capture worker")
        self.thread.start()

    def submit(self, command: Command) -> None:
        """
        Queue a command without blocking.

        Raises:
            queue.Full: If the command queue is full
        """
        self.commands.put_nowait(command)

    def register(self, device_id: Hashable, handle: DeviceHandle) -> None:
        self.submit(RegisterDevice(device_id, handle))

    def open(self, device_id: Hashable) -> None:
        self.submit(Open(device_id))

    def close(self, device_id: Hashable) -> None:
        self.submit(Close(device_id))

    def shutdown(self) -> None:
        """Ask the worker to stop. The caller must still join()."""
        self.submit(Shutdown())

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout)

    def poll_frame(self) -> FrameAvailable | None:
        """Next frame if one is waiting, otherwise None."""
        try:
            return self.frames.get_nowait()
        except queue.Empty:
            return None

    @property
    def is_running(self) -> bool:
        return self.thread.is_alive()

    # ------------------------------------------------------------------
    # worker thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        logger.info("Capture worker loop entered")
        try:
            while True:
                try:
                    command = self.commands.get_nowait()
                except queue.Empty:
                    command = None

                if command is not None and not self._handle(command):
                    break

                forwarded = self._read_open_devices()

                if command is None and not forwarded:
                    sleep(IDLE_SLEEP)
        finally:
            for device_id in list(self._devices):
                self._release(device_id)
            logger.info("Capture worker stopped")

    def _handle(self, command: Command) -> bool:
        """Apply one command. Returns False when the loop should stop."""
        if isinstance(command, Shutdown):
            return False

        if isinstance(command, RegisterDevice):
            if command.device_id in self._devices:
                self._release(command.device_id)
            self._devices[command.device_id] = command.handle
            logger.info(f"Registered device {command.device_id}")

        elif isinstance(command, Open):
            try:
                self._open_device(command.device_id)
            except DeviceUnavailable as e:
                logger.warning(str(e))

        elif isinstance(command, Close):
            if command.device_id in self._open:
                self._open.remove(command.device_id)
                self._devices[command.device_id].release()
                logger.info(f"Closed device {command.device_id}")
            else:
                logger.warning(f"Close requested for device {command.device_id} which is not open")

        else:
            logger.warning(f"Ignoring unknown command {command!r}")

        return True

    def _open_device(self, device_id: Hashable) -> None:
        if device_id not in self._devices:
            raise DeviceUnavailable(device_id, "not registered")
        if device_id in self._open:
            return
        try:
            opened = self._devices[device_id].open()
        except Exception as e:
            raise DeviceUnavailable(device_id, str(e)) from e
        if not opened:
            raise DeviceUnavailable(device_id)
        self._open.append(device_id)
        logger.info(f"Opened device {device_id}")

    def _read_open_devices(self) -> int:
        forwarded = 0
        for device_id in self._open:
            try:
                frame = self._devices[device_id].read()
            except Exception as e:
                logger.debug(f"Read from device {device_id} failed: {e}")
                continue
            if frame is None:
                continue

            packet = FrameAvailable(device_id=device_id, frame=frame, timestamp=perf_counter())
            try:
                self.frames.put_nowait(packet)
                forwarded += 1
            except queue.Full:
                # frames are lossy; drop the newest rather than stall
                self.dropped_frames += 1
        return forwarded

    def _release(self, device_id: Hashable) -> None:
        if device_id in self._open:
            self._open.remove(device_id)
        try:
            self._devices[device_id].release()
        except Exception as e:
            logger.warning(f"Releasing device {device_id} failed: {e}")

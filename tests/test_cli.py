"""
Tests for lenscal.cli.
"""

import logging
import queue
import sys
from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from lenscal import cli
from lenscal.capture import FrameAvailable
from lenscal.config import FileStore, save_calibration
from lenscal.errors import PersistenceFailure
from lenscal.types import DistortionModel


@pytest.fixture
def in_temp_dir(temp_dir, monkeypatch):
    monkeypatch.chdir(temp_dir)
    return temp_dir


def run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["lenscal", *args])
    return cli.main()


class TestCli:
    def test_help(self, monkeypatch, capsys):
        assert run(monkeypatch, "--help") == 0
        assert "Usage" in capsys.readouterr().out

    def test_unknown_command(self, monkeypatch, capsys):
        assert run(monkeypatch, "bogus") == 1
        assert "Unknown command" in capsys.readouterr().out

    def test_board_writes_image(self, monkeypatch, in_temp_dir):
        assert run(monkeypatch, "board", "out.png") == 0
        img = cv2.imread(str(in_temp_dir / "out.png"))
        assert img.shape == (2400, 2400, 3)

    def test_init_config(self, monkeypatch, in_temp_dir):
        assert run(monkeypatch, "init-config") == 0
        assert (in_temp_dir / "lenscal.toml").exists()

    def test_undistort(self, monkeypatch, in_temp_dir, sample_result):
        save_calibration(DistortionModel(result=sample_result), FileStore(in_temp_dir))
        cv2.imwrite("in.png", np.full((48, 64, 3), 100, dtype=np.uint8))

        assert run(monkeypatch, "undistort", "in.png", "out.png") == 0
        assert cv2.imread("out.png").shape == (48, 64, 3)

    def test_undistort_without_calibration(self, monkeypatch, in_temp_dir, capsys):
        cv2.imwrite("in.png", np.zeros((8, 8, 3), dtype=np.uint8))
        assert run(monkeypatch, "undistort", "in.png", "out.png") == 1
        assert "Error" in capsys.readouterr().out

    def test_calibrate_with_no_board_reports_error(self, monkeypatch, in_temp_dir, capsys):
        cv2.imwrite("blank.png", np.full((480, 640, 3), 255, dtype=np.uint8))
        assert run(monkeypatch, "calibrate", "blank.png") == 1
        assert "Error" in capsys.readouterr().out
        assert not (in_temp_dir / "camera_calibration.toml").exists()

    def test_calibrate_logs_skipped_images(self, monkeypatch, in_temp_dir, caplog):
        cv2.imwrite("blank.png", np.full((480, 640, 3), 255, dtype=np.uint8))
        with caplog.at_level(logging.INFO, logger="lenscal"):
            run(monkeypatch, "calibrate", "blank.png")
        assert "blank.png: no board found, skipped" in caplog.text


class FakeWorker:
    def __init__(self, frames):
        self.frames = queue.Queue()
        for frame in frames:
            self.frames.put(FrameAvailable(device_id=0, frame=frame, timestamp=0.0))

    def start(self):
        pass

    def register(self, device_id, handle):
        pass

    def open(self, device_id):
        pass

    def shutdown(self):
        pass

    def join(self, timeout=None):
        pass


class FakeSession:
    """Accepts every frame; its store always fails to write."""

    def __init__(self, result):
        self.result = result
        self.observation_count = 0
        self.persistence_error = None

    def observe(self, frame, accumulate=False):
        self.observation_count += 1
        return SimpleNamespace(accumulated=True, observation=SimpleNamespace(count=24))

    def solve(self, width, height):
        self.persistence_error = PersistenceFailure("disk full")
        return self.result


class TestLive:
    def test_rejects_non_numeric_device(self, monkeypatch, in_temp_dir, capsys):
        assert run(monkeypatch, "live", "front") == 1
        assert "integer" in capsys.readouterr().out

    def test_rejects_non_numeric_frame_count(self, monkeypatch, in_temp_dir, capsys):
        assert run(monkeypatch, "live", "0", "many") == 1
        assert "integer" in capsys.readouterr().out

    def test_reports_unsaved_calibration(self, monkeypatch, in_temp_dir, capsys, sample_result):
        session = FakeSession(sample_result)
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        monkeypatch.setattr(cli, "CaptureWorker", lambda **kwargs: FakeWorker([frame]))
        monkeypatch.setattr(cli, "OpenCVDevice", lambda device: None)
        monkeypatch.setattr(
            cli.CalibrationSession, "from_config", staticmethod(lambda config, store: session)
        )

        assert run(monkeypatch, "live", "0", "1") == 1
        out = capsys.readouterr().out
        assert "view 1/1" in out
        assert "not saved: disk full" in out

"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def sample_intrinsics_matrix():
    """Typical camera intrinsics matrix for a 640x480 sensor."""
    return np.array([
        [800.0, 0.0, 320.0],
        [0.0, 800.0, 240.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_distortion():
    """Typical distortion coefficients (k1, k2, p1, p2, k3)."""
    return np.array([0.1, -0.25, 0.001, -0.001, 0.1], dtype=np.float64)


@pytest.fixture
def sample_board():
    """Small ChArUco board: 7x5 squares, 3cm markers on a 4cm pitch."""
    from lenscal.types import FiducialBoard
    return FiducialBoard(
        columns=7,
        rows=5,
        marker_size_m=0.03,
        marker_spacing_m=0.04,
        dictionary="DICT_4X4_50",
    )


@pytest.fixture
def sample_result(sample_intrinsics_matrix, sample_distortion):
    """Sample CalibrationResult."""
    from lenscal.types import CalibrationResult
    return CalibrationResult(
        matrix=sample_intrinsics_matrix,
        distortion=sample_distortion,
        image_size=(640, 480),
        rms_error=0.25,
        view_count=12,
    )


@pytest.fixture
def synthetic_observations(sample_board, sample_intrinsics_matrix):
    """
    Board corners projected through a known distortion-free camera from
    several tilted poses.
    """
    from lenscal.calibration.charuco import get_charuco_object_points
    from lenscal.types import CornerObservation

    obj = get_charuco_object_points(sample_board).astype(np.float64)
    center = obj.mean(axis=0)

    rotations = [
        (0.0, 0.0, 0.0),
        (0.35, 0.0, 0.0),
        (-0.35, 0.0, 0.0),
        (0.0, 0.35, 0.0),
        (0.0, -0.35, 0.0),
        (0.25, 0.25, 0.1),
        (-0.2, 0.3, -0.15),
        (0.3, -0.25, 0.2),
    ]

    observations = []
    for rvec in rotations:
        rvec = np.array(rvec, dtype=np.float64)
        rotation = cv2.Rodrigues(rvec)[0]
        # keep the board centre on the optical axis 0.6m away
        tvec = np.array([0.0, 0.0, 0.6]) - rotation @ center
        img, _ = cv2.projectPoints(obj, rvec, tvec, sample_intrinsics_matrix, np.zeros(5))
        observations.append(
            CornerObservation(
                corner_ids=np.arange(len(obj), dtype=np.int32),
                img_loc=img[:, 0, :].astype(np.float32),
                obj_loc=obj.astype(np.float32),
            )
        )
    return observations


@pytest.fixture
def symmetric_frame():
    """21x21 frame, mirror-symmetric about both axes through its centre."""
    size = 21
    ys, xs = np.mgrid[0:size, 0:size]
    dist = np.abs(xs - size // 2) + np.abs(ys - size // 2)
    frame = np.zeros((size, size, 3), dtype=np.uint8)
    frame[..., 0] = (dist * 12) % 256
    frame[..., 1] = 200 - dist * 5
    frame[..., 2] = np.where((xs + ys) % 2 == 0, 40, 90)
    return frame

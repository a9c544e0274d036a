"""
Model-based undistortion using a solved camera matrix and distortion vector.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..types import CalibrationResult


def undistort(frame: np.ndarray, result: CalibrationResult) -> np.ndarray:
    """
    Undistort a frame with the pinhole distortion model.

    The output keeps the input's dimensions and camera matrix.

    Args:
        frame: (h, w) or (h, w, c) image
        result: Solved intrinsics

    Returns:
        Undistorted image of identical shape
    """
    return cv2.undistort(frame, result.matrix, result.distortion)


def undistort_points(points: np.ndarray, result: CalibrationResult) -> np.ndarray:
    """
    Undistort pixel coordinates, returning pixel coordinates.

    Args:
        points: (n, 2) distorted image coordinates

    Returns:
        (n, 2) undistorted image coordinates
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    undistorted = cv2.undistortPoints(points, result.matrix, result.distortion, P=result.matrix)
    return undistorted.reshape(-1, 2)

"""
Correction engine.

correct() takes either correction model directly; apply_calibration()
dispatches on a persisted calibration variant.
"""

from __future__ import annotations

import numpy as np

from ..types import CalibrationResult, CalibrationVariant, DistortionModel, RadialProfile
from .radial import HOLE_COLOR, UNSET_COLOR, Interpolation, forward_map, radial_remap
from .undistort import undistort, undistort_points


def correct(frame: np.ndarray, model: CalibrationResult | RadialProfile) -> np.ndarray:
    """
    Correct a frame with a solved distortion model or a radial profile.

    Returns:
        New frame with the input's width and height
    """
    if isinstance(model, CalibrationResult):
        return undistort(frame, model)
    if isinstance(model, RadialProfile):
        return radial_remap(frame, model)
    raise TypeError(f"Unsupported correction model: {type(model).__name__}")


def apply_calibration(variant: CalibrationVariant, frame: np.ndarray) -> np.ndarray:
    """
    Correct a frame according to a calibration variant.
    """
    if isinstance(variant, DistortionModel):
        return undistort(frame, variant.result)
    raise TypeError(f"Unknown calibration variant: {type(variant).__name__}")


__all__ = [
    "HOLE_COLOR",
    "UNSET_COLOR",
    "Interpolation",
    "apply_calibration",
    "correct",
    "forward_map",
    "radial_remap",
    "undistort",
    "undistort_points",
]

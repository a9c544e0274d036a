"""
Core data structures for lenscal.

All types are frozen dataclasses for immutability.
Logic lives in separate modules - these are data containers, plus the
radial profile's interpolation which is evaluated on every correction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Union

import numpy as np
from scipy.interpolate import CubicHermiteSpline


# ============================================================================
# Calibration Target
# ============================================================================


@dataclass(frozen=True)  # No slots - need properties
class FiducialBoard:
    """
    Description of a ChArUco calibration target.

    marker_spacing_m is the pitch of the checker squares; each marker sits
    centred in a white square, so it must be smaller than the pitch.
    """

    columns: int
    rows: int
    marker_size_m: float
    marker_spacing_m: float
    dictionary: str = "DICT_4X4_50"

    @property
    def marker_count(self) -> int:
        """Markers printed on the board (one per white square)."""
        return (self.columns * self.rows) // 2

    @property
    def corner_count(self) -> int:
        """Internal chessboard corners."""
        return (self.columns - 1) * (self.rows - 1)

    @property
    def marker_capacity(self) -> int:
        """Upper bound on markers a detector should ever report."""
        return self.columns * self.rows


# ============================================================================
# Detection Results
# ============================================================================


@dataclass(frozen=True, slots=True)
class MarkerDetections:
    """
    Raw fiducial markers found in one frame.
    """

    corners: np.ndarray  # (n, 4, 2) marker quads in image coordinates
    ids: np.ndarray  # (n,) marker ids
    capacity: int

    @property
    def count(self) -> int:
        return len(self.ids)


@dataclass(frozen=True, slots=True)
class CornerObservation:
    """
    Interpolated board corners detected in one frame.

    obj_loc holds the matching board-frame coordinates so an observation
    can be fed straight into the solver.
    """

    corner_ids: np.ndarray  # (n,) board corner indices
    img_loc: np.ndarray  # (n, 2) image coordinates (x, y)
    obj_loc: np.ndarray  # (n, 3) board coordinates in meters

    @property
    def count(self) -> int:
        return len(self.corner_ids)

    @property
    def is_empty(self) -> bool:
        return self.count == 0


def empty_observation() -> CornerObservation:
    return CornerObservation(
        corner_ids=np.array([], dtype=np.int32),
        img_loc=np.array([], dtype=np.float32).reshape(0, 2),
        obj_loc=np.array([], dtype=np.float32).reshape(0, 3),
    )


# ============================================================================
# Calibration Data
# ============================================================================


@dataclass(frozen=True, slots=True, eq=False)
class CalibrationResult:
    """
    Intrinsic parameters solved for a camera.
    """

    matrix: np.ndarray  # 3x3 camera matrix
    distortion: np.ndarray  # Distortion coefficients (k1, k2, p1, p2, k3, ...)
    image_size: tuple[int, int]  # (width, height)
    rms_error: float = 0.0  # RMSE of reprojection in pixels
    view_count: int = 0  # Number of frames used in the solve

    def __post_init__(self):
        if self.matrix.shape != (3, 3):
            raise ValueError(f"Camera matrix must be 3x3, got {self.matrix.shape}")
        if self.distortion.ndim != 1:
            raise ValueError("Distortion coefficients must be a flat vector")

    def __eq__(self, other):
        if not isinstance(other, CalibrationResult):
            return NotImplemented
        return (
            np.array_equal(self.matrix, other.matrix)
            and np.array_equal(self.distortion, other.distortion)
            and tuple(self.image_size) == tuple(other.image_size)
            and self.rms_error == other.rms_error
            and self.view_count == other.view_count
        )


@dataclass(frozen=True, slots=True)
class DistortionModel:
    """
    Calibration strategy backed by a solved pinhole distortion model.
    """

    result: CalibrationResult

    tag = "distortion_model"


# Closed set of calibration strategies. Add new variant classes here and a
# matching branch in correction.apply_calibration and config serialization.
CalibrationVariant = Union[DistortionModel]

VARIANT_TYPES: dict[str, type] = {
    DistortionModel.tag: DistortionModel,
}


# ============================================================================
# Radial Profile
# ============================================================================


@dataclass(frozen=True)
class RadialProfile:
    """
    User-editable radial correction curve.

    Control points are (normalized radius, correction factor) pairs with
    radius strictly increasing in [0, 1]. Between control points the curve
    is a Catmull-Rom cubic; outside them it holds the boundary value.
    """

    radii: tuple[float, ...]
    factors: tuple[float, ...]

    def __post_init__(self):
        if len(self.radii) != len(self.factors):
            raise ValueError("radii and factors must have the same length")
        if len(self.radii) < 2:
            raise ValueError("A radial profile needs at least two control points")
        r = np.asarray(self.radii, dtype=np.float64)
        if not np.all(np.isfinite(r)) or not np.all(np.isfinite(self.factors)):
            raise ValueError("Control points must be finite")
        if np.any(np.diff(r) <= 0):
            raise ValueError("Control point radii must be strictly increasing")
        if r[0] < 0.0 or r[-1] > 1.0:
            raise ValueError("Control point radii must lie in [0, 1]")

    @classmethod
    def from_points(cls, points) -> RadialProfile:
        radii, factors = zip(*points)
        return cls(
            radii=tuple(float(r) for r in radii),
            factors=tuple(float(f) for f in factors),
        )

    @classmethod
    def flat(cls, count: int = 5) -> RadialProfile:
        """Evenly spaced control points with no correction."""
        radii = np.linspace(0.0, 1.0, count)
        return cls(radii=tuple(float(r) for r in radii), factors=(0.0,) * count)

    @property
    def points(self) -> list[tuple[float, float]]:
        return list(zip(self.radii, self.factors))

    def __len__(self) -> int:
        return len(self.radii)

    def with_factor(self, index: int, value: float) -> RadialProfile:
        """
        Return a copy with one control point's factor replaced.

        Raises:
            IndexError: If index is outside the control point range
        """
        if not 0 <= index < len(self.factors):
            raise IndexError(
                f"Control point index {index} out of range (0..{len(self.factors) - 1})"
            )
        factors = list(self.factors)
        factors[index] = float(value)
        return replace(self, factors=tuple(factors))

    def _spline(self) -> CubicHermiteSpline:
        x = np.asarray(self.radii, dtype=np.float64)
        y = np.asarray(self.factors, dtype=np.float64)

        # Catmull-Rom tangents: central differences, one-sided at the ends
        slopes = np.empty_like(y)
        slopes[1:-1] = (y[2:] - y[:-2]) / (x[2:] - x[:-2])
        slopes[0] = (y[1] - y[0]) / (x[1] - x[0])
        slopes[-1] = (y[-1] - y[-2]) / (x[-1] - x[-2])

        return CubicHermiteSpline(x, y, slopes, extrapolate=False)

    def sample(self, r):
        """
        Evaluate the correction factor at normalized radius r.

        Accepts a scalar or an array. Values outside the control radii are
        clamped to the nearest boundary point's factor.
        """
        r_arr = np.asarray(r, dtype=np.float64)
        x = self.radii
        y = self.factors

        values = self._spline()(np.clip(r_arr, x[0], x[-1]))
        values = np.where(r_arr <= x[0], y[0], values)
        values = np.where(r_arr >= x[-1], y[-1], values)

        # Exact factors at the control radii
        for radius, factor in zip(x, y):
            values = np.where(r_arr == radius, factor, values)

        if values.ndim == 0:
            return float(values)
        return values

    def curve(self, samples: int = 101) -> np.ndarray:
        """
        Dense (radius, factor) table for plotting.

        Returns:
            (samples, 2) array
        """
        radii = np.linspace(0.0, 1.0, samples)
        return np.column_stack([radii, self.sample(radii)])


def sinc_resample(values, count: int) -> np.ndarray:
    """
    Band-limited resampling of evenly spaced values onto count points.

    Used to preview a profile's factors as a smooth curve independent of
    the spline.
    """
    values = np.asarray(values, dtype=np.float64)
    if count < 2:
        raise ValueError("count must be at least 2")
    positions = np.linspace(0.0, len(values) - 1, count)
    offsets = positions[:, None] - np.arange(len(values))[None, :]
    return np.sinc(offsets) @ values

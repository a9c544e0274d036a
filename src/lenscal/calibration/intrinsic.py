"""
Intrinsic camera calibration.

calibrate_intrinsics is a pure function. CalibrationSolver wraps it with the
per-session list of accumulated observations and persistence of the result;
it is owned by the foreground session and is not thread-safe.
"""

from __future__ import annotations

import cv2
import numpy as np

import lenscal.logger

from ..config import DEFAULT_CALIBRATION_FILE, DEFAULT_EPSILON, CalibrationStore, save_calibration
from ..errors import DetectionEmpty, InsufficientObservations, PersistenceFailure
from ..types import CalibrationResult, CornerObservation, DistortionModel, FiducialBoard

logger = lenscal.logger.get(__name__)

# calibrateCamera needs at least 4 correspondences to constrain a view's pose
MIN_CORNERS_PER_VIEW = 4


def is_usable(observation: CornerObservation, min_corners: int = MIN_CORNERS_PER_VIEW) -> bool:
    """Whether an observation has enough corners to be accumulated."""
    return observation.count >= max(min_corners, MIN_CORNERS_PER_VIEW)


# ============================================================================
# Calibration
# ============================================================================


def calibrate_intrinsics(
    observations: list[CornerObservation],
    image_size: tuple[int, int],
    max_iterations: int = 30,
    epsilon: float = DEFAULT_EPSILON,
) -> CalibrationResult:
    """
    Calibrate camera intrinsics from collected ChArUco corners.

    All observations go into one joint optimisation of the camera matrix,
    distortion and per-view poses. The poses are discarded.

    Args:
        observations: Corner sets from different frames, each usable
        image_size: (width, height) of captured frames
        max_iterations: Iteration cap for the optimiser
        epsilon: Stop once the parameter update falls below this

    Returns:
        CalibrationResult with calibration results

    Raises:
        InsufficientObservations: If observations is empty
        ValueError: If any observation has too few corners
    """
    if len(observations) == 0:
        raise InsufficientObservations("Cannot calibrate: no observations accumulated")

    obj_points = []
    img_points = []
    for i, obs in enumerate(observations):
        if not is_usable(obs):
            raise ValueError(
                f"Observation {i} has {obs.count} corners, need at least {MIN_CORNERS_PER_VIEW}"
            )
        obj_points.append(obs.obj_loc.astype(np.float32).reshape(-1, 1, 3))
        img_points.append(obs.img_loc.astype(np.float32).reshape(-1, 1, 2))

    width, height = image_size
    criteria = (cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS, max_iterations, epsilon)

    error, matrix, dist, _rvecs, _tvecs = cv2.calibrateCamera(
        obj_points,
        img_points,
        (width, height),
        None,
        None,
        criteria=criteria,
    )

    return CalibrationResult(
        matrix=np.asarray(matrix, dtype=np.float64),
        distortion=np.asarray(dist, dtype=np.float64).ravel(),
        image_size=(width, height),
        rms_error=round(float(error), 6),
        view_count=len(observations),
    )


def compute_reprojection_error(
    observation: CornerObservation,
    result: CalibrationResult,
) -> float | None:
    """
    Compute reprojection error for a single frame.

    Args:
        observation: Detected corners with obj_loc
        result: Solved intrinsics

    Returns:
        RMS reprojection error in pixels, or None if can't compute
    """
    if not is_usable(observation):
        return None

    obj = observation.obj_loc.astype(np.float64)
    img = observation.img_loc.astype(np.float64)

    # Use solvePnP to get pose
    success, rvec, tvec = cv2.solvePnP(obj, img, result.matrix, result.distortion)
    if not success:
        return None

    # Project points back
    projected, _ = cv2.projectPoints(obj, rvec, tvec, result.matrix, result.distortion)
    projected = projected.reshape(-1, 2)

    error = np.sqrt(np.mean(np.sum((img - projected) ** 2, axis=1)))
    return float(error)


# ============================================================================
# Session Solver
# ============================================================================


class CalibrationSolver:
    """
    Accumulates corner observations for one calibration session and solves.

    The caller decides which frames to accumulate; observations too sparse
    to constrain a view are refused at accumulation time so a solve never
    drops frames silently.
    """

    def __init__(
        self,
        store: CalibrationStore | None = None,
        resource: str = DEFAULT_CALIBRATION_FILE,
        max_iterations: int = 30,
        epsilon: float = DEFAULT_EPSILON,
    ):
        self.store = store
        self.resource = resource
        self.max_iterations = max_iterations
        self.epsilon = epsilon
        self._observations: list[CornerObservation] = []
        self.last_persistence_error: PersistenceFailure | None = None

    @property
    def observation_count(self) -> int:
        return len(self._observations)

    def accumulate(self, observation: CornerObservation) -> None:
        """
        Add one frame's corners to the session.

        Raises:
            DetectionEmpty: If the observation has no corners
            ValueError: If the observation has fewer than MIN_CORNERS_PER_VIEW corners
        """
        if observation.is_empty:
            raise DetectionEmpty("Cannot accumulate a frame with no board corners")
        if not is_usable(observation):
            raise ValueError(
                f"Observation has {observation.count} corners, "
                f"need at least {MIN_CORNERS_PER_VIEW}"
            )
        self._observations.append(observation)
        logger.debug(
            f"Accumulated frame {len(self._observations)} with {observation.count} corners"
        )

    def reset(self) -> None:
        self._observations.clear()

    def solve(
        self,
        board: FiducialBoard,
        image_width: int,
        image_height: int,
    ) -> CalibrationResult:
        """
        Solve intrinsics from every accumulated observation and persist them.

        A persistence failure is logged and stored on last_persistence_error;
        the returned result is still valid.

        Raises:
            InsufficientObservations: If nothing was accumulated
        """
        if not self._observations:
            raise InsufficientObservations("Cannot calibrate: no observations accumulated")

        logger.info(
            f"Calibrating {board.columns}x{board.rows} board from "
            f"{len(self._observations)} frames at {image_width}x{image_height}"
        )
        result = calibrate_intrinsics(
            self._observations,
            (image_width, image_height),
            max_iterations=self.max_iterations,
            epsilon=self.epsilon,
        )
        logger.info(f"Calibration complete, RMS error {result.rms_error:.4f}px")

        self.last_persistence_error = None
        if self.store is not None:
            try:
                save_calibration(DistortionModel(result=result), self.store, self.resource)
            except PersistenceFailure as e:
                logger.error(f"Calibration solved but not saved: {e}")
                self.last_persistence_error = e

        return result

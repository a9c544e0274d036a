"""
Foreground calibration session.

CalibrationSession holds everything the UI thread edits or reads while
calibrating: the board, the solver's accumulated observations, the radial
profile and the active calibration. It is passed explicitly to whoever
needs it; there is no module-level state.

Not thread-safe. Frames from the capture worker are handed in by the owner.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

import lenscal.logger

from .calibration.detection import detect_board_corners
from .calibration.intrinsic import CalibrationSolver, is_usable
from .config import CalibrationStore, LensCalConfig, load_calibration
from .correction import apply_calibration, radial_remap
from .errors import DecodeError, InsufficientObservations, PersistenceFailure
from .types import (
    CalibrationResult,
    CalibrationVariant,
    CornerObservation,
    DistortionModel,
    FiducialBoard,
    MarkerDetections,
    RadialProfile,
)

logger = lenscal.logger.get(__name__)


@dataclass(frozen=True)
class FrameReport:
    """What the session saw in the last observed frame."""

    detections: MarkerDetections
    observation: CornerObservation
    accumulated: bool


class CalibrationSession:
    def __init__(
        self,
        board: FiducialBoard,
        store: CalibrationStore | None = None,
        resource: str | None = None,
        profile: RadialProfile | None = None,
        min_corners: int = 6,
        max_iterations: int = 30,
        epsilon: float | None = None,
    ):
        self.board = board
        self.store = store
        self.min_corners = min_corners

        solver_kwargs = {"max_iterations": max_iterations}
        if resource is not None:
            solver_kwargs["resource"] = resource
        if epsilon is not None:
            solver_kwargs["epsilon"] = epsilon
        self.solver = CalibrationSolver(store=store, **solver_kwargs)

        self.profile = profile if profile is not None else RadialProfile.flat()
        self.variant: CalibrationVariant | None = None
        self.last_report: FrameReport | None = None

    @classmethod
    def from_config(
        cls,
        config: LensCalConfig,
        store: CalibrationStore | None = None,
    ) -> CalibrationSession:
        return cls(
            board=config.board,
            store=store,
            resource=config.paths.calibration_file,
            profile=config.profile,
            min_corners=config.solver.min_corners,
            max_iterations=config.solver.max_iterations,
            epsilon=config.solver.epsilon,
        )

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def observe(self, frame: np.ndarray, accumulate: bool = False) -> FrameReport:
        """
        Detect the board in a frame, optionally keeping its corners.

        Frames with fewer than min_corners corners are never accumulated.
        """
        detections, observation = detect_board_corners(frame, self.board)
        accepted = accumulate and is_usable(observation, self.min_corners)
        if accepted:
            self.solver.accumulate(observation)
        self.last_report = FrameReport(detections, observation, accepted)
        return self.last_report

    @property
    def observation_count(self) -> int:
        return self.solver.observation_count

    def solve(self, image_width: int, image_height: int) -> CalibrationResult:
        """
        Solve and adopt a new calibration.

        On InsufficientObservations the previous calibration stays active.
        """
        try:
            result = self.solver.solve(self.board, image_width, image_height)
        except InsufficientObservations:
            logger.warning("Solve requested with no accumulated frames")
            raise
        self.variant = DistortionModel(result=result)
        return result

    @property
    def persistence_error(self) -> PersistenceFailure | None:
        return self.solver.last_persistence_error

    def reset(self) -> None:
        self.solver.reset()

    def load_calibration(self) -> CalibrationVariant:
        """
        Load the persisted calibration and make it active.

        Raises:
            PersistenceFailure, DecodeError: Session state is left unchanged
        """
        if self.store is None:
            raise PersistenceFailure("No calibration store configured")
        try:
            variant = load_calibration(self.store, self.solver.resource)
        except (PersistenceFailure, DecodeError) as e:
            logger.error(f"Could not load calibration: {e}")
            raise
        self.variant = variant
        logger.info(f"Loaded {variant.tag} calibration")
        return variant

    # ------------------------------------------------------------------
    # Radial profile
    # ------------------------------------------------------------------

    def edit_profile(self, index: int, value: float) -> RadialProfile:
        """
        Replace one control point's factor.

        Raises:
            IndexError: If index is outside the current profile
        """
        self.profile = self.profile.with_factor(index, value)
        return self.profile

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def correct(self, frame: np.ndarray) -> np.ndarray:
        """Apply the active calibration, or the radial profile if none."""
        if self.variant is not None:
            return apply_calibration(self.variant, frame)
        return radial_remap(frame, self.profile)

    def correct_radial(self, frame: np.ndarray) -> np.ndarray:
        return radial_remap(frame, self.profile)

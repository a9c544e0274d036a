"""
Calibration module for lenscal.

Board description, detection and calibrate_intrinsics are pure functions.
CalibrationSolver holds one session's observations; caller handles threading.
"""

from .charuco import (
    ARUCO_DICTIONARIES,
    create_charuco_board,
    describe_board,
    get_charuco_object_points,
    get_dictionary,
    render_board,
)

from .detection import (
    detect_board_corners,
    detect_markers,
    draw_observation,
    interpolate_board_corners,
)

from .intrinsic import (
    MIN_CORNERS_PER_VIEW,
    CalibrationSolver,
    calibrate_intrinsics,
    compute_reprojection_error,
    is_usable,
)

__all__ = [
    # Target model
    "ARUCO_DICTIONARIES",
    "create_charuco_board",
    "describe_board",
    "get_charuco_object_points",
    "get_dictionary",
    "render_board",
    # Detection
    "detect_board_corners",
    "detect_markers",
    "draw_observation",
    "interpolate_board_corners",
    # Solver
    "MIN_CORNERS_PER_VIEW",
    "CalibrationSolver",
    "calibrate_intrinsics",
    "compute_reprojection_error",
    "is_usable",
]

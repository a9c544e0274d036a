"""
ChArUco target model: board description, OpenCV board and printable raster.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..types import FiducialBoard


# ============================================================================
# ArUco Dictionary Reference
# ============================================================================

ARUCO_DICTIONARIES = {
    "DICT_4X4_50": cv2.aruco.DICT_4X4_50,
    "DICT_4X4_100": cv2.aruco.DICT_4X4_100,
    "DICT_4X4_250": cv2.aruco.DICT_4X4_250,
    "DICT_4X4_1000": cv2.aruco.DICT_4X4_1000,
    "DICT_5X5_50": cv2.aruco.DICT_5X5_50,
    "DICT_5X5_100": cv2.aruco.DICT_5X5_100,
    "DICT_5X5_250": cv2.aruco.DICT_5X5_250,
    "DICT_5X5_1000": cv2.aruco.DICT_5X5_1000,
    "DICT_6X6_50": cv2.aruco.DICT_6X6_50,
    "DICT_6X6_100": cv2.aruco.DICT_6X6_100,
    "DICT_6X6_250": cv2.aruco.DICT_6X6_250,
    "DICT_6X6_1000": cv2.aruco.DICT_6X6_1000,
    "DICT_7X7_50": cv2.aruco.DICT_7X7_50,
    "DICT_7X7_100": cv2.aruco.DICT_7X7_100,
    "DICT_7X7_250": cv2.aruco.DICT_7X7_250,
    "DICT_7X7_1000": cv2.aruco.DICT_7X7_1000,
    "DICT_ARUCO_ORIGINAL": cv2.aruco.DICT_ARUCO_ORIGINAL,
    "DICT_APRILTAG_16h5": cv2.aruco.DICT_APRILTAG_16h5,
    "DICT_APRILTAG_25h9": cv2.aruco.DICT_APRILTAG_25h9,
    "DICT_APRILTAG_36h10": cv2.aruco.DICT_APRILTAG_36h10,
    "DICT_APRILTAG_36h11": cv2.aruco.DICT_APRILTAG_36h11,
}


# ============================================================================
# Board Description
# ============================================================================


def describe_board(
    columns: int,
    rows: int,
    marker_size_m: float,
    marker_spacing_m: float,
    dictionary: str = "DICT_4X4_50",
) -> FiducialBoard:
    """
    Validate board geometry and return a FiducialBoard.

    Args:
        columns: Number of checker squares across
        rows: Number of checker squares down
        marker_size_m: Printed marker edge length in meters
        marker_spacing_m: Checker square pitch in meters
        dictionary: Name of a predefined ArUco dictionary

    Returns:
        FiducialBoard

    Raises:
        ValueError: If the geometry is impossible or the dictionary is unknown
            or too small for the board
    """
    if columns < 2 or rows < 2:
        raise ValueError(f"Board needs at least 2x2 squares, got {columns}x{rows}")
    if marker_size_m <= 0 or marker_spacing_m <= 0:
        raise ValueError("Marker size and spacing must be positive")
    if marker_size_m >= marker_spacing_m:
        raise ValueError(
            f"Marker size {marker_size_m} must be smaller than spacing {marker_spacing_m}"
        )
    if dictionary not in ARUCO_DICTIONARIES:
        raise ValueError(f"Unknown ArUco dictionary: {dictionary}")

    board = FiducialBoard(
        columns=columns,
        rows=rows,
        marker_size_m=marker_size_m,
        marker_spacing_m=marker_spacing_m,
        dictionary=dictionary,
    )

    available = get_dictionary(board).bytesList.shape[0]
    if board.marker_count > available:
        raise ValueError(
            f"{dictionary} has {available} markers, board needs {board.marker_count}"
        )

    return board


def get_dictionary(board: FiducialBoard) -> cv2.aruco.Dictionary:
    """Predefined ArUco dictionary for a board."""
    return cv2.aruco.getPredefinedDictionary(ARUCO_DICTIONARIES[board.dictionary])


def create_charuco_board(board: FiducialBoard) -> cv2.aruco.CharucoBoard:
    """
    Create an OpenCV CharucoBoard from a board description.

    Args:
        board: FiducialBoard with board parameters

    Returns:
        cv2.aruco.CharucoBoard object
    """
    return cv2.aruco.CharucoBoard(
        size=(board.columns, board.rows),
        squareLength=board.marker_spacing_m,
        markerLength=board.marker_size_m,
        dictionary=get_dictionary(board),
    )


# ============================================================================
# Rendering
# ============================================================================


def render_board(
    board: FiducialBoard,
    pixel_size: int | tuple[int, int],
    margin: int = 0,
) -> np.ndarray:
    """
    Render a printable image of the board.

    Deterministic: the same board and size always give the same pixels.

    Args:
        board: FiducialBoard to draw
        pixel_size: Square edge in pixels, or (width, height)
        margin: White border in pixels around the board

    Returns:
        BGR image as numpy array
    """
    if isinstance(pixel_size, int):
        width, height = pixel_size, pixel_size
    else:
        width, height = pixel_size

    img = create_charuco_board(board).generateImage((width, height), marginSize=margin)

    # Convert to BGR if grayscale
    if len(img.shape) == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)

    return img


def get_charuco_object_points(board: FiducialBoard) -> np.ndarray:
    """
    Get the 3D object points for all internal corners on the board.

    Returns:
        (corner_count, 3) array of corner positions in board frame
    """
    return np.asarray(create_charuco_board(board).getChessboardCorners()).reshape(-1, 3)

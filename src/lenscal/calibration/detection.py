"""
ChArUco correspondence detection.

Pure functions - no threading, no state. Caller decides which frames
are good enough to accumulate.
"""

from __future__ import annotations

import cv2
import numpy as np

import lenscal.logger

from ..types import CornerObservation, FiducialBoard, MarkerDetections, empty_observation
from .charuco import create_charuco_board, get_dictionary

logger = lenscal.logger.get(__name__)


# ============================================================================
# Marker Detection
# ============================================================================


def _to_gray(frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 2:
        return frame
    return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)


def detect_markers(frame: np.ndarray, board: FiducialBoard) -> MarkerDetections:
    """
    Find the board's ArUco markers in a frame.

    Results are held in buffers sized to the board's square count; finding
    nothing is a normal outcome and returns an empty detection.

    Args:
        frame: BGR image (h, w, 3) or grayscale (h, w)
        board: FiducialBoard being searched for

    Returns:
        MarkerDetections with quads ordered as returned by the detector
    """
    capacity = board.marker_capacity
    corners_buf = np.zeros((capacity, 4, 2), dtype=np.float32)
    ids_buf = np.zeros(capacity, dtype=np.int32)

    detector = cv2.aruco.ArucoDetector(get_dictionary(board), cv2.aruco.DetectorParameters())
    marker_corners, marker_ids, _ = detector.detectMarkers(_to_gray(frame))
    # id layout differs between OpenCV releases: (n, 1) or (n,)
    if marker_ids is None:
        ids_flat = np.empty(0, dtype=np.int32)
    else:
        ids_flat = np.asarray(marker_ids).reshape(-1)

    found = len(ids_flat)
    if found > capacity:
        logger.warning(f"Detected {found} markers, keeping first {capacity}")
        found = capacity

    for i in range(found):
        corners_buf[i] = np.asarray(marker_corners[i]).reshape(4, 2)
        ids_buf[i] = ids_flat[i]

    return MarkerDetections(
        corners=corners_buf[:found].copy(),
        ids=ids_buf[:found].copy(),
        capacity=capacity,
    )


# ============================================================================
# Corner Interpolation
# ============================================================================


def interpolate_board_corners(
    detections: MarkerDetections,
    frame: np.ndarray,
    board: FiducialBoard,
) -> CornerObservation:
    """
    Interpolate internal chessboard corners from detected markers.

    Returns an empty observation (count 0) when there are no markers or
    interpolation finds nothing. Callers treat that as "reject this frame".

    Args:
        detections: Markers from detect_markers on the same frame
        frame: BGR image the markers were found in
        board: FiducialBoard being searched for

    Returns:
        CornerObservation with image and board coordinates
    """
    if detections.count == 0:
        return empty_observation()

    cv_board = create_charuco_board(board)
    charuco_detector = cv2.aruco.CharucoDetector(cv_board)

    marker_corners = tuple(quad.reshape(1, 4, 2) for quad in detections.corners)
    marker_ids = detections.ids.reshape(-1, 1)

    img_loc, ids, _, _ = charuco_detector.detectBoard(
        _to_gray(frame),
        markerCorners=marker_corners,
        markerIds=marker_ids,
    )

    if ids is None or img_loc is None or len(ids) == 0:
        return empty_observation()

    ids_flat = np.asarray(ids).reshape(-1).astype(np.int32)
    img_loc_flat = np.asarray(img_loc).reshape(-1, 2).astype(np.float32)
    obj_loc = np.asarray(cv_board.getChessboardCorners()).reshape(-1, 3)[ids_flat]

    return CornerObservation(
        corner_ids=ids_flat,
        img_loc=img_loc_flat,
        obj_loc=obj_loc.astype(np.float32),
    )


def detect_board_corners(
    frame: np.ndarray,
    board: FiducialBoard,
) -> tuple[MarkerDetections, CornerObservation]:
    """Detect markers and interpolate corners in one step."""
    detections = detect_markers(frame, board)
    observation = interpolate_board_corners(detections, frame, board)
    logger.debug(f"Found {detections.count} markers, {observation.count} corners")
    return detections, observation


# ============================================================================
# Debug Overlay
# ============================================================================


def draw_observation(
    frame: np.ndarray,
    observation: CornerObservation,
    detections: MarkerDetections | None = None,
) -> np.ndarray:
    """
    Draw detected markers and corners onto a copy of the frame.

    For display only; the solver never consumes the output.
    """
    canvas = frame.copy()
    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)

    if detections is not None and detections.count > 0:
        cv2.aruco.drawDetectedMarkers(
            canvas,
            tuple(quad.reshape(1, 4, 2) for quad in detections.corners),
            detections.ids.reshape(-1, 1),
        )

    if not observation.is_empty:
        cv2.aruco.drawDetectedCornersCharuco(
            canvas,
            observation.img_loc.reshape(-1, 1, 2),
            observation.corner_ids.reshape(-1, 1),
            (0, 0, 255),
        )

    return canvas

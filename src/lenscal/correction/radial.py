"""
Interactive radial remap.

A forward warp: every source pixel is pushed to its corrected position,
so destinations can be left empty (holes) or written more than once. No
blending happens; the last source pixel in raster order wins.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from ..errors import CorrectionNotImplemented
from ..types import RadialProfile

# Destination buffer fill before scattering
UNSET_COLOR = (0, 0, 0)
# Destination pixels no source pixel landed on
HOLE_COLOR = (255, 0, 255)


class Interpolation(Enum):
    NEAREST = "nearest"
    LINEAR = "linear"


def round_half_away(values: np.ndarray) -> np.ndarray:
    """Round to nearest integer, ties away from zero."""
    return (np.sign(values) * np.floor(np.abs(values) + 0.5)).astype(np.int64)


def forward_map(
    width: int,
    height: int,
    profile: RadialProfile,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Destination coordinates of every source pixel under a radial profile.

    The radius is normalised by the centre-to-corner distance so r is 1 at
    the image corners.

    Returns:
        (dest_x, dest_y) float arrays of shape (height, width)
    """
    cx = (width - 1) / 2.0
    cy = (height - 1) / 2.0
    corner_distance = np.hypot(cx, cy)

    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    dx = xs - cx
    dy = ys - cy

    if corner_distance > 0:
        r = np.hypot(dx, dy) / corner_distance
    else:
        r = np.zeros_like(dx)

    scale = 1.0 + profile.sample(r)
    return cx + dx * scale, cy + dy * scale


def radial_remap(
    frame: np.ndarray,
    profile: RadialProfile,
    interpolation: Interpolation = Interpolation.NEAREST,
) -> np.ndarray:
    """
    Apply a radial profile to a frame by forward warping.

    Args:
        frame: (h, w, 3) image
        profile: Correction curve; a factor of 0 leaves a radius unchanged
        interpolation: Only NEAREST is available

    Returns:
        New (h, w, 3) image; unwritten pixels hold HOLE_COLOR

    Raises:
        CorrectionNotImplemented: For Interpolation.LINEAR
    """
    if interpolation is Interpolation.LINEAR:
        raise CorrectionNotImplemented("Linear interpolation radial remap is not implemented")
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected (h, w, 3) frame, got {frame.shape}")

    height, width = frame.shape[:2]
    dest_x, dest_y = forward_map(width, height, profile)
    dest_x = round_half_away(dest_x).ravel()
    dest_y = round_half_away(dest_y).ravel()

    inside = (dest_x >= 0) & (dest_x < width) & (dest_y >= 0) & (dest_y < height)
    src_index = np.flatnonzero(inside)
    dest_index = dest_y[inside] * width + dest_x[inside]

    # Keep only the last writer for each destination (raster order)
    reversed_dest = dest_index[::-1]
    unique_dest, first_in_reversed = np.unique(reversed_dest, return_index=True)
    winners = src_index[::-1][first_in_reversed]

    source = frame.reshape(-1, 3)
    out = np.empty_like(source)
    out[:] = UNSET_COLOR
    written = np.zeros(width * height, dtype=bool)

    out[unique_dest] = source[winners]
    written[unique_dest] = True
    out[~written] = HOLE_COLOR

    return out.reshape(height, width, 3)

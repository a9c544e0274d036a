"""
Configuration loading/saving and calibration persistence.

Pure functions operating on dataclasses.
- TOML for project configuration
- TOML-encoded tagged documents for persisted calibrations, written
  through a byte store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np
import rtoml

import lenscal.logger

from .errors import DecodeError, PersistenceFailure
from .types import (
    VARIANT_TYPES,
    CalibrationResult,
    CalibrationVariant,
    DistortionModel,
    FiducialBoard,
    RadialProfile,
)

logger = lenscal.logger.get(__name__)

DEFAULT_CALIBRATION_FILE = "camera_calibration.toml"
DEFAULT_BOARD_IMAGE = "charuco_board.png"
FORMAT_VERSION = 1
DEFAULT_EPSILON = float(np.finfo(np.float64).eps)


# ============================================================================
# Configuration Types
# ============================================================================


@dataclass(frozen=True, slots=True)
class CaptureConfig:
    frame_queue_size: int = 4
    command_queue_size: int = 32
    max_consecutive_failures: int = 3  # Stop probing after this many misses
    max_probe_index: int = 16


@dataclass(frozen=True, slots=True)
class SolverConfig:
    min_corners: int = 6  # Frames with fewer corners are not accumulated
    max_iterations: int = 30
    epsilon: float = DEFAULT_EPSILON


@dataclass(frozen=True, slots=True)
class PathsConfig:
    calibration_file: str = DEFAULT_CALIBRATION_FILE
    board_image: str = DEFAULT_BOARD_IMAGE


@dataclass(frozen=True, slots=True)
class LensCalConfig:
    """
    Complete project configuration.
    Loaded from a TOML file in the working directory.
    """

    board: FiducialBoard
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    profile: RadialProfile = field(default_factory=RadialProfile.flat)
    log_level: str = "INFO"


# ============================================================================
# TOML Project Configuration
# ============================================================================


def create_default_config() -> LensCalConfig:
    """
    Create a default configuration: 10x10 board, 2cm markers on a 4cm pitch.
    """
    board = FiducialBoard(
        columns=10,
        rows=10,
        marker_size_m=0.02,
        marker_spacing_m=0.04,
    )
    return LensCalConfig(board=board)


def load_config(path: Path) -> LensCalConfig:
    """
    Load configuration from TOML file.

    Missing sections fall back to defaults.

    Args:
        path: Path to lenscal.toml file

    Returns:
        LensCalConfig dataclass
    """
    data = rtoml.load(path)
    defaults = create_default_config()

    board_data = data.get("board", {})
    board = FiducialBoard(
        columns=board_data.get("columns", defaults.board.columns),
        rows=board_data.get("rows", defaults.board.rows),
        marker_size_m=board_data.get("marker_size_m", defaults.board.marker_size_m),
        marker_spacing_m=board_data.get("marker_spacing_m", defaults.board.marker_spacing_m),
        dictionary=board_data.get("dictionary", defaults.board.dictionary),
    )

    capture_data = data.get("capture", {})
    capture = CaptureConfig(
        frame_queue_size=capture_data.get("frame_queue_size", 4),
        command_queue_size=capture_data.get("command_queue_size", 32),
        max_consecutive_failures=capture_data.get("max_consecutive_failures", 3),
        max_probe_index=capture_data.get("max_probe_index", 16),
    )

    solver_data = data.get("solver", {})
    solver = SolverConfig(
        min_corners=solver_data.get("min_corners", 6),
        max_iterations=solver_data.get("max_iterations", 30),
        epsilon=solver_data.get("epsilon", DEFAULT_EPSILON),
    )

    paths_data = data.get("paths", {})
    paths = PathsConfig(
        calibration_file=paths_data.get("calibration_file", DEFAULT_CALIBRATION_FILE),
        board_image=paths_data.get("board_image", DEFAULT_BOARD_IMAGE),
    )

    profile_data = data.get("profile", {})
    if "control_points" in profile_data:
        profile = RadialProfile.from_points(profile_data["control_points"])
    else:
        profile = RadialProfile.flat()

    return LensCalConfig(
        board=board,
        capture=capture,
        solver=solver,
        paths=paths,
        profile=profile,
        log_level=data.get("log_level", "INFO"),
    )


def save_config(config: LensCalConfig, path: Path) -> None:
    """
    Save configuration to TOML file.

    Args:
        config: LensCalConfig dataclass
        path: Path to save lenscal.toml
    """
    data = {
        "log_level": config.log_level,
        "board": {
            "columns": config.board.columns,
            "rows": config.board.rows,
            "marker_size_m": config.board.marker_size_m,
            "marker_spacing_m": config.board.marker_spacing_m,
            "dictionary": config.board.dictionary,
        },
        "capture": {
            "frame_queue_size": config.capture.frame_queue_size,
            "command_queue_size": config.capture.command_queue_size,
            "max_consecutive_failures": config.capture.max_consecutive_failures,
            "max_probe_index": config.capture.max_probe_index,
        },
        "solver": {
            "min_corners": config.solver.min_corners,
            "max_iterations": config.solver.max_iterations,
            "epsilon": config.solver.epsilon,
        },
        "paths": {
            "calibration_file": config.paths.calibration_file,
            "board_image": config.paths.board_image,
        },
        "profile": {
            "control_points": [list(p) for p in config.profile.points],
        },
    }

    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(data, f)


# ============================================================================
# Calibration Serialization
# ============================================================================


def serialize_variant(variant: CalibrationVariant) -> bytes:
    """
    Encode a calibration variant as a tagged TOML document.

    Args:
        variant: DistortionModel (the only variant today)

    Returns:
        UTF-8 bytes
    """
    if isinstance(variant, DistortionModel):
        result = variant.result
        matrix = np.asarray(result.matrix, dtype=np.float64)
        distortion = np.asarray(result.distortion, dtype=np.float64)
        data = {
            "variant": DistortionModel.tag,
            "format_version": FORMAT_VERSION,
            "camera_matrix": {
                "rows": matrix.shape[0],
                "cols": matrix.shape[1],
                "values": matrix.ravel().tolist(),
            },
            "distortion": {
                "length": len(distortion),
                "values": distortion.tolist(),
            },
            "metadata": {
                "image_size": list(result.image_size),
                "rms_error": float(result.rms_error),
                "view_count": int(result.view_count),
            },
        }
    else:
        raise TypeError(f"Cannot serialize calibration variant {type(variant).__name__}")

    return rtoml.dumps(data).encode("utf-8")


def deserialize_variant(data: bytes) -> CalibrationVariant:
    """
    Decode bytes written by serialize_variant.

    Raises:
        DecodeError: On malformed TOML, unknown tags, missing fields or
            dimension mismatches
    """
    try:
        doc = rtoml.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, rtoml.TomlParsingError) as e:
        raise DecodeError(f"Calibration data is not valid TOML: {e}") from e

    tag = doc.get("variant")
    if not isinstance(tag, str) or tag not in VARIANT_TYPES:
        raise DecodeError(f"Unknown calibration variant tag: {tag!r}")

    try:
        if tag == DistortionModel.tag:
            return DistortionModel(result=_decode_result(doc))
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed {tag} calibration: {e}") from e

    raise DecodeError(f"No decoder for calibration variant tag: {tag!r}")


def _table(doc: dict, key: str, required: bool = True) -> dict:
    value = doc[key] if required else doc.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be a table, got {type(value).__name__}")
    return value


def _decode_result(doc: dict) -> CalibrationResult:
    mat = _table(doc, "camera_matrix")
    rows, cols = int(mat["rows"]), int(mat["cols"])
    values = np.array(mat["values"], dtype=np.float64)
    if (rows, cols) != (3, 3) or values.size != rows * cols:
        raise ValueError(f"camera matrix must hold 3x3 values, got {rows}x{cols}/{values.size}")

    dist = _table(doc, "distortion")
    distortion = np.array(dist["values"], dtype=np.float64)
    if distortion.size != int(dist["length"]):
        raise ValueError(
            f"distortion length {dist['length']} does not match {distortion.size} values"
        )

    meta = _table(doc, "metadata", required=False)
    width, height = meta.get("image_size", [0, 0])

    return CalibrationResult(
        matrix=values.reshape(rows, cols),
        distortion=distortion,
        image_size=(int(width), int(height)),
        rms_error=float(meta.get("rms_error", 0.0)),
        view_count=int(meta.get("view_count", 0)),
    )


# ============================================================================
# Byte Stores
# ============================================================================


class CalibrationStore(Protocol):
    """Stores opaque bytes under a name."""

    def write_bytes(self, name: str, data: bytes) -> None: ...

    def read_bytes(self, name: str) -> bytes: ...


class FileStore:
    """
    Byte store rooted at a directory; names are relative paths.
    """

    def __init__(self, root: Path = Path(".")):
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        return self.root / name

    def write_bytes(self, name: str, data: bytes) -> None:
        path = self._path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceFailure(f"Could not write {path}: {e}") from e
        logger.info(f"Wrote {len(data)} bytes to {path}")

    def read_bytes(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Could not read {path}: {e}") from e


def save_calibration(
    variant: CalibrationVariant,
    store: CalibrationStore,
    name: str = DEFAULT_CALIBRATION_FILE,
) -> None:
    """
    Persist a calibration variant.

    Raises:
        PersistenceFailure: If the store cannot write
    """
    store.write_bytes(name, serialize_variant(variant))


def load_calibration(
    store: CalibrationStore,
    name: str = DEFAULT_CALIBRATION_FILE,
) -> CalibrationVariant:
    """
    Load a persisted calibration variant.

    Raises:
        PersistenceFailure: If the store cannot read
        DecodeError: If the stored bytes are not a known calibration
    """
    return deserialize_variant(store.read_bytes(name))

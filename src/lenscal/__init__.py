# lenscal - lens calibration and radial correction

__version__ = "0.1.0"

# Core types
from lenscal.types import (
    CalibrationResult,
    CalibrationVariant,
    CornerObservation,
    DistortionModel,
    FiducialBoard,
    MarkerDetections,
    RadialProfile,
)

# Errors
from lenscal.errors import (
    CorrectionNotImplemented,
    DecodeError,
    DetectionEmpty,
    DeviceUnavailable,
    InsufficientObservations,
    LensCalError,
    PersistenceFailure,
)

# Configuration and persistence
from lenscal.config import (
    FileStore,
    LensCalConfig,
    create_default_config,
    deserialize_variant,
    load_calibration,
    load_config,
    save_calibration,
    save_config,
    serialize_variant,
)

# Calibration
from lenscal.calibration import (
    CalibrationSolver,
    describe_board,
    detect_markers,
    interpolate_board_corners,
    render_board,
)

# Correction
from lenscal.correction import (
    Interpolation,
    apply_calibration,
    correct,
    radial_remap,
    undistort,
)

# Capture
from lenscal.capture import (
    CaptureWorker,
    Close,
    FrameAvailable,
    Open,
    RegisterDevice,
    Shutdown,
    discover_devices,
)

from lenscal.session import CalibrationSession

__all__ = [
    # Core types
    "CalibrationResult",
    "CalibrationVariant",
    "CornerObservation",
    "DistortionModel",
    "FiducialBoard",
    "MarkerDetections",
    "RadialProfile",
    # Errors
    "CorrectionNotImplemented",
    "DecodeError",
    "DetectionEmpty",
    "DeviceUnavailable",
    "InsufficientObservations",
    "LensCalError",
    "PersistenceFailure",
    # Configuration
    "FileStore",
    "LensCalConfig",
    "create_default_config",
    "deserialize_variant",
    "load_calibration",
    "load_config",
    "save_calibration",
    "save_config",
    "serialize_variant",
    # Calibration
    "CalibrationSolver",
    "describe_board",
    "detect_markers",
    "interpolate_board_corners",
    "render_board",
    # Correction
    "Interpolation",
    "apply_calibration",
    "correct",
    "radial_remap",
    "undistort",
    # Capture
    "CaptureWorker",
    "Close",
    "FrameAvailable",
    "Open",
    "RegisterDevice",
    "Shutdown",
    "discover_devices",
    # Session
    "CalibrationSession",
]

"""
Error taxonomy for lenscal.

Capture and detection failures are absorbed where they happen (the frame
or device is skipped). Solver, persistence and decode failures are raised
to the caller.
"""


class LensCalError(Exception):
    """Base class for all lenscal errors."""


class DeviceUnavailable(LensCalError):
    """A capture device could not be opened."""

    def __init__(self, device_id, reason: str = "open failed"):
        super().__init__(f"Device {device_id} unavailable: {reason}")
        self.device_id = device_id


class DetectionEmpty(LensCalError, ValueError):
    """An observation with no corners was handed to something that needs them."""


class InsufficientObservations(LensCalError, ValueError):
    """A solve was attempted without enough accumulated frames."""


class PersistenceFailure(LensCalError, OSError):
    """Reading or writing a persisted calibration failed."""


class DecodeError(LensCalError, ValueError):
    """Persisted calibration data is corrupt or uses an unknown tag."""


class CorrectionNotImplemented(LensCalError, NotImplementedError):
    """A correction mode that is declared but not available."""

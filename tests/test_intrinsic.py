"""
Tests for lenscal.calibration.intrinsic.
"""

import numpy as np
import pytest

from lenscal.calibration.intrinsic import (
    MIN_CORNERS_PER_VIEW,
    CalibrationSolver,
    calibrate_intrinsics,
    compute_reprojection_error,
    is_usable,
)
from lenscal.config import FileStore, load_calibration
from lenscal.errors import DetectionEmpty, InsufficientObservations, PersistenceFailure
from lenscal.types import CornerObservation, DistortionModel, empty_observation


class BrokenStore:
    def write_bytes(self, name, data):
        raise PersistenceFailure(f"disk full writing {name}")

    def read_bytes(self, name):
        raise PersistenceFailure(f"cannot read {name}")


def _tiny_observation(n):
    return CornerObservation(
        corner_ids=np.arange(n, dtype=np.int32),
        img_loc=np.zeros((n, 2), dtype=np.float32),
        obj_loc=np.zeros((n, 3), dtype=np.float32),
    )


class TestIsUsable:
    def test_threshold(self):
        assert not is_usable(_tiny_observation(MIN_CORNERS_PER_VIEW - 1))
        assert is_usable(_tiny_observation(MIN_CORNERS_PER_VIEW))

    def test_caller_threshold_never_below_minimum(self):
        assert not is_usable(_tiny_observation(3), min_corners=1)

    def test_caller_threshold(self):
        assert not is_usable(_tiny_observation(5), min_corners=6)


class TestCalibrateIntrinsics:
    def test_requires_observations(self):
        with pytest.raises(InsufficientObservations):
            calibrate_intrinsics([], (640, 480))

    def test_rejects_sparse_observation(self, synthetic_observations):
        with pytest.raises(ValueError, match="at least"):
            calibrate_intrinsics(synthetic_observations + [_tiny_observation(2)], (640, 480))

    def test_recovers_known_camera(self, synthetic_observations, sample_intrinsics_matrix):
        result = calibrate_intrinsics(synthetic_observations, (640, 480))

        assert result.matrix.shape == (3, 3)
        assert result.distortion.shape[0] >= 5
        assert result.image_size == (640, 480)
        assert result.view_count == len(synthetic_observations)
        assert result.rms_error < 0.05

        np.testing.assert_allclose(
            result.matrix, sample_intrinsics_matrix, rtol=0.01, atol=2.0
        )

    def test_deterministic(self, synthetic_observations):
        a = calibrate_intrinsics(synthetic_observations, (640, 480))
        b = calibrate_intrinsics(synthetic_observations, (640, 480))
        np.testing.assert_array_equal(a.matrix, b.matrix)
        np.testing.assert_array_equal(a.distortion, b.distortion)


class TestReprojectionError:
    def test_small_for_solved_views(self, synthetic_observations):
        result = calibrate_intrinsics(synthetic_observations, (640, 480))
        error = compute_reprojection_error(synthetic_observations[1], result)
        assert error is not None
        assert error < 0.05

    def test_none_for_empty(self, sample_result):
        assert compute_reprojection_error(empty_observation(), sample_result) is None


class TestCalibrationSolver:
    def test_solve_without_observations(self, sample_board):
        solver = CalibrationSolver()
        with pytest.raises(InsufficientObservations):
            solver.solve(sample_board, 640, 480)

    def test_accumulate_rejects_empty(self):
        solver = CalibrationSolver()
        with pytest.raises(DetectionEmpty):
            solver.accumulate(empty_observation())
        assert solver.observation_count == 0

    def test_accumulate_and_reset(self, synthetic_observations):
        solver = CalibrationSolver()
        for obs in synthetic_observations:
            solver.accumulate(obs)
        assert solver.observation_count == len(synthetic_observations)

        solver.reset()
        assert solver.observation_count == 0

    def test_solve_persists_result(self, sample_board, synthetic_observations, temp_dir):
        store = FileStore(temp_dir)
        solver = CalibrationSolver(store=store, resource="calib.toml")
        for obs in synthetic_observations:
            solver.accumulate(obs)

        result = solver.solve(sample_board, 640, 480)

        assert (temp_dir / "calib.toml").exists()
        assert solver.last_persistence_error is None
        loaded = load_calibration(store, "calib.toml")
        assert isinstance(loaded, DistortionModel)
        np.testing.assert_allclose(loaded.result.matrix, result.matrix, atol=1e-9)
        np.testing.assert_allclose(loaded.result.distortion, result.distortion, atol=1e-9)

    def test_persistence_failure_keeps_result(self, sample_board, synthetic_observations):
        solver = CalibrationSolver(store=BrokenStore())
        for obs in synthetic_observations:
            solver.accumulate(obs)

        result = solver.solve(sample_board, 640, 480)

        assert result.matrix.shape == (3, 3)
        assert isinstance(solver.last_persistence_error, PersistenceFailure)

    def test_iteration_settings_are_used(self, sample_board, synthetic_observations):
        solver = CalibrationSolver(max_iterations=1, epsilon=1e-300)
        for obs in synthetic_observations:
            solver.accumulate(obs)

        capped = solver.solve(sample_board, 640, 480)
        full = calibrate_intrinsics(synthetic_observations, (640, 480))

        assert capped.rms_error >= full.rms_error

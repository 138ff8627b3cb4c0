"""Tests for camera intrinsics persistence."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import numpy as np
import pytest
from fiducial_locator.core.exceptions import CalibrationError
from fiducial_locator.core.types import CameraIntrinsics
from fiducial_locator.vision.calibration import (
    focal_length_pixels,
    load_intrinsics,
    load_intrinsics_or_default,
    save_intrinsics,
)


class TestIntrinsicsFiles:
    """Tests for saving and loading intrinsics."""

    def test_save_and_load(self, intrinsics: CameraIntrinsics) -> None:
        """Saved intrinsics load back unchanged."""
        intrinsics.dist_coeffs = np.array([0.1, -0.05, 0.001, 0.002, 0.0])

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "camera" / "intrinsics.json"

            save_intrinsics(intrinsics, path)
            assert path.exists()

            loaded = load_intrinsics(path)

        assert loaded.calibrated
        np.testing.assert_allclose(loaded.camera_matrix, intrinsics.camera_matrix)
        np.testing.assert_allclose(loaded.dist_coeffs, intrinsics.dist_coeffs)

    def test_missing_distortion_is_empty(self) -> None:
        """Files without distortion give an empty vector that solvers see as zeros."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "intrinsics.json"
            path.write_text(json.dumps({"camera_matrix": np.eye(3).tolist()}))

            loaded = load_intrinsics(path)

        assert loaded.dist_coeffs.size == 0
        np.testing.assert_array_equal(loaded.distortion, np.zeros((5, 1)))

    def test_cannot_save_placeholder(self) -> None:
        """Uncalibrated intrinsics are not written."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(CalibrationError):
                save_intrinsics(CameraIntrinsics.uncalibrated(), Path(tmpdir) / "x.json")

    def test_load_missing_file(self) -> None:
        """A missing file is a calibration error."""
        with pytest.raises(CalibrationError):
            load_intrinsics(Path("/nonexistent/intrinsics.json"))

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            json.dumps({"dist_coeffs": [0, 0, 0, 0, 0]}),
            json.dumps({"camera_matrix": [[1, 0], [0, 1]]}),
            '{"camera_matrix": [[NaN, 0, 0], [0, 1, 0], [0, 0, 1]]}',
        ],
    )
    def test_load_invalid_file(self, content: str) -> None:
        """Malformed files are rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "intrinsics.json"
            path.write_text(content)

            with pytest.raises(CalibrationError):
                load_intrinsics(path)


class TestLoadIntrinsicsOrDefault:
    """Tests for degrading to an uncalibrated camera."""

    def test_no_path(self) -> None:
        """No configured file gives identity intrinsics."""
        intrinsics = load_intrinsics_or_default(None)

        assert not intrinsics.calibrated
        np.testing.assert_array_equal(intrinsics.camera_matrix, np.eye(3))

    def test_unreadable_file(self) -> None:
        """A broken file degrades instead of raising."""
        intrinsics = load_intrinsics_or_default(Path("/nonexistent/intrinsics.json"))

        assert not intrinsics.calibrated


class TestFocalLengthPixels:
    """Tests for lens focal length conversion."""

    def test_conversion(self) -> None:
        """f_px = f_mm * width_px / sensor_width_mm."""
        assert focal_length_pixels(4.0, 6.4, 1920) == pytest.approx(1200.0)

    @pytest.mark.parametrize("args", [(0.0, 6.4, 1920), (4.0, -1.0, 1920), (4.0, 6.4, 0)])
    def test_rejects_non_positive(self, args: tuple[float, float, int]) -> None:
        """Every parameter must be positive."""
        with pytest.raises(CalibrationError):
            focal_length_pixels(*args)

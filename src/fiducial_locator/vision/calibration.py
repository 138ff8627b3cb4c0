"""Camera intrinsics persistence.

Intrinsics are produced by an external calibration procedure; this module
only reads and writes them.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from fiducial_locator.core.exceptions import CalibrationError
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.types import CameraIntrinsics

logger = get_logger(__name__)


def save_intrinsics(intrinsics: CameraIntrinsics, path: Path) -> None:
    """Save camera intrinsics to file.

    Args:
        intrinsics: Intrinsics to save
        path: Output file path (JSON)

    Raises:
        CalibrationError: If the intrinsics are placeholder values
    """
    if not intrinsics.calibrated:
        raise CalibrationError("No calibration to save")

    data = {
        "camera_matrix": np.asarray(intrinsics.camera_matrix, dtype=np.float64).tolist(),
        "dist_coeffs": np.asarray(intrinsics.dist_coeffs, dtype=np.float64).ravel().tolist(),
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    logger.info("Saved camera intrinsics to %s", path)


def load_intrinsics(path: Path) -> CameraIntrinsics:
    """Load camera intrinsics from file.

    Args:
        path: Input file path (JSON)

    Returns:
        Loaded CameraIntrinsics

    Raises:
        CalibrationError: If file invalid or not found
    """
    try:
        with open(path) as f:
            data = json.load(f)

        camera_matrix = np.array(data["camera_matrix"], dtype=np.float64)
        dist_coeffs = np.array(data.get("dist_coeffs", []), dtype=np.float64).ravel()
    except Exception as e:
        raise CalibrationError(f"Failed to load intrinsics: {e}") from e

    if camera_matrix.shape != (3, 3):
        raise CalibrationError(f"Camera matrix must be 3x3, got {camera_matrix.shape}")
    if not np.all(np.isfinite(camera_matrix)) or not np.all(np.isfinite(dist_coeffs)):
        raise CalibrationError("Camera intrinsics contain non-finite values")

    logger.info("Loaded camera intrinsics from %s", path)
    return CameraIntrinsics(camera_matrix=camera_matrix, dist_coeffs=dist_coeffs)


def load_intrinsics_or_default(path: Path | None) -> CameraIntrinsics:
    """Load intrinsics, degrading to an uncalibrated camera on failure.

    Args:
        path: Input file path (JSON), or None when no calibration is configured

    Returns:
        Loaded intrinsics, or identity intrinsics if none could be loaded
    """
    if path is not None:
        try:
            return load_intrinsics(path)
        except CalibrationError as e:
            logger.warning("%s", e)

    logger.warning("No camera calibration available, pose estimates will be degraded")
    return CameraIntrinsics.uncalibrated()


def focal_length_pixels(
    focal_length_mm: float,
    sensor_width_mm: float,
    image_width_px: int,
) -> float:
    """Convert a lens focal length to pixels.

    Args:
        focal_length_mm: Physical focal length
        sensor_width_mm: Physical sensor width
        image_width_px: Frame width in pixels

    Returns:
        Focal length in pixels

    Raises:
        CalibrationError: If any input is not positive
    """
    if focal_length_mm <= 0 or sensor_width_mm <= 0 or image_width_px <= 0:
        raise CalibrationError("Focal parameters must be positive")

    return focal_length_mm * image_width_px / sensor_width_mm

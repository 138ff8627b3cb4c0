"""Pytest fixtures for Fiducial Locator tests."""

from __future__ import annotations

from collections.abc import Callable

import cv2
import numpy as np
import pytest

from fiducial_locator.core.config import (
    DetectorSettings,
    FilterSettings,
    FusionSettings,
    PoseSettings,
    Settings,
)
from fiducial_locator.core.types import (
    CameraIntrinsics,
    DetectedMarker,
    MarkerDefinition,
    MarkerPosition,
    MarkerRotation,
    WorldPositionEstimate,
)
from fiducial_locator.vision.pose import marker_object_points
from fiducial_locator.vision.rotation import rotation_from_degrees

# Camera looking down at the floor, tilted 25 degrees about world X towards +Y
_TILT = np.radians(25.0)
TILTED_DOWN = np.array(
    [
        [1.0, 0.0, 0.0],
        [0.0, -np.cos(_TILT), np.sin(_TILT)],
        [0.0, -np.sin(_TILT), -np.cos(_TILT)],
    ]
)

CAMERA_CENTRE = np.array([0.15, -0.45, 1.2])


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run every test away from any local .env file."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def intrinsics() -> CameraIntrinsics:
    """Distortion-free 640x480 camera with an 800 px focal length."""
    camera_matrix = np.array(
        [
            [800.0, 0.0, 320.0],
            [0.0, 800.0, 240.0],
            [0.0, 0.0, 1.0],
        ]
    )
    return CameraIntrinsics(camera_matrix=camera_matrix, dist_coeffs=np.zeros(5))


@pytest.fixture
def floor_markers() -> list[MarkerDefinition]:
    """Three 10 cm markers lying face up on the floor."""
    return [
        MarkerDefinition(id=1, size=0.1, position=MarkerPosition(0.0, 0.0, 0.0)),
        MarkerDefinition(id=2, size=0.1, position=MarkerPosition(0.3, 0.0, 0.0)),
        MarkerDefinition(id=3, size=0.1, position=MarkerPosition(0.0, 0.3, 0.0)),
    ]


@pytest.fixture
def wall_marker() -> MarkerDefinition:
    """A marker on a wall, facing +X."""
    return MarkerDefinition(
        id=27,
        size=0.1,
        position=MarkerPosition(0.0, 0.5, 1.5),
        rotation=MarkerRotation(roll=90.0, pitch=0.0, yaw=90.0),
    )


@pytest.fixture
def project_marker(
    intrinsics: CameraIntrinsics,
) -> Callable[[MarkerDefinition, np.ndarray, np.ndarray], np.ndarray]:
    """Render a marker's corners for a camera at a known world pose.

    The returned callable takes the marker definition, the camera rotation
    (camera axes as columns, in world coordinates) and the camera centre.
    """

    def _project(
        definition: MarkerDefinition,
        camera_rotation: np.ndarray = TILTED_DOWN,
        camera_centre: np.ndarray = CAMERA_CENTRE,
    ) -> np.ndarray:
        marker_rotation = rotation_from_degrees(definition.rotation)
        marker_position = np.array(
            [definition.position.x, definition.position.y, definition.position.z]
        )

        rotation = camera_rotation.T @ marker_rotation
        translation = camera_rotation.T @ (marker_position - camera_centre)
        rvec, _ = cv2.Rodrigues(rotation)

        corners, _ = cv2.projectPoints(
            marker_object_points(definition.size),
            rvec,
            translation.reshape(3, 1),
            intrinsics.camera_matrix,
            intrinsics.distortion,
        )
        return corners.reshape(4, 2)

    return _project


@pytest.fixture
def floor_detections(
    floor_markers: list[MarkerDefinition],
    project_marker: Callable[..., np.ndarray],
) -> list[DetectedMarker]:
    """Detections of every floor marker from the default camera pose."""
    return [
        DetectedMarker(marker_id=definition.id, corners=project_marker(definition))
        for definition in floor_markers
    ]


@pytest.fixture
def triangle_estimates() -> list[WorldPositionEstimate]:
    """Three estimates 0.25 apart from each other."""
    return [
        WorldPositionEstimate(marker_id=1, x=0.0, y=0.0, z=1.0, distance=1.0),
        WorldPositionEstimate(marker_id=2, x=0.25, y=0.0, z=1.0, distance=1.0),
        WorldPositionEstimate(marker_id=3, x=0.125, y=0.2165063509, z=1.0, distance=1.0),
    ]


@pytest.fixture
def outlier_estimates() -> list[WorldPositionEstimate]:
    """Two agreeing estimates and one far outlier."""
    return [
        WorldPositionEstimate(marker_id=1, x=0.0, y=0.0, z=0.0, distance=1.0),
        WorldPositionEstimate(marker_id=2, x=0.01, y=0.0, z=0.0, distance=1.0),
        WorldPositionEstimate(marker_id=3, x=5.0, y=5.0, z=5.0, distance=1.0),
    ]


@pytest.fixture
def detector_settings() -> DetectorSettings:
    """Create detector settings for testing."""
    return DetectorSettings()


@pytest.fixture
def pose_settings() -> PoseSettings:
    """Create pose settings for testing."""
    return PoseSettings()


@pytest.fixture
def fusion_settings() -> FusionSettings:
    """Create fusion settings for testing."""
    return FusionSettings()


@pytest.fixture
def filter_settings() -> FilterSettings:
    """Create filter settings for testing."""
    return FilterSettings()


@pytest.fixture
def settings() -> Settings:
    """Create root settings for testing."""
    return Settings()


@pytest.fixture
def camera_centre() -> np.ndarray:
    """World position of the default camera."""
    return CAMERA_CENTRE.copy()

"""Core infrastructure: config, types, exceptions, and logging."""

from fiducial_locator.core.config import Settings, get_settings
from fiducial_locator.core.exceptions import (
    CalibrationError,
    DetectionError,
    FiducialLocatorError,
    MarkerConfigurationError,
    PoseEstimationError,
)
from fiducial_locator.core.logging import get_logger, setup_logging
from fiducial_locator.core.types import (
    CameraIntrinsics,
    DetectedMarker,
    FusionMode,
    FusionResult,
    LengthUnit,
    MarkerDefinition,
    MarkerObservation,
    MarkerPosition,
    MarkerRotation,
    Position,
    RefinementStrategy,
    WorldPositionEstimate,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "LengthUnit",
    "FusionMode",
    "RefinementStrategy",
    "MarkerPosition",
    "MarkerRotation",
    "MarkerDefinition",
    "CameraIntrinsics",
    "DetectedMarker",
    "MarkerObservation",
    "Position",
    "WorldPositionEstimate",
    "FusionResult",
    # Exceptions
    "FiducialLocatorError",
    "CalibrationError",
    "MarkerConfigurationError",
    "PoseEstimationError",
    "DetectionError",
    # Logging
    "setup_logging",
    "get_logger",
]

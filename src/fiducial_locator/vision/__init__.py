"""Computer vision operations: detection, pose estimation, calibration, filtering."""

from fiducial_locator.vision.detection import MarkerDetector
from fiducial_locator.vision.filters import PositionKalmanFilter
from fiducial_locator.vision.pose import MarkerPoseEstimator
from fiducial_locator.vision.rotation import euler_to_rotation_matrix

__all__ = [
    "MarkerDetector",
    "MarkerPoseEstimator",
    "PositionKalmanFilter",
    "euler_to_rotation_matrix",
]

"""Custom exceptions for Fiducial Locator."""


class FiducialLocatorError(Exception):
    """Base exception for all Fiducial Locator errors."""

    pass


class CalibrationError(FiducialLocatorError):
    """Camera intrinsics are missing, unreadable or malformed."""

    def __init__(self, message: str = "Invalid camera calibration") -> None:
        self.message = message
        super().__init__(self.message)


class MarkerConfigurationError(FiducialLocatorError):
    """Marker map could not be loaded or failed validation."""

    def __init__(self, message: str = "Invalid marker configuration") -> None:
        self.message = message
        super().__init__(self.message)


class PoseEstimationError(FiducialLocatorError):
    """PnP solve failed for a single marker."""

    def __init__(self, message: str = "Pose estimation failed") -> None:
        self.message = message
        super().__init__(self.message)


class DetectionError(FiducialLocatorError):
    """Marker detection could not run on the given image."""

    def __init__(self, message: str = "Marker detection failed") -> None:
        self.message = message
        super().__init__(self.message)

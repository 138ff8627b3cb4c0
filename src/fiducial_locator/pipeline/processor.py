"""Frame processing pipeline orchestration."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from fiducial_locator.core.config import Settings, get_settings
from fiducial_locator.core.exceptions import MarkerConfigurationError
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.markers import index_by_id, load_marker_definitions
from fiducial_locator.core.types import (
    CameraIntrinsics,
    DetectedMarker,
    FusionResult,
    MarkerDefinition,
    MarkerObservation,
    Position,
)
from fiducial_locator.positioning.fusion import PositionFuser
from fiducial_locator.vision.calibration import focal_length_pixels, load_intrinsics_or_default
from fiducial_locator.vision.detection import MarkerDetector
from fiducial_locator.vision.filters import PositionKalmanFilter
from fiducial_locator.vision.pose import MarkerPoseEstimator

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)


@dataclass
class ProcessedFrame:
    """Result of processing a single frame."""

    detections: list[DetectedMarker]
    observations: list[MarkerObservation]
    fusion: FusionResult | None
    smoothed: Position | None
    source_identifier: str | None = None
    held: bool = field(default=False)

    @property
    def position(self) -> Position | None:
        """Raw fused position for this frame, if any."""
        return self.fusion.position if self.fusion is not None else None


class LocalizationPipeline:
    """Orchestrates the full frame processing pipeline.

    Coordinates:
    - Marker detection
    - Per-marker pose estimation
    - World transform and multi-marker fusion
    - Kalman smoothing

    When a frame yields no position the last smoothed position is held and,
    if configured, the filter's timestamp is reset so the gap is not taken
    as elapsed time on the next update.
    """

    def __init__(
        self,
        definitions: Iterable[MarkerDefinition],
        intrinsics: CameraIntrinsics | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            definitions: Marker map
            intrinsics: Camera intrinsics (identity camera if None)
            settings: Application settings (uses defaults if None)
        """
        self.settings = settings or get_settings()
        self.definitions = index_by_id(list(definitions))

        # Components
        self._detector = MarkerDetector(self.settings.detector, self.definitions.keys())
        self._estimator = MarkerPoseEstimator(intrinsics, self.settings.pose)
        self._fuser = PositionFuser(self.definitions.values(), self.settings.fusion)
        self._filter = PositionKalmanFilter.from_settings(self.settings.filter)

        # State
        self._last_smoothed: Position | None = None
        self._in_gap = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> LocalizationPipeline:
        """Build a pipeline from the configured marker map and calibration file.

        Raises:
            MarkerConfigurationError: If no marker map is configured or it is invalid
        """
        settings = settings or get_settings()
        if settings.markers.file is None:
            raise MarkerConfigurationError("No marker map configured (MARKERS_FILE)")

        definitions = load_marker_definitions(Path(settings.markers.file))
        calibration_file = settings.calibration.file
        intrinsics = load_intrinsics_or_default(
            Path(calibration_file) if calibration_file else None
        )
        return cls(definitions, intrinsics, settings)

    @property
    def pose_estimator(self) -> MarkerPoseEstimator:
        """The per-marker pose estimator."""
        return self._estimator

    @property
    def kalman_filter(self) -> PositionKalmanFilter:
        """The smoothing filter."""
        return self._filter

    @property
    def last_position(self) -> Position | None:
        """Most recent smoothed position."""
        return self._last_smoothed

    def reset(self) -> None:
        """Forget tracking history."""
        self._filter.reset()
        self._last_smoothed = None
        self._in_gap = False
        logger.debug("Localization pipeline reset")

    def process_image(
        self,
        image: NDArray[np.uint8],
        source_identifier: str | None = None,
        dt: float | None = None,
    ) -> ProcessedFrame:
        """Detect markers in an image and locate the camera.

        Args:
            image: Grayscale or BGR frame
            source_identifier: Camera or file the frame came from
            dt: Seconds since the previous frame (clock-derived if None)

        Returns:
            ProcessedFrame with all intermediate results
        """
        detections = self._detector.detect(image)

        if self._estimator.focal_length_px is None:
            self._configure_focal_length(image.shape[1])

        return self.process_detections(detections, source_identifier, dt)

    def _configure_focal_length(self, image_width_px: int) -> None:
        """Derive the pixel focal length from lens and sensor settings."""
        calibration = self.settings.calibration
        if calibration.focal_length_mm is None or calibration.sensor_width_mm is None:
            return

        self._estimator.focal_length_px = focal_length_pixels(
            calibration.focal_length_mm, calibration.sensor_width_mm, image_width_px
        )
        logger.info("Focal length set to %.1f px", self._estimator.focal_length_px)

    def process_detections(
        self,
        detections: Sequence[DetectedMarker],
        source_identifier: str | None = None,
        dt: float | None = None,
    ) -> ProcessedFrame:
        """Locate the camera from already detected markers.

        Args:
            detections: Detector output for the frame
            source_identifier: Camera or file the frame came from
            dt: Seconds since the previous frame (clock-derived if None)

        Returns:
            ProcessedFrame with all intermediate results
        """
        detections = list(detections)
        observations = self._estimator.estimate_frame(
            detections, self.definitions, source_identifier
        )
        fusion = self._fuser.locate(observations)

        if fusion is None:
            if not self._in_gap:
                logger.debug("Tracking lost (%d markers detected)", len(detections))
            self._in_gap = True
            return ProcessedFrame(
                detections=detections,
                observations=observations,
                fusion=None,
                smoothed=self._last_smoothed,
                source_identifier=source_identifier,
                held=self._last_smoothed is not None,
            )

        smoothed = self._smooth(fusion.position, dt)
        self._last_smoothed = smoothed

        return ProcessedFrame(
            detections=detections,
            observations=observations,
            fusion=fusion,
            smoothed=smoothed,
            source_identifier=source_identifier,
        )

    def _smooth(self, position: Position, dt: float | None) -> Position:
        """Run the Kalman filter on a fused position."""
        if not self.settings.filter.enabled:
            self._in_gap = False
            return position

        if self._in_gap and self.settings.filter.reset_after_gap:
            self._filter.reset_last_update_timestamp()
        self._in_gap = False

        if dt is None:
            x, y, z = self._filter.update_with_timestamp_control(*position.as_tuple())
        else:
            x, y, z = self._filter.update_with_delta(*position.as_tuple(), dt)

        return Position(x, y, z)

"""ArUco marker detection wrapper."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import cv2
import numpy as np
from numpy.typing import NDArray

from fiducial_locator.core.config import DetectorSettings
from fiducial_locator.core.exceptions import DetectionError
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.types import DetectedMarker

logger = get_logger(__name__)

# ArUco dictionary mapping
ARUCO_DICTS = {
    "DICT_4X4_50": cv2.aruco.DICT_4X4_50,
    "DICT_4X4_100": cv2.aruco.DICT_4X4_100,
    "DICT_4X4_250": cv2.aruco.DICT_4X4_250,
    "DICT_5X5_50": cv2.aruco.DICT_5X5_50,
    "DICT_5X5_100": cv2.aruco.DICT_5X5_100,
    "DICT_5X5_250": cv2.aruco.DICT_5X5_250,
    "DICT_6X6_50": cv2.aruco.DICT_6X6_50,
    "DICT_6X6_100": cv2.aruco.DICT_6X6_100,
    "DICT_6X6_250": cv2.aruco.DICT_6X6_250,
    "DICT_7X7_50": cv2.aruco.DICT_7X7_50,
    "DICT_7X7_250": cv2.aruco.DICT_7X7_250,
}


class MarkerDetector:
    """Finds ArUco markers in images.

    Returns ids with their 4 corners in detector order (top-left, top-right,
    bottom-right, bottom-left), which is the order the pose estimator's object
    points follow.
    """

    def __init__(
        self,
        settings: DetectorSettings | None = None,
        marker_ids: Iterable[int] | None = None,
    ) -> None:
        """Initialize detector with settings.

        Args:
            settings: Detector settings (uses defaults if None)
            marker_ids: Only report these ids (all ids if None)
        """
        self.settings = settings or DetectorSettings()
        self.marker_ids = frozenset(marker_ids) if marker_ids is not None else None
        self._detector: object | None = None

    def _get_aruco_detector(self) -> object:
        """Get or create ArUco detector."""
        if self._detector is None:
            if self.settings.dictionary not in ARUCO_DICTS:
                logger.warning(
                    "Unknown ArUco dictionary %s, using DICT_6X6_250", self.settings.dictionary
                )
            dict_type = ARUCO_DICTS.get(self.settings.dictionary, cv2.aruco.DICT_6X6_250)
            aruco_dict = cv2.aruco.getPredefinedDictionary(dict_type)
            parameters = cv2.aruco.DetectorParameters()
            if self.settings.subpixel_refinement:
                parameters.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
            self._detector = cv2.aruco.ArucoDetector(aruco_dict, parameters)
        return self._detector

    def detect(self, image: NDArray[np.uint8]) -> list[DetectedMarker]:
        """Detect markers in an image.

        Args:
            image: Grayscale or BGR image

        Returns:
            Detected markers, filtered by the configured ids

        Raises:
            DetectionError: If the image is empty or has an unsupported shape
        """
        if image is None or image.size == 0:
            raise DetectionError("Empty image")

        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.ndim == 2:
            gray = image
        else:
            raise DetectionError(f"Unsupported image shape {image.shape}")

        detector = self._get_aruco_detector()
        corners, ids, _ = detector.detectMarkers(gray)  # type: ignore[attr-defined]

        return self.from_detector_output(corners, ids)

    def from_detector_output(
        self,
        corners: Any,
        ids: NDArray[np.integer[Any]] | None,
    ) -> list[DetectedMarker]:
        """Convert raw ``detectMarkers`` output into DetectedMarker objects.

        Args:
            corners: Sequence of corner arrays, one per marker
            ids: Nx1 id array, or None when nothing was found

        Returns:
            Markers with exactly 4 corners whose id is accepted
        """
        if ids is None or len(corners) == 0:
            return []

        flat_ids = np.asarray(ids).ravel()
        if len(corners) != len(flat_ids):
            logger.warning(
                "Detector returned %d corner sets for %d ids, ignoring frame",
                len(corners),
                len(flat_ids),
            )
            return []

        markers: list[DetectedMarker] = []
        for marker_corners, marker_id in zip(corners, flat_ids):
            points = np.asarray(marker_corners, dtype=np.float64).reshape(-1, 2)
            # solvePnP needs all 4 corners
            if points.shape[0] < 4:
                continue

            marker_id = int(marker_id)
            if self.marker_ids is not None and marker_id not in self.marker_ids:
                continue

            markers.append(DetectedMarker(marker_id=marker_id, corners=points[:4]))

        return markers

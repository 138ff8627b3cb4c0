"""Single-marker pose estimation with OpenCV PnP solvers."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import cv2
import numpy as np
from numpy.typing import NDArray

from fiducial_locator.core.config import PoseSettings
from fiducial_locator.core.exceptions import PoseEstimationError
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.types import (
    CameraIntrinsics,
    DetectedMarker,
    MarkerDefinition,
    MarkerObservation,
    RefinementStrategy,
)

logger = get_logger(__name__)

# Refiners tried in order for each strategy
_REFINERS: dict[RefinementStrategy, tuple[str, ...]] = {
    RefinementStrategy.NONE: (),
    RefinementStrategy.LEVENBERG_MARQUARDT: ("solvePnPRefineLM", "solvePnPRefineVVS"),
    RefinementStrategy.VIRTUAL_VISUAL_SERVOING: ("solvePnPRefineVVS",),
}


@dataclass(frozen=True, slots=True)
class PoseCandidate:
    """One PnP solution: marker pose in the camera frame."""

    rvec: NDArray[np.float64]
    tvec: NDArray[np.float64]

    @property
    def depth(self) -> float:
        """Camera-frame Z of the marker centre."""
        return float(self.tvec[2, 0])

    @property
    def is_finite(self) -> bool:
        """True when the pose holds no NaN or infinite values."""
        return bool(np.all(np.isfinite(self.rvec)) and np.all(np.isfinite(self.tvec)))


def _as_candidate(rvec: Any, tvec: Any) -> PoseCandidate:
    return PoseCandidate(
        rvec=np.asarray(rvec, dtype=np.float64).reshape(3, 1),
        tvec=np.asarray(tvec, dtype=np.float64).reshape(3, 1),
    )


def marker_object_points(size: float) -> NDArray[np.float64]:
    """3D corners of a square marker centred at its origin.

    Ordered top-left, top-right, bottom-right, bottom-left, matching the
    ArUco detector and the SOLVEPNP_IPPE_SQUARE layout.

    Args:
        size: Marker side length

    Returns:
        4x3 object points
    """
    half = size / 2.0
    return np.array(
        [
            [-half, half, 0.0],
            [half, half, 0.0],
            [half, -half, 0.0],
            [-half, -half, 0.0],
        ],
        dtype=np.float64,
    )


def marker_edge_length_px(corners: NDArray[np.floating[Any]]) -> float:
    """Calculate marker size in pixels from corners.

    Args:
        corners: 4x2 array of corner coordinates

    Returns:
        Average side length in pixels
    """
    side_lengths = [np.linalg.norm(corners[i] - corners[(i + 1) % 4]) for i in range(4)]
    return float(np.mean(side_lengths))


def reprojection_error(
    object_points: NDArray[np.float64],
    image_points: NDArray[np.float64],
    candidate: PoseCandidate,
    intrinsics: CameraIntrinsics,
) -> float:
    """RMS pixel distance between detected corners and reprojected object points.

    Returns:
        RMS error, or infinity if projection fails
    """
    try:
        projected, _ = cv2.projectPoints(
            object_points,
            candidate.rvec,
            candidate.tvec,
            intrinsics.camera_matrix,
            intrinsics.distortion,
        )
    except cv2.error as e:
        logger.debug("Reprojection failed: %s", e)
        return math.inf

    projected = projected.reshape(-1, 2)
    if projected.shape != image_points.shape:
        return math.inf

    squared = np.sum((projected - image_points) ** 2, axis=1)
    return float(np.sqrt(np.mean(squared)))


def select_best_solution(
    candidates: Iterable[PoseCandidate],
    object_points: NDArray[np.float64],
    image_points: NDArray[np.float64],
    intrinsics: CameraIntrinsics,
) -> PoseCandidate | None:
    """Pick among ambiguous PnP solutions.

    Candidates behind the camera are discarded, then the one with the lowest
    measured reprojection error wins. The solver's own ranking is ignored.
    Ties keep the earlier candidate.

    Returns:
        Best candidate, or None if every candidate is behind the camera
    """
    best: PoseCandidate | None = None
    best_error = math.inf

    for candidate in candidates:
        if candidate.depth < 0:
            continue

        error = reprojection_error(object_points, image_points, candidate, intrinsics)
        if best is None or error < best_error:
            best = candidate
            best_error = error

    return best


def viewing_angle_deg(candidate: PoseCandidate) -> float:
    """Angle between the marker normal and the marker-to-camera ray.

    The marker's +Z axis points out of its printed face, towards a camera
    that can see it, so a marker viewed head-on gives 0 degrees.
    """
    rotation, _ = cv2.Rodrigues(candidate.rvec)
    normal = rotation[:, 2]
    to_camera = -candidate.tvec.ravel()
    norm = np.linalg.norm(to_camera)
    if norm == 0:
        return 0.0

    cos_angle = float(np.clip(np.dot(normal, to_camera / norm), -1.0, 1.0))
    return math.degrees(math.acos(cos_angle))


class MarkerPoseEstimator:
    """Estimates the pose of individual markers relative to the camera.

    One estimator covers both capabilities:
    - calibrated: full 6-DOF pose from the camera matrix and distortion
    - focal-length-only: distance from the apparent marker width, no pose

    Rejected or failed markers produce None; they never raise.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics | None = None,
        settings: PoseSettings | None = None,
    ) -> None:
        """Initialize estimator.

        Args:
            intrinsics: Camera intrinsics (identity camera if None)
            settings: Pose settings (uses defaults if None)
        """
        self.settings = settings or PoseSettings()

        if intrinsics is None:
            logger.warning("No camera intrinsics provided, using identity camera matrix")
            intrinsics = CameraIntrinsics.uncalibrated()
        self.intrinsics = intrinsics

        self._focal_length_px = self.settings.focal_length_px
        if self._focal_length_px is None and intrinsics.calibrated:
            self._focal_length_px = float(intrinsics.camera_matrix[0, 0])

    @property
    def use_calibration(self) -> bool:
        """Whether full poses are estimated."""
        return self.settings.use_calibration

    @property
    def focal_length_px(self) -> float | None:
        """Focal length used for focal-length-only distances."""
        return self._focal_length_px

    @focal_length_px.setter
    def focal_length_px(self, value: float | None) -> None:
        self._focal_length_px = value

    def estimate(
        self,
        corners: NDArray[np.floating[Any]],
        size: float,
        marker_id: int = 0,
        max_distance: float | None = None,
        source_identifier: str | None = None,
    ) -> MarkerObservation | None:
        """Estimate one marker's pose from its image corners.

        Args:
            corners: 4 image corners in detector order
            size: Physical marker side length
            marker_id: Marker identifier to tag the observation with
            max_distance: Reject farther markers, in the unit of ``size``
            source_identifier: Camera or file the corners came from

        Returns:
            Observation with pose and distance, or None if rejected
        """
        image_points = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
        if image_points.shape[0] != 4 or not np.all(np.isfinite(image_points)):
            logger.debug("Marker %d: expected 4 finite corners", marker_id)
            return None

        min_pixel_size = self.settings.min_pixel_size
        if min_pixel_size is not None and marker_edge_length_px(image_points) < min_pixel_size:
            logger.debug("Marker %d: below %.1f px", marker_id, min_pixel_size)
            return None

        try:
            if not self.use_calibration:
                return self._estimate_from_focal_length(
                    image_points, size, marker_id, max_distance, source_identifier
                )
            return self._estimate_pose(
                image_points, size, marker_id, max_distance, source_identifier
            )
        except (PoseEstimationError, cv2.error, ValueError, np.linalg.LinAlgError) as e:
            logger.warning("Marker %d skipped: %s", marker_id, e)
            return None

    def estimate_marker(
        self,
        detected: DetectedMarker,
        definition: MarkerDefinition,
        source_identifier: str | None = None,
    ) -> MarkerObservation | None:
        """Estimate a detected marker using its configured definition."""
        return self.estimate(
            detected.corners,
            definition.size,
            marker_id=detected.marker_id,
            max_distance=definition.max_distance_in_length_unit,
            source_identifier=source_identifier,
        )

    def estimate_frame(
        self,
        detections: Iterable[DetectedMarker],
        definitions: Mapping[int, MarkerDefinition],
        source_identifier: str | None = None,
    ) -> list[MarkerObservation]:
        """Estimate every configured marker detected in a frame.

        Markers without a definition are ignored. A failure on one marker
        does not affect the others.

        Args:
            detections: Detector output for the frame
            definitions: Marker definitions keyed by id
            source_identifier: Camera or file the frame came from

        Returns:
            Accepted observations
        """
        observations: list[MarkerObservation] = []
        for detected in detections:
            definition = definitions.get(detected.marker_id)
            if definition is None:
                continue

            observation = self.estimate_marker(detected, definition, source_identifier)
            if observation is not None:
                observations.append(observation)

        return observations

    def _estimate_pose(
        self,
        image_points: NDArray[np.float64],
        size: float,
        marker_id: int,
        max_distance: float | None,
        source_identifier: str | None,
    ) -> MarkerObservation | None:
        object_points = marker_object_points(size)

        candidate = self._solve(object_points, image_points)
        if candidate is None:
            logger.debug("Marker %d: no solution in front of the camera", marker_id)
            return None

        candidate = self._refine(candidate, object_points, image_points)

        # Cheirality
        if candidate.depth <= 0:
            logger.debug("Marker %d: behind the camera", marker_id)
            return None

        max_angle = self.settings.max_viewing_angle_deg
        if max_angle is not None:
            angle = viewing_angle_deg(candidate)
            if angle > max_angle:
                logger.debug("Marker %d: viewing angle %.1f > %.1f", marker_id, angle, max_angle)
                return None

        distance = float(np.linalg.norm(candidate.tvec))
        if max_distance is not None and distance > max_distance:
            logger.debug("Marker %d: distance %.3f > %.3f", marker_id, distance, max_distance)
            return None

        return MarkerObservation(
            marker_id=marker_id,
            corners=image_points,
            rvec=candidate.rvec,
            tvec=candidate.tvec,
            distance=distance,
            marker_width_px=marker_edge_length_px(image_points),
            source_identifier=source_identifier,
        )

    def _solve(
        self,
        object_points: NDArray[np.float64],
        image_points: NDArray[np.float64],
    ) -> PoseCandidate | None:
        """Solve PnP, disambiguating square-marker solutions.

        Raises:
            PoseEstimationError: If no solver produced a pose
        """
        camera_matrix = self.intrinsics.camera_matrix
        dist_coeffs = self.intrinsics.distortion

        solve_generic = getattr(cv2, "solvePnPGeneric", None)
        if solve_generic is not None:
            try:
                _, rvecs, tvecs, _ = solve_generic(
                    object_points,
                    image_points,
                    camera_matrix,
                    dist_coeffs,
                    flags=cv2.SOLVEPNP_IPPE_SQUARE,
                )
            except cv2.error as e:
                logger.debug("IPPE square solve failed, falling back to iterative: %s", e)
            else:
                candidates = [_as_candidate(r, t) for r, t in zip(rvecs, tvecs)]
                if len(candidates) > 1:
                    return select_best_solution(
                        candidates, object_points, image_points, self.intrinsics
                    )
                if candidates:
                    return candidates[0]

        try:
            success, rvec, tvec = cv2.solvePnP(
                object_points,
                image_points,
                camera_matrix,
                dist_coeffs,
                flags=cv2.SOLVEPNP_ITERATIVE,
            )
        except cv2.error as e:
            raise PoseEstimationError(f"solvePnP failed: {e}") from e

        if not success:
            raise PoseEstimationError("solvePnP found no solution")

        return _as_candidate(rvec, tvec)

    def _refine(
        self,
        candidate: PoseCandidate,
        object_points: NDArray[np.float64],
        image_points: NDArray[np.float64],
    ) -> PoseCandidate:
        """Refine a pose, keeping the input if every refiner fails.

        A refined pose that is invalid or reprojects worse than the input
        counts as a failure.
        """
        refiners = _REFINERS[self.settings.refinement]
        if not refiners:
            return candidate

        initial_error = reprojection_error(object_points, image_points, candidate, self.intrinsics)

        for name in refiners:
            refiner = getattr(cv2, name, None)
            if refiner is None:
                continue

            try:
                rvec, tvec = refiner(
                    object_points,
                    image_points,
                    self.intrinsics.camera_matrix,
                    self.intrinsics.distortion,
                    candidate.rvec.copy(),
                    candidate.tvec.copy(),
                )
            except cv2.error as e:
                logger.debug("%s failed: %s", name, e)
                continue

            refined = _as_candidate(rvec, tvec)
            if not refined.is_finite or refined.depth <= 0:
                logger.debug("%s returned an invalid pose", name)
                continue

            error = reprojection_error(object_points, image_points, refined, self.intrinsics)
            if error > initial_error:
                logger.debug("%s diverged (%.3f px > %.3f px)", name, error, initial_error)
                continue

            return refined

        logger.debug("Pose refinement failed, keeping unrefined pose")
        return candidate

    def _estimate_from_focal_length(
        self,
        image_points: NDArray[np.float64],
        size: float,
        marker_id: int,
        max_distance: float | None,
        source_identifier: str | None,
    ) -> MarkerObservation | None:
        """Distance from apparent width: f_px * size / width_px."""
        if self._focal_length_px is None:
            raise PoseEstimationError("Focal length not available")

        width_px = float(np.linalg.norm(image_points[0] - image_points[1]))
        if width_px <= 0:
            raise PoseEstimationError("Degenerate marker corners")

        distance = self._focal_length_px * size / width_px
        if max_distance is not None and distance > max_distance:
            logger.debug("Marker %d: distance %.3f > %.3f", marker_id, distance, max_distance)
            return None

        return MarkerObservation(
            marker_id=marker_id,
            corners=image_points,
            rvec=None,
            tvec=None,
            distance=distance,
            marker_width_px=width_px,
            source_identifier=source_identifier,
        )

"""Core data types and structures."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import NDArray


class LengthUnit(Enum):
    """Unit a length is expressed in."""

    METERS = "m"
    CENTIMETERS = "cm"
    MILLIMETERS = "mm"

    @property
    def meters(self) -> float:
        """Length of one unit in meters."""
        return _METERS_PER_UNIT[self]

    def convert(self, value: float, target: LengthUnit) -> float:
        """Convert a length from this unit into ``target``."""
        return value * self.meters / target.meters


_METERS_PER_UNIT = {
    LengthUnit.METERS: 1.0,
    LengthUnit.CENTIMETERS: 0.01,
    LengthUnit.MILLIMETERS: 0.001,
}


class FusionMode(Enum):
    """How per-marker camera positions are combined into one."""

    CLOSEST = "closest"
    AVERAGE = "average"
    WEIGHTED_AVERAGE = "weighted_average"
    MEDIAN = "median"
    WEIGHTED_MEDIAN = "weighted_median"

    @property
    def is_weighted(self) -> bool:
        """Whether samples are weighted by inverse squared distance."""
        return self in (FusionMode.WEIGHTED_AVERAGE, FusionMode.WEIGHTED_MEDIAN)


class RefinementStrategy(Enum):
    """Non-linear pose refinement applied after the PnP solve.

    LEVENBERG_MARQUARDT falls back to VIRTUAL_VISUAL_SERVOING when it fails.
    """

    NONE = "none"
    LEVENBERG_MARQUARDT = "lm"
    VIRTUAL_VISUAL_SERVOING = "vvs"


@dataclass(frozen=True, slots=True)
class MarkerPosition:
    """Marker centre in world coordinates."""

    x: float
    y: float
    z: float


@dataclass(frozen=True, slots=True)
class MarkerRotation:
    """Marker orientation in the world, Euler angles in degrees.

    roll rotates about X, pitch about Y and yaw about Z.
    """

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True, slots=True)
class MarkerDefinition:
    """A marker with a known placement in the world.

    Attributes:
        id: Marker identifier in the ArUco dictionary
        size: Physical side length, in ``length_unit``
        position: World position of the marker centre, in ``length_unit``
        rotation: World orientation of the marker
        max_distance: Observations farther than this are discarded
        length_unit: Unit of ``size`` and ``position``
        max_distance_unit: Unit of ``max_distance``
    """

    id: int
    size: float
    position: MarkerPosition
    rotation: MarkerRotation = field(default_factory=MarkerRotation)
    max_distance: float | None = None
    length_unit: LengthUnit = LengthUnit.METERS
    max_distance_unit: LengthUnit = LengthUnit.METERS

    @property
    def max_distance_in_length_unit(self) -> float | None:
        """Maximum distance expressed in the unit pose translations use."""
        if self.max_distance is None:
            return None
        return self.max_distance_unit.convert(self.max_distance, self.length_unit)


@dataclass(slots=True)
class CameraIntrinsics:
    """Camera matrix and distortion coefficients from an external calibration.

    Attributes:
        camera_matrix: 3x3 pinhole camera matrix
        dist_coeffs: Distortion coefficients (may be empty)
        calibrated: False when these are placeholder values
    """

    camera_matrix: NDArray[np.float64]
    dist_coeffs: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(5, dtype=np.float64)
    )
    calibrated: bool = True

    @classmethod
    def uncalibrated(cls) -> CameraIntrinsics:
        """Identity camera matrix and zero distortion."""
        return cls(
            camera_matrix=np.eye(3, dtype=np.float64),
            dist_coeffs=np.zeros(5, dtype=np.float64),
            calibrated=False,
        )

    @property
    def distortion(self) -> NDArray[np.float64]:
        """Distortion vector in the shape OpenCV solvers expect."""
        coeffs = np.asarray(self.dist_coeffs, dtype=np.float64).reshape(-1, 1)
        if coeffs.size == 0:
            return np.zeros((5, 1), dtype=np.float64)
        return coeffs


@dataclass(slots=True)
class DetectedMarker:
    """Raw detector output for one marker: id and 4 ordered corners."""

    marker_id: int
    corners: NDArray[np.float64]


@dataclass(slots=True)
class MarkerObservation:
    """A marker seen in one frame, with its camera-relative pose.

    Attributes:
        marker_id: Marker identifier
        corners: 4x2 image corners (top-left, top-right, bottom-right, bottom-left)
        rvec: Rotation vector of the marker in the camera frame, if estimated
        tvec: Translation of the marker in the camera frame, if estimated
        distance: Camera to marker distance, in the marker's length unit
        marker_width_px: On-image edge length used for focal-length distances
        source_identifier: Camera or file the observation came from
    """

    marker_id: int
    corners: NDArray[np.float64]
    rvec: NDArray[np.float64] | None
    tvec: NDArray[np.float64] | None
    distance: float
    marker_width_px: float | None = None
    source_identifier: str | None = None

    @property
    def has_pose(self) -> bool:
        """Whether a full 6-DOF pose is available."""
        return self.rvec is not None and self.tvec is not None


@dataclass(frozen=True, slots=True)
class Position:
    """A point in world coordinates."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: Position) -> float:
        """Euclidean distance to another position."""
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return math.sqrt(dx * dx + dy * dy + dz * dz)

    @property
    def is_finite(self) -> bool:
        """True when no coordinate is NaN or infinite."""
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    def as_tuple(self) -> tuple[float, float, float]:
        """Coordinates as an (x, y, z) tuple."""
        return self.x, self.y, self.z


@dataclass(frozen=True, slots=True)
class WorldPositionEstimate:
    """Camera position in the world, in metres, derived from a single marker."""

    marker_id: int
    x: float
    y: float
    z: float
    distance: float | None = None
    source_identifier: str | None = None

    @property
    def position(self) -> Position:
        """The estimate as a plain position."""
        return Position(self.x, self.y, self.z)

    def distance_to(self, other: WorldPositionEstimate) -> float:
        """Euclidean distance between the two camera positions."""
        return self.position.distance_to(other.position)


@dataclass(slots=True)
class FusionResult:
    """Outcome of one fusion cycle.

    Attributes:
        position: Fused camera position
        inliers: Estimates the position was aggregated from
        estimates: Every estimate that entered the cycle
        threshold: RANSAC threshold that succeeded (None when RANSAC was skipped)
        mode: Fusion mode used
    """

    position: Position
    inliers: list[WorldPositionEstimate]
    estimates: list[WorldPositionEstimate]
    threshold: float | None
    mode: FusionMode

    @property
    def marker_count(self) -> int:
        """Number of markers the position was built from."""
        return len(self.inliers)

"""Marker-relative camera pose to world camera position.

World convention: Z is up and the floor is the plane Z = 0. The camera is
never below the floor, so estimates with negative Z are discarded.

Each marker may be measured in its own length unit. World estimates are
always expressed in metres so markers from one map can be fused together.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

import cv2
import numpy as np

from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.types import (
    LengthUnit,
    MarkerDefinition,
    MarkerObservation,
    WorldPositionEstimate,
)
from fiducial_locator.vision.rotation import rotation_from_degrees

logger = get_logger(__name__)


def camera_position_in_world(
    observation: MarkerObservation,
    definition: MarkerDefinition,
    reject_negative_z: bool = True,
) -> WorldPositionEstimate | None:
    """Locate the camera in the world from one marker observation.

    T_cam_marker = [R^T | -R^T t] inverts the marker pose seen by the camera,
    then the marker's world placement maps it into world coordinates.

    Args:
        observation: Observation with a camera-relative pose
        definition: World placement of the observed marker
        reject_negative_z: Discard positions below the floor

    Returns:
        Camera position and distance in metres, or None if there is no pose
        or it was rejected
    """
    if observation.rvec is None or observation.tvec is None:
        return None

    r_marker_cam, _ = cv2.Rodrigues(np.asarray(observation.rvec, dtype=np.float64).reshape(3, 1))
    t_marker_cam = np.asarray(observation.tvec, dtype=np.float64).reshape(3)

    # Camera pose in the marker frame
    r_cam_marker = r_marker_cam.T
    t_cam_marker = -r_cam_marker @ t_marker_cam

    # Marker pose in the world
    r_marker_world = rotation_from_degrees(definition.rotation)
    t_marker_world = np.array(
        [definition.position.x, definition.position.y, definition.position.z],
        dtype=np.float64,
    )

    t_cam_world = r_marker_world @ t_cam_marker + t_marker_world
    unit = definition.length_unit
    x, y, z = (unit.convert(float(v), LengthUnit.METERS) for v in t_cam_world)

    if not all(math.isfinite(v) for v in (x, y, z)):
        logger.debug("Marker %d: non-finite world position", observation.marker_id)
        return None

    if reject_negative_z and z < 0:
        logger.debug("Marker %d: camera below floor (z=%.3f)", observation.marker_id, z)
        return None

    return WorldPositionEstimate(
        marker_id=observation.marker_id,
        x=x,
        y=y,
        z=z,
        distance=to_meters(observation.distance, definition),
        source_identifier=observation.source_identifier,
    )


def transform_observations(
    observations: Iterable[MarkerObservation],
    definitions: Mapping[int, MarkerDefinition],
    reject_negative_z: bool = True,
) -> list[WorldPositionEstimate]:
    """Transform every observation that has a configured marker.

    Args:
        observations: Observations from one frame
        definitions: Marker definitions keyed by id
        reject_negative_z: Discard positions below the floor

    Returns:
        World estimates for accepted observations, in input order
    """
    estimates: list[WorldPositionEstimate] = []
    for observation in observations:
        definition = definitions.get(observation.marker_id)
        if definition is None:
            continue

        estimate = camera_position_in_world(observation, definition, reject_negative_z)
        if estimate is not None:
            estimates.append(estimate)

    return estimates


def to_meters(length: float | None, definition: MarkerDefinition) -> float | None:
    """Convert a length measured against a marker into metres."""
    if length is None:
        return None
    return definition.length_unit.convert(length, LengthUnit.METERS)

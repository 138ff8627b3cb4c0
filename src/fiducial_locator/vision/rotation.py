"""Rotation helpers. Pure math, no OpenCV."""

from __future__ import annotations

import math
from typing import Any

import numpy as np
from numpy.typing import NDArray

from fiducial_locator.core.types import MarkerRotation


def euler_to_rotation_matrix(roll: float, pitch: float, yaw: float) -> NDArray[np.floating[Any]]:
    """Build a rotation matrix from Euler angles.

    R = Rz(yaw) @ Ry(pitch) @ Rx(roll)

    Args:
        roll: Rotation about X, radians
        pitch: Rotation about Y, radians
        yaw: Rotation about Z, radians

    Returns:
        3x3 rotation matrix
    """
    c1, s1 = math.cos(yaw), math.sin(yaw)
    c2, s2 = math.cos(pitch), math.sin(pitch)
    c3, s3 = math.cos(roll), math.sin(roll)

    return np.array(
        [
            [c1 * c2, c1 * s2 * s3 - s1 * c3, c1 * s2 * c3 + s1 * s3],
            [s1 * c2, s1 * s2 * s3 + c1 * c3, s1 * s2 * c3 - c1 * s3],
            [-s2, c2 * s3, c2 * c3],
        ],
        dtype=np.float64,
    )


def rotation_from_degrees(rotation: MarkerRotation) -> NDArray[np.floating[Any]]:
    """Rotation matrix for a marker rotation given in degrees."""
    return euler_to_rotation_matrix(
        math.radians(rotation.roll),
        math.radians(rotation.pitch),
        math.radians(rotation.yaw),
    )

"""Consensus outlier rejection over per-marker camera positions.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from fiducial_locator.core.types import WorldPositionEstimate

# Tolerance when stepping thresholds up to the ceiling
_STEP_EPSILON = 1e-9


def minimum_inliers(count: int) -> int:
    """Smallest consensus set accepted for ``count`` estimates."""
    if count <= 4:
        return 2
    return math.ceil(0.5 * count)


def largest_consensus(
    estimates: Sequence[WorldPositionEstimate],
    threshold: float,
) -> list[WorldPositionEstimate]:
    """Largest set of estimates closer than ``threshold`` to a common seed.

    Every estimate is tried as the seed; the first seed wins ties.
    """
    best: list[WorldPositionEstimate] = []
    for seed in estimates:
        inliers = [e for e in estimates if e.distance_to(seed) < threshold]
        if len(inliers) > len(best):
            best = inliers
    return best


def ransac_filter(
    estimates: Sequence[WorldPositionEstimate],
    threshold: float = 0.2,
) -> list[WorldPositionEstimate]:
    """Remove outliers from a set of camera position estimates.

    Args:
        estimates: Per-marker estimates for one instant
        threshold: Maximum distance between two agreeing estimates.
            Non-positive disables filtering.

    Returns:
        Inliers, or an empty list if no large enough consensus exists
    """
    if threshold <= 0:
        return list(estimates)

    if not estimates:
        return []

    inliers = largest_consensus(estimates, threshold)
    if len(inliers) < minimum_inliers(len(estimates)):
        return []

    return inliers


def threshold_schedule(
    threshold: float,
    max_threshold: float | None = None,
    step: float = 0.1,
) -> list[float]:
    """Thresholds tried in order, from ``threshold`` up to ``max_threshold``.

    Args:
        threshold: Initial threshold
        max_threshold: Ceiling, or None for a single attempt
        step: Increment between attempts

    Returns:
        Increasing thresholds; the ceiling itself is always included
    """
    if max_threshold is None or max_threshold <= threshold or step <= 0:
        return [threshold]

    count = int(math.floor((max_threshold - threshold) / step + _STEP_EPSILON))
    schedule = [threshold + i * step for i in range(count + 1)]
    if max_threshold - schedule[-1] > _STEP_EPSILON:
        schedule.append(max_threshold)
    else:
        schedule[-1] = max_threshold
    return schedule


def ransac_filter_escalating(
    estimates: Sequence[WorldPositionEstimate],
    threshold: float = 0.2,
    max_threshold: float | None = None,
    step: float = 0.1,
) -> tuple[list[WorldPositionEstimate], float | None]:
    """Run the RANSAC filter, relaxing the threshold until it succeeds.

    Returns:
        (inliers, threshold that succeeded), or ([], None) when every
        threshold failed
    """
    for candidate in threshold_schedule(threshold, max_threshold, step):
        inliers = ransac_filter(estimates, candidate)
        if inliers:
            return inliers, candidate

    return [], None

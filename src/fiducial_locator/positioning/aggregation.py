"""Averaging and median aggregation of camera position estimates.

This module is pure logic with NO I/O and NO OpenCV imports.
"""

from __future__ import annotations

from collections.abc import Sequence

from fiducial_locator.core.types import Position, WorldPositionEstimate


def _weight(estimate: WorldPositionEstimate, weighted: bool) -> float | None:
    """Inverse squared distance, 1 when unweighted, None if unusable."""
    if not weighted:
        return 1.0
    if estimate.distance is None or estimate.distance <= 0:
        return None
    return 1.0 / (estimate.distance * estimate.distance)


def average_position(
    estimates: Sequence[WorldPositionEstimate],
    weighted: bool = True,
) -> Position | None:
    """Average of the estimates, optionally weighted by 1 / distance².

    Estimates without a positive distance are skipped when weighted.

    Returns:
        Averaged position, the origin if no weight accumulated, or None
        for an empty input
    """
    if not estimates:
        return None

    x = y = z = 0.0
    total_weight = 0.0

    for estimate in estimates:
        weight = _weight(estimate, weighted)
        if weight is None:
            continue

        x += estimate.x * weight
        y += estimate.y * weight
        z += estimate.z * weight
        total_weight += weight

    # Avoid NaN when nothing contributed
    if total_weight == 0.0:
        return Position()

    return Position(x / total_weight, y / total_weight, z / total_weight)


def weighted_median(samples: Sequence[tuple[float, float]]) -> float:
    """Weighted median of (value, weight) pairs.

    Samples are sorted by value and weights accumulated in that order; the
    first value at which the cumulative weight reaches half the total is
    returned.

    Raises:
        ValueError: If ``samples`` is empty
    """
    if not samples:
        raise ValueError("weighted_median() requires at least one sample")

    ordered = sorted(samples, key=lambda sample: sample[0])
    half = sum(weight for _, weight in ordered) / 2
    cumulative = 0.0

    for value, weight in ordered:
        cumulative += weight
        if cumulative >= half:
            return value

    return ordered[-1][0]  # fallback, shouldn't happen


def median_position(
    estimates: Sequence[WorldPositionEstimate],
    weighted: bool = True,
) -> Position | None:
    """Per-axis median of the estimates, optionally weighted by 1 / distance².

    Returns:
        Median position, the origin if no estimate was usable, or None for
        an empty input
    """
    if not estimates:
        return None

    xs: list[tuple[float, float]] = []
    ys: list[tuple[float, float]] = []
    zs: list[tuple[float, float]] = []

    for estimate in estimates:
        weight = _weight(estimate, weighted)
        if weight is None:
            continue
        xs.append((estimate.x, weight))
        ys.append((estimate.y, weight))
        zs.append((estimate.z, weight))

    if not xs:
        return Position()

    return Position(weighted_median(xs), weighted_median(ys), weighted_median(zs))

"""Tests for average and median aggregation."""

from __future__ import annotations

import pytest
from fiducial_locator.core.types import Position, WorldPositionEstimate
from fiducial_locator.positioning.aggregation import (
    average_position,
    median_position,
    weighted_median,
)


def _estimate(x: float, y: float, z: float, distance: float | None = 1.0) -> WorldPositionEstimate:
    return WorldPositionEstimate(marker_id=0, x=x, y=y, z=z, distance=distance)


class TestAveragePosition:
    """Tests for (weighted) averaging."""

    def test_empty_input(self) -> None:
        """No estimates gives no result."""
        assert average_position([]) is None

    def test_equal_weights(self) -> None:
        """Equal distances reduce to the arithmetic mean."""
        estimates = [_estimate(0.0, 0.0, 0.0), _estimate(0.01, 0.0, 0.0)]

        position = average_position(estimates)

        assert position is not None
        assert position.as_tuple() == pytest.approx((0.005, 0.0, 0.0))

    def test_nearer_markers_dominate(self) -> None:
        """Weights are 1 / distance squared."""
        estimates = [_estimate(0.0, 0.0, 0.0, distance=1.0), _estimate(3.0, 0.0, 0.0, distance=2.0)]

        position = average_position(estimates)

        # Weights 1 and 0.25
        assert position is not None
        assert position.x == pytest.approx(0.6)

    def test_unweighted_ignores_distance(self) -> None:
        """Plain average treats every estimate alike."""
        estimates = [_estimate(0.0, 0.0, 0.0, distance=1.0), _estimate(3.0, 0.0, 0.0, distance=2.0)]

        position = average_position(estimates, weighted=False)

        assert position is not None
        assert position.x == pytest.approx(1.5)

    def test_zero_distance_contributes_nothing(self) -> None:
        """Estimates without a usable weight leave the origin when nothing else remains."""
        position = average_position([_estimate(1.0, 2.0, 3.0, distance=0.0)])

        assert position == Position()

    def test_within_bounds(self) -> None:
        """The weighted average lies inside the per-axis range of the inputs."""
        estimates = [
            _estimate(0.1, 2.0, 1.0, distance=0.5),
            _estimate(0.4, 1.5, 1.2, distance=1.3),
            _estimate(-0.2, 1.8, 0.9, distance=2.1),
        ]

        position = average_position(estimates)

        assert position is not None
        for axis in ("x", "y", "z"):
            values = [getattr(e, axis) for e in estimates]
            assert min(values) <= getattr(position, axis) <= max(values)


class TestWeightedMedian:
    """Tests for the weighted median of scalar samples."""

    def test_equal_weights_odd_count(self) -> None:
        """Equal weights over an odd count give the middle value."""
        assert weighted_median([(3.0, 1.0), (1.0, 1.0), (2.0, 1.0)]) == 2.0

    def test_heavy_sample_wins(self) -> None:
        """A sample holding half the weight is returned."""
        assert weighted_median([(1.0, 1.0), (2.0, 1.0), (10.0, 2.0)]) == 2.0
        assert weighted_median([(1.0, 1.0), (2.0, 1.0), (10.0, 3.0)]) == 10.0

    def test_empty_raises(self) -> None:
        """Empty input is a programming error."""
        with pytest.raises(ValueError):
            weighted_median([])


class TestMedianPosition:
    """Tests for per-axis median aggregation."""

    def test_empty_input(self) -> None:
        """No estimates gives no result."""
        assert median_position([]) is None

    def test_robust_to_outlier(self) -> None:
        """A single outlier does not move the median."""
        estimates = [
            _estimate(0.0, 1.0, 1.0),
            _estimate(0.02, 1.02, 1.01),
            _estimate(5.0, 5.0, 5.0),
        ]

        position = median_position(estimates)

        assert position == Position(0.02, 1.02, 1.01)

    def test_returns_input_values_per_axis(self) -> None:
        """Each coordinate is one of the input values on that axis."""
        estimates = [
            _estimate(0.1, 2.0, 1.0, distance=0.5),
            _estimate(0.4, 1.5, 1.2, distance=1.3),
            _estimate(-0.2, 1.8, 0.9, distance=2.1),
            _estimate(0.0, 1.9, 1.1, distance=0.8),
        ]

        position = median_position(estimates)

        assert position is not None
        assert position.x in {e.x for e in estimates}
        assert position.y in {e.y for e in estimates}
        assert position.z in {e.z for e in estimates}

    def test_weighted_favours_near_marker(self) -> None:
        """A much nearer marker outweighs two far ones."""
        estimates = [
            _estimate(0.0, 0.0, 0.0, distance=0.5),
            _estimate(1.0, 1.0, 1.0, distance=2.0),
            _estimate(2.0, 2.0, 2.0, distance=2.0),
        ]

        weighted = median_position(estimates)
        unweighted = median_position(estimates, weighted=False)

        assert weighted == Position(0.0, 0.0, 0.0)
        assert unweighted == Position(1.0, 1.0, 1.0)

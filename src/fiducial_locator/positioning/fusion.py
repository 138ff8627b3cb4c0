"""Multi-marker fusion: one camera position per frame."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from fiducial_locator.core.config import FusionSettings
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.markers import index_by_id
from fiducial_locator.core.types import (
    FusionMode,
    FusionResult,
    MarkerDefinition,
    MarkerObservation,
    Position,
    WorldPositionEstimate,
)
from fiducial_locator.positioning.aggregation import average_position, median_position
from fiducial_locator.positioning.ransac import ransac_filter_escalating
from fiducial_locator.positioning.transformer import to_meters, transform_observations

logger = get_logger(__name__)


class PositionFuser:
    """Computes the camera position in the world from the markers in view.

    Per-marker estimates are cleaned with a RANSAC consensus and combined
    with an average or median, or the single closest marker is used.
    Stateless between calls.
    """

    def __init__(
        self,
        definitions: Iterable[MarkerDefinition],
        settings: FusionSettings | None = None,
    ) -> None:
        """Initialize fuser with the marker map.

        Args:
            definitions: World placement of every known marker
            settings: Fusion settings (uses defaults if None)
        """
        self.settings = settings or FusionSettings()
        self.definitions = index_by_id(list(definitions))

    def locate(
        self,
        observations: Sequence[MarkerObservation],
        mode: FusionMode | None = None,
        closest_markers_used: int | None = None,
    ) -> FusionResult | None:
        """Get the camera position from the markers observed in a frame.

        Args:
            observations: Observations with poses from one frame
            mode: Fusion mode (settings default if None)
            closest_markers_used: Keep only the N nearest markers, 0 for all
                (settings default if None). Ignored in CLOSEST mode.

        Returns:
            Fused result with every per-marker estimate, or None
        """
        mode = mode or self.settings.mode
        if closest_markers_used is None:
            closest_markers_used = self.settings.closest_markers_used

        selected = list(observations)
        if mode is not FusionMode.CLOSEST and closest_markers_used > 0:
            selected = sorted(selected, key=self._distance_in_meters)[:closest_markers_used]

        estimates = transform_observations(
            selected, self.definitions, self.settings.reject_negative_z
        )
        return self.fuse(estimates, mode)

    def fuse(
        self,
        estimates: Sequence[WorldPositionEstimate],
        mode: FusionMode | None = None,
        threshold: float | None = None,
        max_threshold: float | None = None,
        step: float | None = None,
    ) -> FusionResult | None:
        """Combine per-marker estimates from one instant.

        Args:
            estimates: Camera positions, one per marker
            mode: Fusion mode (settings default if None)
            threshold: Initial RANSAC threshold (settings default if None)
            max_threshold: RANSAC escalation ceiling (settings default if None,
                equal to ``threshold`` for a single attempt)
            step: RANSAC escalation step (settings default if None)

        Returns:
            Fused result, or None if no position could be produced
        """
        mode = mode or self.settings.mode
        estimates = list(estimates)

        if mode is FusionMode.CLOSEST:
            return self._closest(estimates)

        if not estimates:
            return None

        threshold = self.settings.ransac_threshold if threshold is None else threshold
        if max_threshold is None:
            max_threshold = self.settings.ransac_threshold_max
        step = self.settings.ransac_threshold_step if step is None else step

        inliers, used_threshold = ransac_filter_escalating(
            estimates, threshold, max_threshold, step
        )
        if not inliers:
            logger.debug(
                "No consensus among %d estimates up to threshold %s",
                len(estimates),
                max_threshold if max_threshold is not None else threshold,
            )
            return None

        if mode in (FusionMode.AVERAGE, FusionMode.WEIGHTED_AVERAGE):
            position = average_position(inliers, weighted=mode.is_weighted)
        else:
            position = median_position(inliers, weighted=mode.is_weighted)

        if position is None or not position.is_finite:
            return None

        return FusionResult(
            position=position,
            inliers=inliers,
            estimates=estimates,
            threshold=used_threshold,
            mode=mode,
        )

    def _distance_in_meters(self, observation: MarkerObservation) -> float:
        """Observation distance in metres, unknown markers last."""
        definition = self.definitions.get(observation.marker_id)
        if definition is None:
            return math.inf
        return to_meters(observation.distance, definition) or 0.0

    def _closest(self, estimates: list[WorldPositionEstimate]) -> FusionResult | None:
        """Position from the nearest configured marker."""
        candidates = [
            e for e in estimates if e.marker_id in self.definitions and e.distance is not None
        ]
        if not candidates:
            return None

        closest = min(candidates, key=lambda e: e.distance or 0.0)
        return FusionResult(
            position=Position(closest.x, closest.y, closest.z),
            inliers=[closest],
            estimates=estimates,
            threshold=None,
            mode=FusionMode.CLOSEST,
        )

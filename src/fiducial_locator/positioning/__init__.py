"""Camera positioning: world transform, outlier rejection and fusion."""

from fiducial_locator.positioning.aggregation import average_position, median_position
from fiducial_locator.positioning.fusion import PositionFuser
from fiducial_locator.positioning.ransac import ransac_filter, ransac_filter_escalating
from fiducial_locator.positioning.transformer import (
    camera_position_in_world,
    transform_observations,
)

__all__ = [
    "PositionFuser",
    "camera_position_in_world",
    "transform_observations",
    "ransac_filter",
    "ransac_filter_escalating",
    "average_position",
    "median_position",
]

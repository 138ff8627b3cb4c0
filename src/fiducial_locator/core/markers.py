"""Marker map loading and validation.

The marker map is a JSON list of marker objects::

    [
        {
            "id": 27,
            "size": 0.1,
            "position": {"x": 0.0, "y": 0.552, "z": 1.5},
            "rotation": {"roll": 90, "pitch": 0, "yaw": 90},
            "max_distance": 3000,
            "max_distance_unit": "mm"
        }
    ]
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from fiducial_locator.core.exceptions import MarkerConfigurationError
from fiducial_locator.core.logging import get_logger
from fiducial_locator.core.types import (
    LengthUnit,
    MarkerDefinition,
    MarkerPosition,
    MarkerRotation,
)

logger = get_logger(__name__)


class _PositionModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    z: float


class _RotationModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


class MarkerModel(BaseModel):
    """Validated on-disk representation of a marker definition."""

    model_config = ConfigDict(allow_inf_nan=False, extra="forbid")

    id: int = Field(ge=0)
    size: float = Field(gt=0)
    position: _PositionModel
    rotation: _RotationModel = Field(default_factory=_RotationModel)
    max_distance: float | None = Field(default=None, gt=0)
    length_unit: LengthUnit = LengthUnit.METERS
    max_distance_unit: LengthUnit = LengthUnit.METERS

    def to_definition(self) -> MarkerDefinition:
        """Convert into the immutable runtime type."""
        return MarkerDefinition(
            id=self.id,
            size=self.size,
            position=MarkerPosition(self.position.x, self.position.y, self.position.z),
            rotation=MarkerRotation(self.rotation.roll, self.rotation.pitch, self.rotation.yaw),
            max_distance=self.max_distance,
            length_unit=self.length_unit,
            max_distance_unit=self.max_distance_unit,
        )

    @classmethod
    def from_definition(cls, definition: MarkerDefinition) -> MarkerModel:
        """Build the serializable model from a runtime definition."""
        return cls(
            id=definition.id,
            size=definition.size,
            position=_PositionModel(
                x=definition.position.x, y=definition.position.y, z=definition.position.z
            ),
            rotation=_RotationModel(
                roll=definition.rotation.roll,
                pitch=definition.rotation.pitch,
                yaw=definition.rotation.yaw,
            ),
            max_distance=definition.max_distance,
            length_unit=definition.length_unit,
            max_distance_unit=definition.max_distance_unit,
        )


class MarkerMapModel(BaseModel):
    """A whole marker map; ids must be unique."""

    markers: list[MarkerModel]

    @field_validator("markers")
    @classmethod
    def _unique_ids(cls, markers: list[MarkerModel]) -> list[MarkerModel]:
        seen: set[int] = set()
        for marker in markers:
            if marker.id in seen:
                raise ValueError(f"duplicate marker id {marker.id}")
            seen.add(marker.id)
        return markers


_MARKER_LIST = TypeAdapter(list[MarkerModel])


def parse_marker_definitions(data: object) -> list[MarkerDefinition]:
    """Validate already-decoded JSON data into marker definitions.

    Args:
        data: A list of marker objects

    Returns:
        Marker definitions in file order

    Raises:
        MarkerConfigurationError: If the data fails validation
    """
    try:
        markers = _MARKER_LIST.validate_python(data)
        marker_map = MarkerMapModel(markers=markers)
    except ValidationError as e:
        raise MarkerConfigurationError(f"Invalid marker map: {e}") from e

    return [marker.to_definition() for marker in marker_map.markers]


def load_marker_definitions(path: Path) -> list[MarkerDefinition]:
    """Load the marker map from a JSON file.

    Args:
        path: Input file path (JSON)

    Returns:
        Validated marker definitions

    Raises:
        MarkerConfigurationError: If the file is missing, unreadable or invalid
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise MarkerConfigurationError(f"Failed to read marker map: {e}") from e

    definitions = parse_marker_definitions(data)
    logger.info("Loaded %d marker definitions from %s", len(definitions), path)
    return definitions


def save_marker_definitions(definitions: list[MarkerDefinition], path: Path) -> None:
    """Write marker definitions to a JSON file.

    Args:
        definitions: Markers to save
        path: Output file path (JSON)
    """
    data = [
        MarkerModel.from_definition(definition).model_dump(mode="json")
        for definition in definitions
    ]

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    logger.info("Saved %d marker definitions to %s", len(definitions), path)


def index_by_id(definitions: list[MarkerDefinition]) -> dict[int, MarkerDefinition]:
    """Map marker id to its definition.

    Raises:
        MarkerConfigurationError: If two definitions share an id
    """
    indexed: dict[int, MarkerDefinition] = {}
    for definition in definitions:
        if definition.id in indexed:
            raise MarkerConfigurationError(f"Duplicate marker id {definition.id}")
        indexed[definition.id] = definition
    return indexed

"""Tests for marker map loading and validation."""

from __future__ import annotations

import json
import math
from pathlib import Path

import pytest
from fiducial_locator.core.exceptions import MarkerConfigurationError
from fiducial_locator.core.markers import (
    index_by_id,
    load_marker_definitions,
    parse_marker_definitions,
    save_marker_definitions,
)
from fiducial_locator.core.types import (
    LengthUnit,
    MarkerDefinition,
    MarkerPosition,
    MarkerRotation,
)


@pytest.fixture
def marker_data() -> list[dict]:
    """Marker map as decoded JSON."""
    return [
        {
            "id": 27,
            "size": 0.1,
            "position": {"x": 0.0, "y": 0.552, "z": 1.5},
            "rotation": {"roll": 90, "pitch": 0, "yaw": 90},
            "max_distance": 3000,
            "max_distance_unit": "mm",
        },
        {
            "id": 3,
            "size": 15,
            "position": {"x": 100, "y": 0, "z": 0},
            "length_unit": "cm",
        },
    ]


class TestParseMarkerDefinitions:
    """Tests for validating marker data."""

    def test_parses_markers(self, marker_data: list[dict]) -> None:
        """Valid data becomes marker definitions in file order."""
        definitions = parse_marker_definitions(marker_data)

        assert [d.id for d in definitions] == [27, 3]
        wall = definitions[0]
        assert wall.position == MarkerPosition(0.0, 0.552, 1.5)
        assert wall.rotation == MarkerRotation(90.0, 0.0, 90.0)
        assert wall.max_distance_unit is LengthUnit.MILLIMETERS
        assert wall.max_distance_in_length_unit == pytest.approx(3.0)

    def test_defaults(self, marker_data: list[dict]) -> None:
        """Rotation and max distance are optional."""
        floor = parse_marker_definitions(marker_data)[1]

        assert floor.rotation == MarkerRotation()
        assert floor.max_distance is None
        assert floor.max_distance_in_length_unit is None
        assert floor.length_unit is LengthUnit.CENTIMETERS

    def test_duplicate_ids(self, marker_data: list[dict]) -> None:
        """Ids must be unique."""
        marker_data[1]["id"] = 27

        with pytest.raises(MarkerConfigurationError, match="duplicate marker id 27"):
            parse_marker_definitions(marker_data)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("size", 0),
            ("size", -0.1),
            ("id", -1),
            ("max_distance", 0),
            ("max_distance_unit", "km"),
            ("position", {"x": 0.0, "y": math.nan, "z": 0.0}),
            ("colour", "red"),
        ],
    )
    def test_invalid_fields(self, marker_data: list[dict], field: str, value: object) -> None:
        """Out of range, non-finite, unknown unit and unexpected fields are rejected."""
        marker_data[0][field] = value

        with pytest.raises(MarkerConfigurationError):
            parse_marker_definitions(marker_data)

    def test_not_a_list(self) -> None:
        """The top level must be a list of markers."""
        with pytest.raises(MarkerConfigurationError):
            parse_marker_definitions({"id": 1})


class TestMarkerFiles:
    """Tests for reading and writing marker maps."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        """Saved definitions load back unchanged."""
        definitions = [
            MarkerDefinition(
                id=5,
                size=0.2,
                position=MarkerPosition(1.0, 2.0, 0.5),
                rotation=MarkerRotation(roll=90.0, yaw=-45.0),
                max_distance=250.0,
                max_distance_unit=LengthUnit.CENTIMETERS,
            )
        ]
        path = tmp_path / "maps" / "markers.json"

        save_marker_definitions(definitions, path)

        assert json.loads(path.read_text())[0]["max_distance_unit"] == "cm"
        assert load_marker_definitions(path) == definitions

    def test_load_missing_file(self, tmp_path: Path) -> None:
        """A missing file is a configuration error."""
        with pytest.raises(MarkerConfigurationError):
            load_marker_definitions(tmp_path / "missing.json")

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        """Undecodable files are a configuration error."""
        path = tmp_path / "markers.json"
        path.write_text("[{")

        with pytest.raises(MarkerConfigurationError):
            load_marker_definitions(path)


class TestIndexById:
    """Tests for building the id lookup."""

    def test_index(self) -> None:
        """Definitions are keyed by id."""
        definitions = [
            MarkerDefinition(id=1, size=0.1, position=MarkerPosition(0.0, 0.0, 0.0)),
            MarkerDefinition(id=4, size=0.1, position=MarkerPosition(1.0, 0.0, 0.0)),
        ]

        indexed = index_by_id(definitions)

        assert sorted(indexed) == [1, 4]
        assert indexed[4] is definitions[1]

    def test_duplicates(self) -> None:
        """Duplicate ids are rejected."""
        definition = MarkerDefinition(id=1, size=0.1, position=MarkerPosition(0.0, 0.0, 0.0))

        with pytest.raises(MarkerConfigurationError):
            index_by_id([definition, definition])

#!/usr/bin/env python3
"""Locate the camera in a directory of still images.

Runs marker detection, pose estimation and fusion on every image and writes
the global camera position plus each per-marker estimate to a CSV file.
Images are treated as independent shots, so no temporal smoothing is applied.
"""

from __future__ import annotations

import argparse
import csv
import sys
from dataclasses import dataclass
from pathlib import Path

import cv2

from fiducial_locator.core.config import Settings, get_settings
from fiducial_locator.core.exceptions import FiducialLocatorError
from fiducial_locator.core.logging import get_logger, setup_logging
from fiducial_locator.core.markers import load_marker_definitions
from fiducial_locator.core.types import FusionMode
from fiducial_locator.pipeline.processor import LocalizationPipeline, ProcessedFrame
from fiducial_locator.vision.calibration import load_intrinsics_or_default

logger = get_logger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff"}

CSV_HEADER = [
    "filename",
    "marker_id",
    "x",
    "y",
    "z",
    "ransac_threshold",
    "filter_type",
    "is_global_position",
    "marker_count",
]


@dataclass
class PositionRow:
    """One CSV line: a global or per-marker camera position."""

    filename: str
    marker_id: str
    x: float | None = None
    y: float | None = None
    z: float | None = None
    ransac_threshold: float | None = None
    filter_type: str = ""
    is_global_position: bool | None = None
    marker_count: int | None = None

    def as_list(self) -> list[object]:
        """Values in CSV column order, blanks for missing fields."""
        values = [
            self.filename,
            self.marker_id,
            self.x,
            self.y,
            self.z,
            self.ransac_threshold,
            self.filter_type,
            self.is_global_position,
            self.marker_count,
        ]
        return ["" if v is None else v for v in values]


def find_images(directory: Path) -> list[Path]:
    """List image files in a directory, sorted by name."""
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES
    )


def rows_for_frame(filename: str, frame: ProcessedFrame, mode: FusionMode) -> list[PositionRow]:
    """Build the CSV rows for one processed image.

    Args:
        filename: Image file name
        frame: Pipeline result for the image
        mode: Fusion mode the position was computed with

    Returns:
        The global row first, followed by one row per marker estimate
    """
    fusion = frame.fusion
    if fusion is None:
        return [PositionRow(filename=filename, marker_id="NO_DETECTION", filter_type=mode.value)]

    rows = [
        PositionRow(
            filename=filename,
            marker_id="GLOBAL",
            x=fusion.position.x,
            y=fusion.position.y,
            z=fusion.position.z,
            ransac_threshold=fusion.threshold,
            filter_type=mode.value,
            is_global_position=True,
            marker_count=fusion.marker_count,
        )
    ]

    for estimate in fusion.estimates:
        rows.append(
            PositionRow(
                filename=filename,
                marker_id=str(estimate.marker_id),
                x=estimate.x,
                y=estimate.y,
                z=estimate.z,
                ransac_threshold=fusion.threshold,
                filter_type=mode.value,
                is_global_position=False,
                marker_count=1,
            )
        )

    return rows


def settings_for_mode(settings: Settings, mode: FusionMode | None) -> Settings:
    """Copy of the settings with the fusion mode overridden.

    The cached application settings are left untouched.
    """
    if mode is None:
        return settings
    fusion = settings.fusion.model_copy(update={"mode": mode})
    return settings.model_copy(update={"fusion": fusion})


def process_directory(
    pipeline: LocalizationPipeline,
    images: list[Path],
    output: Path,
) -> int:
    """Process every image and write the results.

    Args:
        pipeline: Configured localization pipeline
        images: Image files to process
        output: CSV output path

    Returns:
        Number of images where a global position was found
    """
    mode = pipeline.settings.fusion.mode
    located = 0

    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)

        for i, path in enumerate(images):
            image = cv2.imread(str(path))
            if image is None:
                logger.warning("Could not read image: %s", path)
                writer.writerow(PositionRow(path.name, "ERROR", filter_type=mode.value).as_list())
                continue

            try:
                frame = pipeline.process_image(image, source_identifier=path.name)
            except FiducialLocatorError as e:
                logger.warning("Failed to process %s: %s", path, e)
                writer.writerow(PositionRow(path.name, "ERROR", filter_type=mode.value).as_list())
                continue
            finally:
                # Shots are independent
                pipeline.reset()

            if frame.fusion is not None:
                located += 1

            for row in rows_for_frame(path.name, frame, mode):
                writer.writerow(row.as_list())

            if (i + 1) % 50 == 0:
                logger.info("Processed %d images...", i + 1)

    return located


def main() -> int:
    """Run batch processing script."""
    parser = argparse.ArgumentParser(description="Locate the camera in a directory of images")
    parser.add_argument(
        "images",
        type=Path,
        help="Directory containing the images",
    )
    parser.add_argument(
        "--markers",
        "-m",
        type=Path,
        required=True,
        help="Path to marker map JSON",
    )
    parser.add_argument(
        "--calibration",
        "-c",
        type=Path,
        help="Path to camera intrinsics JSON",
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in FusionMode],
        help="Fusion mode (default: from settings)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("positions.csv"),
        help="Output CSV (default: positions.csv)",
    )

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.logging.level, settings.logging.file)
    settings = settings_for_mode(settings, FusionMode(args.mode) if args.mode else None)

    if not args.images.is_dir():
        logger.error("Not a directory: %s", args.images)
        return 1

    try:
        definitions = load_marker_definitions(args.markers)
    except FiducialLocatorError as e:
        logger.error("%s", e)
        return 1

    intrinsics = load_intrinsics_or_default(args.calibration)
    pipeline = LocalizationPipeline(definitions, intrinsics, settings)

    images = find_images(args.images)
    if not images:
        logger.warning("No images found in %s", args.images)
        return 1

    located = process_directory(pipeline, images, args.output)
    logger.info(
        "Located camera in %d of %d images, results saved to %s",
        located,
        len(images),
        args.output,
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Camera localization from ArUco markers with known world placements."""

__version__ = "0.1.0"

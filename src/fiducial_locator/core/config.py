"""Application configuration via Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fiducial_locator.core.types import FusionMode, RefinementStrategy


class DetectorSettings(BaseSettings):
    """ArUco detector settings."""

    model_config = SettingsConfigDict(env_prefix="ARUCO_")

    dictionary: str = "DICT_6X6_250"
    subpixel_refinement: bool = True


class PoseSettings(BaseSettings):
    """Per-marker pose estimation and gating."""

    model_config = SettingsConfigDict(env_prefix="POSE_")

    use_calibration: bool = True
    refinement: RefinementStrategy = RefinementStrategy.LEVENBERG_MARQUARDT
    max_viewing_angle_deg: float | None = Field(default=None, gt=0, le=180)
    min_pixel_size: float | None = Field(default=None, gt=0)
    # Only used when use_calibration is False
    focal_length_px: float | None = Field(default=None, gt=0)


class FusionSettings(BaseSettings):
    """Multi-marker fusion parameters."""

    model_config = SettingsConfigDict(env_prefix="FUSION_")

    mode: FusionMode = FusionMode.WEIGHTED_MEDIAN
    ransac_threshold: float = 0.2
    ransac_threshold_max: float | None = 0.4
    ransac_threshold_step: float = Field(default=0.1, gt=0)
    closest_markers_used: int = Field(default=0, ge=0)
    reject_negative_z: bool = True


class FilterSettings(BaseSettings):
    """Kalman filter parameters."""

    model_config = SettingsConfigDict(env_prefix="KALMAN_")

    enabled: bool = True
    process_noise: float = Field(default=1e-4, gt=0)
    measurement_noise: float = Field(default=1e-2, gt=0)
    initial_error_covariance: float = Field(default=1.0, gt=0)
    reset_after_gap: bool = True


class CalibrationSettings(BaseSettings):
    """Where camera intrinsics come from."""

    model_config = SettingsConfigDict(env_prefix="CALIBRATION_")

    file: str | None = None
    focal_length_mm: float | None = Field(default=None, gt=0)
    sensor_width_mm: float | None = Field(default=None, gt=0)


class MarkerSettings(BaseSettings):
    """Marker map location."""

    model_config = SettingsConfigDict(env_prefix="MARKERS_")

    file: str | None = None


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    file: str | None = None


class Settings(BaseSettings):
    """Root settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    pose: PoseSettings = Field(default_factory=PoseSettings)
    fusion: FusionSettings = Field(default_factory=FusionSettings)
    filter: FilterSettings = Field(default_factory=FilterSettings)
    calibration: CalibrationSettings = Field(default_factory=CalibrationSettings)
    markers: MarkerSettings = Field(default_factory=MarkerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings instance."""
    return Settings()

"""Frame processing pipeline orchestration."""

from fiducial_locator.pipeline.processor import LocalizationPipeline, ProcessedFrame

__all__ = ["LocalizationPipeline", "ProcessedFrame"]

"""Error taxonomy for the segmentation and extraction pipeline.

Fatal errors (ProbeFailure, DetectionFailure, ConfigurationError) abort a run.
SegmentRejected and ExtractionFailure are contained: the refiner filters rejected
candidates and the scheduler records extraction failures in the report.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scenecut.video.ffmpeg import FFmpegAttempt


class ScenecutError(Exception):
    """Base class for all scenecut errors."""


class ConfigurationError(ScenecutError):
    """Raised before any dispatch when external tools or settings are unusable."""


class ProbeFailure(ScenecutError):
    """Raised when ffprobe fails, its output is unparsable, or there is no video stream."""


class DetectionFailure(ScenecutError):
    """Raised when the scene-change pass cannot start or crashes before producing any output."""


class SegmentRejected(ScenecutError):
    """A candidate segment is shorter than the minimum viable length. Never escapes the refiner."""

    pass


class ExtractionFailure(ScenecutError):
    """One extraction task failed. Recorded per task; never aborts the run."""

    def __init__(self, message: str, *, attempt: "FFmpegAttempt | None" = None) -> None:
        super().__init__(message)
        self.attempt = attempt


class OutputMissing(ExtractionFailure):
    """The transcoder exited 0 but the expected output file is absent or empty."""

"""Domain records for segmentation and extraction. All are immutable once produced."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


# --- Enums ---


class ArtifactKind(str, Enum):
    frame = "frame"
    clip = "clip"


class NamingMode(str, Enum):
    sequence = "sequence"
    ratio = "ratio"  # time / total duration, 4 decimals


@dataclass(frozen=True)
class VideoInfo:
    """Probe result for one source video."""

    duration: float
    width: int
    height: int
    fps: float
    frame_rate: str  # reduced "N/D"
    codec: str | None = None
    bitrate: int | None = None

    @property
    def frame_time(self) -> float:
        return 1.0 / self.fps

    @property
    def total_frames(self) -> int:
        return math.floor(self.duration * self.fps)


@dataclass(frozen=True)
class Segment:
    """
    Time-bounded unit between two cut points.

    end_time is exclusive: (out_frame + 1) * frame_time. in_frame/out_frame are None for
    time-only segments; frame_count is then 0.
    """

    start_time: float
    end_time: float
    duration: float
    index: int
    in_frame: int | None = None
    out_frame: int | None = None
    frame_count: int = 0

    @property
    def has_frame_bounds(self) -> bool:
        return self.in_frame is not None and self.out_frame is not None


@dataclass(frozen=True)
class ExtractionSettings:
    """Per-run extraction parameters shared by every task."""

    image_format: str = "jpg"
    quality: int = 8
    naming: NamingMode = NamingMode.sequence
    total_duration: float = 0.0
    fps: float | None = None
    hwaccel: bool = False
    max_clip_seconds: float = 30.0


@dataclass(frozen=True)
class ExtractionTask:
    """One segment to extract. original_index fixes the result slot."""

    segment: Segment
    source_path: Path
    settings: ExtractionSettings
    original_index: int

    @property
    def sequence(self) -> int:
        """1-based sequence number used in filenames."""
        return self.original_index + 1


@dataclass(frozen=True)
class Artifact:
    """One produced output file plus its metadata record."""

    path: Path
    filename: str
    kind: ArtifactKind
    time_seconds: float
    index: int
    file_size: int
    format: str
    quality: int
    frame_number: int | None = None
    start_time: float | None = None
    end_time: float | None = None


@dataclass(frozen=True)
class TaskFailure:
    """A contained per-task failure, recorded in the report."""

    original_index: int
    error: str
    error_type: str


@dataclass(frozen=True)
class ExtractionReport:
    """
    Aggregate of one extraction run. artifacts has one slot per submitted segment,
    in submission order; failed slots are None.
    """

    kind: ArtifactKind
    artifacts: list[Artifact | None]
    failures: list[TaskFailure] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def skipped_count(self) -> int:
        """Empty slots that are not failures (never dispatched because the run was cancelled)."""
        return sum(1 for a in self.artifacts if a is None) - len(self.failures)

    @property
    def successful(self) -> list[Artifact]:
        return [a for a in self.artifacts if a is not None]

    @property
    def total(self) -> int:
        return len(self.artifacts)


@dataclass
class ProcessingResult:
    """Everything one pipeline run produced for one source video."""

    source_path: Path
    video_info: VideoInfo
    segments: list[Segment]
    output_dir: Path
    frames: ExtractionReport | None = None
    clips: ExtractionReport | None = None
    imported_count: int = 0
    import_failures: int = 0
    sidecar_paths: list[Path] = field(default_factory=list)
    selected_paths: list[Path] = field(default_factory=list)
    cancelled: bool = False
    finished_at: datetime | None = None

    @property
    def reports(self) -> list[ExtractionReport]:
        return [r for r in (self.frames, self.clips) if r is not None]

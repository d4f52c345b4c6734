"""Domain records (dataclasses) and the JSON sidecar contract (Pydantic)."""

from scenecut.models.entities import (
    Artifact,
    ArtifactKind,
    ExtractionReport,
    ExtractionSettings,
    ExtractionTask,
    NamingMode,
    ProcessingResult,
    Segment,
    TaskFailure,
    VideoInfo,
)
from scenecut.models.sidecar import SidecarMetadata, write_sidecar

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ExtractionReport",
    "ExtractionSettings",
    "ExtractionTask",
    "NamingMode",
    "ProcessingResult",
    "Segment",
    "SidecarMetadata",
    "TaskFailure",
    "VideoInfo",
    "write_sidecar",
]

"""Pydantic contract for the JSON metadata sidecar written next to extracted artifacts."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from scenecut.core.io_utils import format_file_size
from scenecut.models.entities import Artifact, ExtractionReport


class ArtifactRecord(BaseModel):
    """One artifact line in the sidecar."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str
    time_seconds: float = Field(alias="timeSeconds")
    index: int
    frame_number: int | None = Field(default=None, alias="frameNumber")
    start_time: float | None = Field(default=None, alias="startTime")
    end_time: float | None = Field(default=None, alias="endTime")
    file_size: int = Field(alias="fileSize")
    formatted_size: str = Field(alias="formattedSize")

    @classmethod
    def from_artifact(cls, artifact: Artifact) -> "ArtifactRecord":
        return cls(
            filename=artifact.filename,
            time_seconds=round(artifact.time_seconds, 6),
            index=artifact.index,
            frame_number=artifact.frame_number,
            start_time=artifact.start_time,
            end_time=artifact.end_time,
            file_size=artifact.file_size,
            formatted_size=format_file_size(artifact.file_size),
        )


class SidecarMetadata(BaseModel):
    """Totals and per-artifact records for one extraction report."""

    model_config = ConfigDict(populate_by_name=True)

    source_video: str = Field(alias="sourceVideo")
    video_path: str = Field(alias="videoPath")
    extracted_at: datetime = Field(alias="extractedAt")
    kind: str
    total_count: int = Field(alias="totalCount")
    failure_count: int = Field(default=0, alias="failureCount")
    total_size: int = Field(alias="totalSize")
    formatted_total_size: str = Field(alias="formattedTotalSize")
    output_directory: str = Field(alias="outputDirectory")
    settings: dict[str, Any] = Field(default_factory=dict)
    artifacts: list[ArtifactRecord] = Field(default_factory=list)


def sidecar_filename(base_name: str, kind: str) -> str:
    """'<base>_<kind>s_metadata.json', e.g. 'clip01_frames_metadata.json'."""
    return f"{base_name}_{kind}s_metadata.json"


def build_sidecar(
    report: ExtractionReport,
    *,
    source_path: Path,
    output_dir: Path,
    settings: dict[str, Any] | None = None,
) -> SidecarMetadata:
    artifacts = report.successful
    total_size = sum(a.file_size for a in artifacts)
    return SidecarMetadata(
        source_video=source_path.stem,
        video_path=str(source_path),
        extracted_at=datetime.now(timezone.utc),
        kind=report.kind.value,
        total_count=len(artifacts),
        failure_count=report.failure_count,
        total_size=total_size,
        formatted_total_size=format_file_size(total_size),
        output_directory=str(output_dir),
        settings=settings or {},
        artifacts=[ArtifactRecord.from_artifact(a) for a in artifacts],
    )


def write_sidecar(
    report: ExtractionReport,
    *,
    source_path: Path,
    output_dir: Path,
    settings: dict[str, Any] | None = None,
) -> Path:
    """Serialize the report's sidecar (camelCase keys) into output_dir and return its path."""
    sidecar = build_sidecar(report, source_path=source_path, output_dir=output_dir, settings=settings)
    path = output_dir / sidecar_filename(source_path.stem, report.kind.value)
    path.write_text(sidecar.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    return path

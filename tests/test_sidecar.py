"""Tests for the JSON metadata sidecar."""

import json
from pathlib import Path

import pytest

from scenecut.models.entities import Artifact, ArtifactKind, ExtractionReport, TaskFailure
from scenecut.models.sidecar import build_sidecar, sidecar_filename, write_sidecar

pytestmark = [pytest.mark.fast]


def _report(tmp_path: Path) -> ExtractionReport:
    artifacts = [
        Artifact(
            path=tmp_path / f"clip01_frame_00{i}.jpg",
            filename=f"clip01_frame_00{i}.jpg",
            kind=ArtifactKind.frame,
            time_seconds=i * 2.5,
            index=i,
            file_size=1024 * i,
            format="jpg",
            quality=8,
            frame_number=i * 62,
        )
        for i in (1, 2)
    ]
    return ExtractionReport(
        kind=ArtifactKind.frame,
        artifacts=[artifacts[0], None, artifacts[1]],
        failures=[TaskFailure(1, "boom", "ExtractionFailure")],
    )


def test_sidecar_filename():
    """Sidecar name is <base>_<kind>s_metadata.json."""
    assert sidecar_filename("clip01", "frame") == "clip01_frames_metadata.json"


def test_build_sidecar_totals(tmp_path):
    """Totals count successful artifacts only."""
    sidecar = build_sidecar(_report(tmp_path), source_path=tmp_path / "clip01.mp4", output_dir=tmp_path)
    assert sidecar.total_count == 2
    assert sidecar.failure_count == 1
    assert sidecar.total_size == 3072
    assert sidecar.formatted_total_size == "3 KB"
    assert [a.index for a in sidecar.artifacts] == [1, 2]


def test_write_sidecar_uses_camel_case_keys(tmp_path):
    """The written JSON uses camelCase keys for every record."""
    path = write_sidecar(_report(tmp_path), source_path=tmp_path / "clip01.mp4", output_dir=tmp_path, settings={"quality": 8})
    assert path.name == "clip01_frames_metadata.json"
    data = json.loads(path.read_text())
    assert data["sourceVideo"] == "clip01"
    assert data["videoPath"] == str(tmp_path / "clip01.mp4")
    assert "extractedAt" in data
    assert data["totalCount"] == 2
    assert data["settings"] == {"quality": 8}
    first = data["artifacts"][0]
    assert first["filename"] == "clip01_frame_001.jpg"
    assert first["timeSeconds"] == 2.5
    assert first["frameNumber"] == 62
    assert first["fileSize"] == 1024
    assert first["formattedSize"] == "1 KB"

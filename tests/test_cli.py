"""Tests for the Typer CLI, with external tools patched out."""

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from conftest import FakeFFmpeg, make_video_info
from scenecut.cli import app
from scenecut.core.config import ToolPaths
from scenecut.core.errors import ConfigurationError, ProbeFailure

pytestmark = [pytest.mark.fast]

runner = CliRunner()
TOOLS = ToolPaths("/usr/bin/ffmpeg", "/usr/bin/ffprobe")


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run every command from tmp_path with a clean root logger and no config env."""
    monkeypatch.chdir(tmp_path)
    for name in ("SCENECUT_CONFIG", "FFMPEG_PATH", "FFPROBE_PATH"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    previous = root.handlers[:]
    yield tmp_path
    for h in root.handlers[:]:
        root.removeHandler(h)
    for h in previous:
        root.addHandler(h)


def test_config_show_prints_effective_yaml(tmp_path):
    """config show merges the YAML file over defaults."""
    cfg = tmp_path / "scenecut.yml"
    cfg.write_text("processing:\n  sensitivity: 0.45\noutput:\n  quality: 6\n")
    result = runner.invoke(app, ["config", "show", "-c", str(cfg)])
    assert result.exit_code == 0, result.output
    assert "sensitivity: 0.45" in result.output
    assert "quality: 6" in result.output
    assert "ffmpeg: ffmpeg" in result.output


def test_config_show_missing_file_exits_1(tmp_path):
    """A missing explicit config is reported and exits 1."""
    result = runner.invoke(app, ["config", "show", "-c", str(tmp_path / "nope.yml")])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_probe_json(source_video):
    """probe --json prints VideoInfo with total_frames."""
    with patch("scenecut.cli.resolve_tool_paths", return_value=TOOLS), patch(
        "scenecut.cli.probe_video_info", AsyncMock(return_value=make_video_info())
    ) as probe:
        result = runner.invoke(app, ["probe", str(source_video), "--json"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["width"] == 1920
    assert data["frame_rate"] == "25/1"
    assert data["total_frames"] == 750
    assert probe.await_args.kwargs["ffprobe"] == "/usr/bin/ffprobe"


def test_probe_failure_exits_1_and_dumps_flight_log(tmp_path, source_video):
    """A fatal error exits 1 and writes the flight log to the forensics dir."""
    with patch("scenecut.cli.resolve_tool_paths", return_value=TOOLS), patch(
        "scenecut.cli.probe_video_info", AsyncMock(side_effect=ProbeFailure("no video stream"))
    ):
        result = runner.invoke(app, ["probe", str(source_video)])
    assert result.exit_code == 1
    assert "no video stream" in result.output
    dumps = list((tmp_path / "logs" / "forensics").glob("scenecut-*_clip01_*.log"))
    assert len(dumps) == 1


def test_probe_missing_tools_exits_1(source_video):
    """Unresolvable tools are a ConfigurationError and exit 1."""
    with patch("scenecut.cli.resolve_tool_paths", side_effect=ConfigurationError("External tools not found: ffprobe")):
        result = runner.invoke(app, ["probe", str(source_video)])
    assert result.exit_code == 1
    assert "External tools not found" in result.output


def test_detect_json_lists_cuts_and_segments(source_video):
    """detect --json prints the raw cuts and refined segments."""
    with patch("scenecut.cli.resolve_tool_paths", return_value=TOOLS), patch(
        "scenecut.cli.probe_video_info", AsyncMock(return_value=make_video_info())
    ), patch("scenecut.cli.detect_scene_changes", AsyncMock(return_value=[4.0, 12.0, 20.0])) as detect:
        result = runner.invoke(app, ["detect", str(source_video), "--json", "-s", "0.4"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["cuts"] == [4.0, 12.0, 20.0]
    assert data["segments"]
    assert detect.await_args.args[1] == 0.4


def test_detect_rejects_out_of_range_sensitivity(source_video):
    """Sensitivity outside 0.1-0.7 is a usage error."""
    result = runner.invoke(app, ["detect", str(source_video), "-s", "0.9"])
    assert result.exit_code == 2


def test_extract_writes_frames(tmp_path, source_video):
    """extract runs the whole pipeline and writes frames under <output>/<video stem>."""
    fake = FakeFFmpeg()
    with patch("scenecut.video.processor.resolve_tool_paths", return_value=TOOLS), patch(
        "scenecut.video.processor.probe_video_info", AsyncMock(return_value=make_video_info())
    ), patch(
        "scenecut.video.processor.detect_scene_changes", AsyncMock(return_value=[4.0, 12.0, 20.0])
    ), patch("scenecut.video.engine.run_process", fake):
        result = runner.invoke(
            app,
            ["extract", str(source_video), "-o", str(tmp_path / "out"), "--format", "png", "-q", "10", "-j", "2"],
        )
    assert result.exit_code == 0, result.output
    out_dir = tmp_path / "out" / "clip01"
    frames = sorted(out_dir.glob("clip01_frame_*.png"))
    assert frames
    assert (out_dir / "clip01_frames_metadata.json").exists()
    assert all(cmd[cmd.index("-q:v") + 1] == "1" for cmd in fake.calls)


def test_extract_reports_failed_videos(tmp_path, source_video):
    """Per-video failures are listed and the command exits 1."""
    fake = FakeFFmpeg()
    missing = tmp_path / "missing.mp4"
    with patch("scenecut.video.processor.resolve_tool_paths", return_value=TOOLS), patch(
        "scenecut.video.processor.probe_video_info", AsyncMock(return_value=make_video_info())
    ), patch(
        "scenecut.video.processor.detect_scene_changes", AsyncMock(return_value=[4.0, 12.0, 20.0])
    ), patch("scenecut.video.engine.run_process", fake):
        result = runner.invoke(app, ["extract", str(source_video), str(missing), "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "1 of 2 videos failed" in result.output
    assert (tmp_path / "out" / "clip01" / "clip01_frames_metadata.json").exists()


def test_extract_missing_tools_exits_1(source_video):
    """Missing ffmpeg aborts the batch with exit 1."""
    with patch(
        "scenecut.video.processor.resolve_tool_paths",
        side_effect=ConfigurationError("External tools not found: ffmpeg"),
    ):
        result = runner.invoke(app, ["extract", str(source_video)])
    assert result.exit_code == 1
    assert "External tools not found" in result.output

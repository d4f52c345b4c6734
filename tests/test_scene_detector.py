"""Tests for scene_detector: stderr scraping, min-gap thinning, and failure classification."""

from unittest.mock import patch

import pytest

from scenecut.core.errors import DetectionFailure
from scenecut.video.ffmpeg import FFmpegAttempt
from scenecut.video.scene_detector import (
    detect_scene_changes,
    detection_cmd,
    enforce_min_gap,
    parse_progress_time,
    parse_pts_time,
)

pytestmark = [pytest.mark.fast]

SHOWINFO_LINES = [
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'clip01.mp4':",
    "[Parsed_showinfo_1 @ 0x7f] n:   0 pts:  12800 pts_time:5.0     duration:512 fmt:yuv420p",
    "frame=   10 fps=0.0 q=-0.0 size=N/A time=00:00:06.00 bitrate=N/A speed=12x",
    "[Parsed_showinfo_1 @ 0x7f] n:   1 pts:  13056 pts_time:5.1     duration:512",
    "[Parsed_showinfo_1 @ 0x7f] n:   2 pts:  30720 pts_time:12.0    duration:512",
    "[Parsed_showinfo_1 @ 0x7f] n:   3 pts:      0 pts_time:0       duration:512",
    "frame=   20 fps=0.0 q=-0.0 size=N/A time=00:00:15.00 bitrate=N/A speed=12x",
    "[Parsed_showinfo_1 @ 0x7f] n:   4 pts:  30720 pts_time:12.0    duration:512",
]


def _fake_runner(lines, returncode=0):
    async def run(cmd, *, on_stderr_line=None, **kwargs):
        for line in lines:
            if on_stderr_line is not None:
                on_stderr_line(line)
        return FFmpegAttempt(cmd=list(cmd), returncode=returncode, stderr="\n".join(lines), stderr_lines=len(lines))

    return run


def test_parse_pts_time():
    """pts_time values are parsed; zero and missing values are ignored."""
    assert parse_pts_time("n: 1 pts: 5 pts_time:12.48 duration") == pytest.approx(12.48)
    assert parse_pts_time("pts_time:0") is None
    assert parse_pts_time("frame=10 time=00:00:01.00") is None


def test_parse_progress_time():
    """time=HH:MM:SS.ms markers convert to seconds."""
    assert parse_progress_time("size=N/A time=01:02:03.50 bitrate=N/A") == pytest.approx(3723.5)
    assert parse_progress_time("no marker") is None


def test_enforce_min_gap_keeps_earliest_of_cluster():
    """Timestamps closer than min_gap collapse to the earliest one."""
    assert enforce_min_gap([3.0, 1.0, 1.4, 2.1, 2.1, 9.0], 1.0) == [1.0, 2.1, 9.0]


def test_enforce_min_gap_output_is_strictly_ascending():
    """Result is strictly ascending with gaps >= min_gap."""
    out = enforce_min_gap([0.5 * i for i in range(40)] + [3.3, 7.7], 1.0)
    assert all(b - a >= 1.0 for a, b in zip(out, out[1:]))


def test_detection_cmd_shape():
    """The scene filter carries the sensitivity threshold; output goes to the null muxer."""
    cmd = detection_cmd("in.mp4", 0.3, ffmpeg="/usr/bin/ffmpeg")
    assert cmd[0] == "/usr/bin/ffmpeg"
    assert "select='gt(scene,0.3)',showinfo" in cmd
    assert cmd[-3:] == ["-f", "null", "-"]


@pytest.mark.asyncio
async def test_detect_collects_dedupes_and_thins():
    """Scraped timestamps are deduped, sorted and thinned by min_gap."""
    with patch("scenecut.video.scene_detector.run_process", _fake_runner(SHOWINFO_LINES)):
        cuts = await detect_scene_changes("clip01.mp4", 0.3, min_gap=1.0)
    assert cuts == [5.0, 12.0]


@pytest.mark.asyncio
async def test_detect_reports_capped_progress():
    """time= markers become monotonically increasing progress capped at 0.95."""
    seen: list[float] = []
    with patch("scenecut.video.scene_detector.run_process", _fake_runner(SHOWINFO_LINES)):
        await detect_scene_changes("clip01.mp4", 0.3, duration=10.0, on_progress=seen.append)
    assert seen == [pytest.approx(0.6), pytest.approx(0.95)]


@pytest.mark.asyncio
@pytest.mark.parametrize("sensitivity", [0.0, 1.0, -0.2, 1.5])
async def test_detect_rejects_out_of_range_sensitivity(sensitivity):
    """Sensitivity must lie strictly between 0 and 1."""
    with pytest.raises(ValueError):
        await detect_scene_changes("clip01.mp4", sensitivity)


@pytest.mark.asyncio
async def test_nonzero_exit_without_cuts_is_empty_result():
    """A failing pass that produced diagnostics but no cuts returns []."""
    lines = ["Input #0 ...", "Error while decoding stream #0:0"]
    with patch("scenecut.video.scene_detector.run_process", _fake_runner(lines, returncode=1)):
        assert await detect_scene_changes("clip01.mp4", 0.3) == []


@pytest.mark.asyncio
async def test_crash_without_output_is_detection_failure():
    """Non-zero exit with no stderr at all raises DetectionFailure."""
    with patch("scenecut.video.scene_detector.run_process", _fake_runner([], returncode=139)):
        with pytest.raises(DetectionFailure):
            await detect_scene_changes("clip01.mp4", 0.3)


@pytest.mark.asyncio
async def test_missing_binary_is_detection_failure():
    """FileNotFoundError from spawning FFmpeg becomes DetectionFailure."""

    async def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    with patch("scenecut.video.scene_detector.run_process", missing):
        with pytest.raises(DetectionFailure):
            await detect_scene_changes("clip01.mp4", 0.3, ffmpeg="/nope/ffmpeg")

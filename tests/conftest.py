"""Pytest fixtures: sample VideoInfo, task builders, and a fake FFmpeg runner for engine tests."""

import sys
from pathlib import Path

import pytest

from scenecut.models.entities import ExtractionSettings, ExtractionTask, Segment, VideoInfo
from scenecut.video.ffmpeg import FFmpegAttempt


def make_video_info(duration: float = 30.0, fps: float = 25.0, frame_rate: str | None = None) -> VideoInfo:
    return VideoInfo(
        duration=duration,
        width=1920,
        height=1080,
        fps=fps,
        frame_rate=frame_rate or f"{int(fps)}/1",
        codec="h264",
        bitrate=4_000_000,
    )


def make_segments(count: int, *, fps: float = 25.0, frames_each: int = 50) -> list[Segment]:
    frame_time = 1.0 / fps
    segments = []
    for i in range(count):
        in_frame = i * (frames_each + 6) + 3
        out_frame = in_frame + frames_each - 1
        start = in_frame * frame_time
        end = (out_frame + 1) * frame_time
        segments.append(
            Segment(
                start_time=start,
                end_time=end,
                duration=end - start,
                index=i,
                in_frame=in_frame,
                out_frame=out_frame,
                frame_count=frames_each,
            )
        )
    return segments


def make_tasks(
    segments: list[Segment],
    source: Path,
    settings: ExtractionSettings | None = None,
) -> list[ExtractionTask]:
    settings = settings or ExtractionSettings(fps=25.0, total_duration=30.0)
    return [
        ExtractionTask(segment=s, source_path=source, settings=settings, original_index=i)
        for i, s in enumerate(segments)
    ]


class FakeFFmpeg:
    """
    Async stand-in for run_process. Writes the output file (last argv element) and succeeds,
    unless the command matches one of fail_on (substring of the output path).
    """

    def __init__(self, *, fail_on: tuple[str, ...] = (), empty_on: tuple[str, ...] = (), fail_times: int | None = None):
        self.calls: list[list[str]] = []
        self.fail_on = fail_on
        self.empty_on = empty_on
        self.fail_times = fail_times
        self._failures = 0

    async def __call__(self, cmd, **kwargs) -> FFmpegAttempt:
        self.calls.append(list(cmd))
        dest = Path(cmd[-1])
        if any(token in dest.name for token in self.fail_on):
            if self.fail_times is None or self._failures < self.fail_times:
                self._failures += 1
                return FFmpegAttempt(cmd=list(cmd), returncode=1, stderr="Conversion failed!", stderr_lines=1)
        if any(token in dest.name for token in self.empty_on):
            dest.write_bytes(b"")
        else:
            dest.write_bytes(b"\xff\xd8fake-image-data")
        return FFmpegAttempt(cmd=list(cmd), returncode=0, stderr="")


@pytest.fixture
def video_info() -> VideoInfo:
    return make_video_info()


@pytest.fixture
def source_video(tmp_path) -> Path:
    p = tmp_path / "clip01.mp4"
    p.write_bytes(b"not really a video")
    return p


@pytest.fixture
def python_exe() -> str:
    """Interpreter used as a stand-in binary for real-subprocess tests."""
    return sys.executable

"""ffprobe-based video metadata: duration, dimensions, frame rate, codec, bitrate."""

import json
import logging
from fractions import Fraction
from pathlib import Path
from typing import Any

from scenecut.core.errors import ProbeFailure
from scenecut.models.entities import VideoInfo
from scenecut.video.ffmpeg import run_process

_log = logging.getLogger(__name__)

PROBE_TIMEOUT_SEC = 60.0


def probe_cmd(source: Path, *, ffprobe: str = "ffprobe") -> list[str]:
    return [
        ffprobe,
        "-v",
        "quiet",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(source),
    ]


def parse_frame_rate(value: str) -> Fraction:
    """
    Parse an ffprobe rational ("30000/1001", "25/1") or bare number ("25") into a reduced Fraction.

    Numerator and denominator are parsed as integers; anything else raises ValueError.
    """
    text = str(value).strip()
    if "/" in text:
        num_str, _, den_str = text.partition("/")
        try:
            num = int(num_str.strip())
            den = int(den_str.strip())
        except ValueError:
            raise ValueError(f"Malformed frame rate: {value!r}") from None
    else:
        try:
            return _positive(Fraction(text), value)
        except (ValueError, ZeroDivisionError):
            raise ValueError(f"Malformed frame rate: {value!r}") from None
    if den == 0:
        raise ValueError(f"Frame rate has zero denominator: {value!r}")
    return _positive(Fraction(num, den), value)


def _positive(rate: Fraction, original: str) -> Fraction:
    if rate <= 0:
        raise ValueError(f"Frame rate must be positive: {original!r}")
    return rate


def _first_video_stream(info: dict[str, Any]) -> dict[str, Any] | None:
    for stream in info.get("streams") or []:
        if isinstance(stream, dict) and stream.get("codec_type") == "video":
            return stream
    return None


def _optional_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_probe_output(stdout: str, *, source: str = "<stdin>") -> VideoInfo:
    """Build VideoInfo from ffprobe JSON. Raises ProbeFailure on anything unusable."""
    try:
        info = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ProbeFailure(f"ffprobe output for {source} is not valid JSON: {e}") from e
    if not isinstance(info, dict):
        raise ProbeFailure(f"ffprobe output for {source} is not a JSON object")

    stream = _first_video_stream(info)
    if stream is None:
        raise ProbeFailure(f"No video stream found in {source}")

    rate_text = stream.get("r_frame_rate") or stream.get("avg_frame_rate")
    if not rate_text:
        raise ProbeFailure(f"Video stream in {source} has no frame rate")
    try:
        rate = parse_frame_rate(rate_text)
    except ValueError as e:
        raise ProbeFailure(f"Unusable frame rate in {source}: {e}") from e

    fmt = info.get("format") or {}
    duration = _optional_float(fmt.get("duration"))
    if duration is None or duration <= 0:
        duration = _optional_float(stream.get("duration"))
    if duration is None or duration <= 0:
        raise ProbeFailure(f"No positive duration reported for {source}")

    width = _optional_int(stream.get("width"))
    height = _optional_int(stream.get("height"))
    if not width or not height or width <= 0 or height <= 0:
        raise ProbeFailure(f"Invalid video dimensions in {source}: {width}x{height}")

    return VideoInfo(
        duration=duration,
        width=width,
        height=height,
        fps=rate.numerator / rate.denominator,
        frame_rate=f"{rate.numerator}/{rate.denominator}",
        codec=stream.get("codec_name"),
        bitrate=_optional_int(fmt.get("bit_rate")),
    )


async def probe_video_info(source: str | Path, *, ffprobe: str = "ffprobe") -> VideoInfo:
    """
    Run ffprobe (JSON output) on source and return its VideoInfo.

    Raises ProbeFailure when ffprobe cannot be started, exits non-zero, or its output is unusable.
    """
    source = Path(source)
    cmd = probe_cmd(source, ffprobe=ffprobe)
    try:
        attempt = await run_process(cmd, capture_stdout=True, timeout=PROBE_TIMEOUT_SEC)
    except OSError as e:
        raise ProbeFailure(f"Could not start ffprobe ({ffprobe}): {e}") from e
    if not attempt.ok:
        reason = "timed out" if attempt.timed_out else f"exited with code {attempt.returncode}"
        raise ProbeFailure(
            f"ffprobe {reason} for {source}. Repro: {attempt.repro}\n{attempt.stderr_tail()}".rstrip()
        )
    video_info = parse_probe_output(attempt.stdout, source=str(source))
    _log.info(
        "Probed %s: %.3fs %dx%d @ %s fps (%s), %s frames",
        source,
        video_info.duration,
        video_info.width,
        video_info.height,
        video_info.frame_rate,
        video_info.codec,
        video_info.total_frames,
    )
    return video_info

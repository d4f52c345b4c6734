"""Scene-change detection: FFmpeg select(scene)+showinfo pass, stderr scraped for pts_time."""

import logging
import re
from pathlib import Path
from typing import Callable, Iterable

from scenecut.core.errors import DetectionFailure
from scenecut.video.ffmpeg import run_process

_log = logging.getLogger(__name__)

PTS_REGEX = re.compile(r"pts_time:(\d+(?:\.\d*)?)")
FRAME_COUNTER_REGEX = re.compile(r"\bn:\s*(\d+)")
TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")

DEFAULT_MIN_GAP_SEC = 1.0
# Progress horizon when the video duration is unknown.
UNKNOWN_DURATION_HORIZON_SEC = 120.0
# Local progress never reaches 1.0 from time= markers; the caller completes the stage.
PROGRESS_CAP = 0.95


def detection_cmd(source: Path, sensitivity: float, *, ffmpeg: str = "ffmpeg") -> list[str]:
    return [
        ffmpeg,
        "-hide_banner",
        "-nostdin",
        "-i",
        str(source),
        "-filter:v",
        f"select='gt(scene,{sensitivity})',showinfo",
        "-f",
        "null",
        "-",
    ]


def parse_pts_time(line: str) -> float | None:
    """Return the positive pts_time on a showinfo line, or None."""
    m = PTS_REGEX.search(line)
    if not m:
        return None
    try:
        value = float(m.group(1))
    except ValueError:
        return None
    return value if value > 0 else None


def parse_progress_time(line: str) -> float | None:
    """Seconds from an FFmpeg 'time=HH:MM:SS.ms' stats marker, or None."""
    m = TIME_REGEX.search(line)
    if not m:
        return None
    hours, minutes, seconds = m.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def enforce_min_gap(timestamps: Iterable[float], min_gap: float = DEFAULT_MIN_GAP_SEC) -> list[float]:
    """
    Dedupe and sort, then keep the earliest timestamp of every cluster closer than min_gap.

    The result is strictly ascending with consecutive gaps >= min_gap.
    """
    kept: list[float] = []
    for t in sorted(set(timestamps)):
        if not kept or t - kept[-1] >= min_gap:
            kept.append(t)
    return kept


class _DiagnosticScraper:
    """Per-line stderr handler for one detection run."""

    def __init__(
        self,
        duration: float | None,
        on_progress: Callable[[float], None] | None,
    ) -> None:
        self.timestamps: list[float] = []
        self.last_frame_counter: int | None = None
        self._duration = duration
        self._on_progress = on_progress
        self._last_progress = 0.0

    def __call__(self, line: str) -> None:
        pts = parse_pts_time(line)
        if pts is not None:
            self.timestamps.append(pts)
            _log.debug("Scene change at %.3fs", pts)
        m = FRAME_COUNTER_REGEX.search(line)
        if m and "pts_time:" in line:
            self.last_frame_counter = int(m.group(1))
        if self._on_progress is not None:
            current = parse_progress_time(line)
            if current is not None:
                horizon = self._duration if self._duration and self._duration > 0 else UNKNOWN_DURATION_HORIZON_SEC
                fraction = min(current / horizon, PROGRESS_CAP)
                if fraction > self._last_progress:
                    self._last_progress = fraction
                    self._on_progress(fraction)


async def detect_scene_changes(
    source: str | Path,
    sensitivity: float,
    *,
    ffmpeg: str = "ffmpeg",
    min_gap: float = DEFAULT_MIN_GAP_SEC,
    duration: float | None = None,
    on_progress: Callable[[float], None] | None = None,
) -> list[float]:
    """
    Run the scene-score pass over source and return cut timestamps (seconds).

    Lower sensitivity yields more cuts. The result is deduplicated, ascending, and thinned so
    consecutive cuts are at least min_gap apart. An empty list is a valid result (the refiner
    falls back to uniform segmentation).

    Raises ValueError for sensitivity outside (0, 1), DetectionFailure when FFmpeg cannot be
    started or crashes without producing any diagnostic output.
    """
    if not 0.0 < sensitivity < 1.0:
        raise ValueError(f"sensitivity must be in (0, 1), got {sensitivity}")
    source = Path(source)
    cmd = detection_cmd(source, sensitivity, ffmpeg=ffmpeg)
    scraper = _DiagnosticScraper(duration, on_progress)
    _log.info("Scene detection: %s (sensitivity=%s)", source, sensitivity)
    try:
        attempt = await run_process(cmd, on_stderr_line=scraper)
    except OSError as e:
        raise DetectionFailure(f"Could not start FFmpeg ({ffmpeg}): {e}") from e

    if not attempt.ok:
        if attempt.stderr_lines == 0:
            raise DetectionFailure(
                f"FFmpeg scene detection exited with code {attempt.returncode} before producing output. "
                f"Repro: {attempt.repro}"
            )
        if not scraper.timestamps:
            _log.warning(
                "FFmpeg scene detection exited with code %s and found no cuts for %s; continuing. Repro: %s\n%s",
                attempt.returncode,
                source,
                attempt.repro,
                attempt.stderr_tail(),
            )
        else:
            _log.warning(
                "FFmpeg scene detection exited with code %s after %d cuts for %s; keeping them.",
                attempt.returncode,
                len(scraper.timestamps),
                source,
            )

    cuts = enforce_min_gap(scraper.timestamps, min_gap)
    _log.info(
        "Scene detection finished for %s: %d raw, %d after min-gap %.2fs (last frame n=%s)",
        source,
        len(scraper.timestamps),
        len(cuts),
        min_gap,
        scraper.last_frame_counter,
    )
    return cuts

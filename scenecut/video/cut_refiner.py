"""
Turn raw scene-change timestamps into frame-accurate, handle-trimmed segments.

Pure and deterministic: the same (timestamps, video_info, handles) always yields the same
segments. Candidates shorter than MIN_SEGMENT_FRAMES are dropped; when nothing survives
the video is cut into fixed-interval windows instead.
"""

import logging
import math
from typing import Iterable

from scenecut.core.errors import SegmentRejected
from scenecut.models.entities import Segment, VideoInfo

_log = logging.getLogger(__name__)

MIN_SEGMENT_FRAMES = 10
DEFAULT_HANDLE_FRAMES = 3
DEFAULT_INTERVAL_SEC = 10.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative input (2.5 -> 3)."""
    return math.floor(value + 0.5)


def timestamps_to_frames(timestamps: Iterable[float], fps: float) -> list[int]:
    """Map seconds to frame numbers (half-up), dropping negatives and non-finite values; sorted, unique."""
    frames = {
        round_half_up(t * fps)
        for t in timestamps
        if math.isfinite(t) and t >= 0
    }
    return sorted(frames)


def _segment_from_frames(index: int, in_frame: int, out_frame: int, frame_time: float) -> Segment:
    start = in_frame * frame_time
    end = (out_frame + 1) * frame_time
    return Segment(
        start_time=start,
        end_time=end,
        duration=end - start,
        index=index,
        in_frame=in_frame,
        out_frame=out_frame,
        frame_count=out_frame - in_frame + 1,
    )


def build_candidate(
    index: int,
    cut_frame: int,
    next_cut_frame: int,
    frame_time: float,
    *,
    in_handle: int = DEFAULT_HANDLE_FRAMES,
    out_handle: int = DEFAULT_HANDLE_FRAMES,
) -> Segment:
    """
    Segment between two cut frames with handles trimmed from both ends.

    Raises SegmentRejected when fewer than MIN_SEGMENT_FRAMES frames remain.
    """
    in_frame = cut_frame + in_handle
    out_frame = next_cut_frame - out_handle
    frame_count = out_frame - in_frame + 1
    if frame_count < MIN_SEGMENT_FRAMES:
        raise SegmentRejected(
            f"Segment {cut_frame}->{next_cut_frame} has {frame_count} frames after handles "
            f"(minimum {MIN_SEGMENT_FRAMES})"
        )
    return _segment_from_frames(index, in_frame, out_frame, frame_time)


def default_segments(
    video_info: VideoInfo,
    *,
    interval: float = DEFAULT_INTERVAL_SEC,
    out_handle: int = DEFAULT_HANDLE_FRAMES,
) -> list[Segment]:
    """
    Fixed-interval windows across the whole video, used when detection yields nothing usable.

    Window k covers [k*interval, (k+1)*interval). Non-final windows end out_handle frames
    before the next window; the final window runs to the last frame. Windows spanning less
    than one second (or fewer than MIN_SEGMENT_FRAMES frames) are skipped.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    fps = video_info.fps
    frame_time = video_info.frame_time
    duration = video_info.duration
    total_frames = video_info.total_frames

    windows: list[tuple[int, int]] = []
    k = 0
    while k * interval < duration:
        window_start = k * interval
        window_end = window_start + interval
        start_frame = round_half_up(window_start * fps)
        if window_end >= duration:
            end_frame = min(round_half_up(window_end * fps) - 1, total_frames - 1)
        else:
            end_frame = round_half_up(window_end * fps) - out_handle
        frame_count = end_frame - start_frame + 1
        if end_frame - start_frame >= fps and frame_count >= MIN_SEGMENT_FRAMES:
            windows.append((start_frame, end_frame))
        else:
            _log.debug("Skipping short fallback window %d-%d", start_frame, end_frame)
        k += 1

    return [
        _segment_from_frames(i, start_frame, end_frame, frame_time)
        for i, (start_frame, end_frame) in enumerate(windows)
    ]


def refine_cut_points(
    timestamps: Iterable[float],
    video_info: VideoInfo,
    in_handle: int = DEFAULT_HANDLE_FRAMES,
    out_handle: int = DEFAULT_HANDLE_FRAMES,
    *,
    default_interval: float = DEFAULT_INTERVAL_SEC,
) -> list[Segment]:
    """
    Convert cut timestamps into ordered, non-overlapping segments indexed 0..N-1.

    - Each timestamp maps to frame round_half_up(t * fps); duplicates collapse and frames at
      or past total_frames are dropped.
    - Adjacent cut frames (the last paired with total_frames) become one candidate each,
      trimmed by in_handle/out_handle; candidates under MIN_SEGMENT_FRAMES are dropped.
    - If the first kept cut sits far enough into the video, a lead-in segment from frame 0 is
      prepended.
    - With no timestamps, or none surviving, falls back to default_segments().
    """
    if in_handle < 0 or out_handle < 0:
        raise ValueError("Handles must be non-negative")
    frame_time = video_info.frame_time
    total_frames = video_info.total_frames
    cut_frames = timestamps_to_frames(timestamps, video_info.fps)
    past_end = [f for f in cut_frames if f >= total_frames]
    if past_end:
        _log.debug("Dropping %d cut frames at or past frame %d", len(past_end), total_frames)
        cut_frames = [f for f in cut_frames if f < total_frames]

    kept: list[tuple[int, Segment]] = []
    rejected = 0
    for i, cut_frame in enumerate(cut_frames):
        next_cut_frame = cut_frames[i + 1] if i + 1 < len(cut_frames) else total_frames
        try:
            segment = build_candidate(
                len(kept),
                cut_frame,
                next_cut_frame,
                frame_time,
                in_handle=in_handle,
                out_handle=out_handle,
            )
        except SegmentRejected as e:
            rejected += 1
            _log.debug("Rejected candidate: %s", e)
            continue
        kept.append((cut_frame, segment))

    if not kept:
        _log.info(
            "No usable cut points (%d timestamps, %d rejected); using %.1fs fallback windows",
            len(cut_frames),
            rejected,
            default_interval,
        )
        return default_segments(video_info, interval=default_interval, out_handle=out_handle)

    segments = [segment for _, segment in kept]
    first_cut = kept[0][0]
    if first_cut > in_handle + out_handle + MIN_SEGMENT_FRAMES:
        lead_in_out = first_cut - out_handle - 1
        bounds = [(0, lead_in_out)] + [(s.in_frame, s.out_frame) for s in segments]
        segments = [
            _segment_from_frames(i, in_frame, out_frame, frame_time)
            for i, (in_frame, out_frame) in enumerate(bounds)
        ]

    _log.info(
        "Refined %d cut frames into %d segments (%d rejected)",
        len(cut_frames),
        len(segments),
        rejected,
    )
    return segments

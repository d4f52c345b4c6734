"""Output naming and quality mapping shared by the frame and clip engines."""

import math

from scenecut.models.entities import NamingMode

MIN_QUALITY = 1
MAX_QUALITY = 10


def _check_quality(quality: int) -> None:
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValueError(f"quality must be in [{MIN_QUALITY}, {MAX_QUALITY}], got {quality}")


def artifact_filename(
    base_name: str,
    kind: str,
    index: int,
    fmt: str,
    *,
    naming: NamingMode = NamingMode.sequence,
    time_seconds: float | None = None,
    total_duration: float | None = None,
) -> str:
    """
    Output filename for one artifact.

    sequence: '{base}_{kind}_{index:03d}.{fmt}' ('clip01_frame_007.png').
    ratio:    '{base}_{index:03d}_{time/total:.4f}.{fmt}'; falls back to sequence naming when
              time or total duration is unknown.
    """
    if naming == NamingMode.ratio and time_seconds is not None and total_duration and total_duration > 0:
        return f"{base_name}_{index:03d}_{time_seconds / total_duration:.4f}.{fmt}"
    return f"{base_name}_{kind}_{index:03d}.{fmt}"


def image_qscale(quality: int, image_format: str) -> int:
    """
    FFmpeg -q:v for a still image; quality is 1-10, higher is better.

    png: max(1, 10 - q) (compression effort). jpg: max(1, ceil((11 - q) * 3)), within 1-31.
    """
    _check_quality(quality)
    if image_format.lower() == "png":
        return max(1, 10 - quality)
    return max(1, math.ceil((11 - quality) * 3))


def clip_crf(quality: int) -> int:
    """libx264 CRF for quality 1-10: round(clamp(29 - 1.1 * q, 18, 28))."""
    _check_quality(quality)
    return round(max(18.0, min(28.0, 29 - quality * 1.1)))

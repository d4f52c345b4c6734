"""IO utilities shared across the codebase."""

from pathlib import Path

_SIZE_UNITS = ("bytes", "KB", "MB", "GB")


def file_non_empty(path: Path, *, min_bytes: int = 1) -> bool:
    """Return True if path exists and has at least min_bytes. Catches OSError."""
    try:
        return path.exists() and path.stat().st_size >= min_bytes
    except OSError:
        return False


def file_size(path: Path) -> int:
    """Size of path in bytes, or 0 if it cannot be stat'ed."""
    try:
        return path.stat().st_size
    except OSError:
        return 0


def format_file_size(num_bytes: int) -> str:
    """Human-readable size: 0 -> '0 bytes', 1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return "0 bytes"
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    if unit == 0:
        return f"{num_bytes} bytes"
    return f"{round(size, 2):g} {_SIZE_UNITS[unit]}"

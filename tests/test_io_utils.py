"""Tests for io_utils."""

import pytest

from scenecut.core.io_utils import file_non_empty, file_size, format_file_size

pytestmark = [pytest.mark.fast]


def test_file_non_empty_missing_returns_false(tmp_path):
    """file_non_empty returns False when path does not exist."""
    p = tmp_path / "nonexistent"
    assert file_non_empty(p) is False


def test_file_non_empty_zero_bytes_returns_false(tmp_path):
    """file_non_empty returns False when file exists but has 0 bytes."""
    p = tmp_path / "empty"
    p.write_bytes(b"")
    assert file_non_empty(p) is False


def test_file_non_empty_min_bytes(tmp_path):
    """file_non_empty respects min_bytes parameter."""
    p = tmp_path / "three"
    p.write_bytes(b"abc")
    assert file_non_empty(p) is True
    assert file_non_empty(p, min_bytes=3) is True
    assert file_non_empty(p, min_bytes=4) is False


def test_file_size_missing_is_zero(tmp_path):
    """file_size returns 0 for files that cannot be stat'ed."""
    assert file_size(tmp_path / "missing") == 0
    p = tmp_path / "five"
    p.write_bytes(b"12345")
    assert file_size(p) == 5


@pytest.mark.parametrize(
    "num_bytes,expected",
    [
        (0, "0 bytes"),
        (512, "512 bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
        (int(2.25 * 1024**3), "2.25 GB"),
    ],
)
def test_format_file_size(num_bytes, expected):
    """Sizes are rendered with the largest fitting unit."""
    assert format_file_size(num_bytes) == expected

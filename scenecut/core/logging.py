"""Console logging plus a FlightLogger ring buffer that is dumped to disk when a run aborts."""

import logging
import re
import sys
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from scenecut.core.config import Settings

FLIGHT_LOG_CAPACITY = 50_000
# Relative to cwd when no config is provided.
DEFAULT_FORENSICS_DIR = Path.cwd() / "logs" / "forensics"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

_log = logging.getLogger(__name__)


class FlightLogger(logging.Handler):
    """
    Keeps the most recent records of every level in memory.

    Nothing touches disk until dump() is called, which writes
    <forensics_dir>/<run_id>[_<video>]_<UTC timestamp>.log.
    """

    def __init__(
        self,
        capacity: int = FLIGHT_LOG_CAPACITY,
        forensics_dir: str | Path | None = None,
    ) -> None:
        super().__init__(level=logging.DEBUG)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self.forensics_dir = Path(forensics_dir) if forensics_dir is not None else DEFAULT_FORENSICS_DIR

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    def _dump_path(self, run_id: str, video_name: str | None) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        parts = [run_id]
        if video_name:
            parts.append(_UNSAFE_NAME_CHARS.sub("_", video_name))
        parts.append(stamp)
        return self.forensics_dir / ("_".join(parts) + ".log")

    def dump(self, run_id: str, video_name: str | None = None) -> str:
        """Write the buffer and return the file path. Raises OSError if the directory is unwritable."""
        self.forensics_dir.mkdir(parents=True, exist_ok=True)
        path = self._dump_path(run_id, video_name)
        formatter = self.formatter or logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        with open(path, "w") as f:
            f.writelines(formatter.format(record) + "\n" for record in self._records)
        return str(path)

    def __len__(self) -> int:
        return len(self._records)


def dump_flight_log(flight: FlightLogger, video_name: str | None = None) -> str | None:
    """Dump under a fresh run id; a failed write is logged and returns None."""
    run_id = f"scenecut-{uuid.uuid4().hex[:8]}"
    try:
        return flight.dump(run_id, video_name)
    except OSError as e:
        _log.warning("Could not write flight log to %s: %s", flight.forensics_dir, e)
        return None


def _console_level(settings: Settings, verbose: bool) -> int:
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.WARNING
    return min(level, logging.INFO) if verbose else level


def setup_logging(settings: Settings | None = None, *, verbose: bool = False) -> FlightLogger:
    """
    Replace the root handlers and return the new FlightLogger.

    The root logger is set to DEBUG. Stdout gets settings.log_level (INFO or lower
    with verbose); the flight buffer gets everything.
    """
    settings = settings or Settings()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in root.handlers[:]:
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(_console_level(settings, verbose))
    console.setFormatter(formatter)
    root.addHandler(console)

    flight = FlightLogger(forensics_dir=settings.forensics_dir)
    flight.setFormatter(formatter)
    root.addHandler(flight)
    return flight

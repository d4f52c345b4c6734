"""Awaitable FFmpeg/ffprobe invocations: one subprocess -> one FFmpegAttempt.

Diagnostics are streamed line by line (FFmpeg terminates progress lines with '\\r', so both
'\\r' and '\\n' end a line). A timeout or task cancellation kills the child process.
"""

import asyncio
import codecs
import logging
import re
import shlex
from collections import deque
from dataclasses import dataclass
from typing import Callable

_log = logging.getLogger(__name__)

_DEFAULT_STDERR_TAIL_LINES = 40
_MAX_RETAINED_STDERR_LINES = 500
_READ_CHUNK = 4096
_LINE_SPLIT = re.compile(r"[\r\n]")


def _cmd_to_repro(cmd: list[str]) -> str:
    """Render a shell-safe repro command line for copy/paste."""
    return " ".join(shlex.quote(str(c)) for c in cmd)


def _stderr_tail(stderr: str, *, max_lines: int = _DEFAULT_STDERR_TAIL_LINES) -> str:
    if not stderr:
        return ""
    lines = stderr.strip().splitlines()
    tail = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n".join(tail).strip()


@dataclass(frozen=True)
class FFmpegAttempt:
    cmd: list[str]
    returncode: int
    stderr: str
    stdout: str = ""
    stderr_lines: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def repro(self) -> str:
        return _cmd_to_repro(self.cmd)

    def stderr_tail(self, *, max_lines: int = _DEFAULT_STDERR_TAIL_LINES) -> str:
        return _stderr_tail(self.stderr, max_lines=max_lines)


async def _read_lines(
    stream: asyncio.StreamReader,
    retained: deque[str],
    on_line: Callable[[str], None] | None,
) -> int:
    """Drain stream, splitting on CR or LF. Returns the number of non-empty lines seen."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    count = 0

    def emit(line: str) -> None:
        nonlocal count
        line = line.strip()
        if not line:
            return
        count += 1
        retained.append(line)
        if on_line is not None:
            on_line(line)

    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        pending += decoder.decode(chunk)
        parts = _LINE_SPLIT.split(pending)
        pending = parts.pop()
        for part in parts:
            emit(part)
    pending += decoder.decode(b"", final=True)
    emit(pending)
    return count


async def _read_all(stream: asyncio.StreamReader) -> bytes:
    return await stream.read()


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


async def run_process(
    cmd: list[str],
    *,
    on_stderr_line: Callable[[str], None] | None = None,
    timeout: float | None = None,
    capture_stdout: bool = False,
    max_stderr_lines: int = _MAX_RETAINED_STDERR_LINES,
) -> FFmpegAttempt:
    """
    Run cmd to completion and return an FFmpegAttempt.

    - stderr is streamed line by line to on_stderr_line; the last max_stderr_lines are retained.
    - stdout is captured as text only when capture_stdout is True (ffprobe JSON), else discarded.
    - On timeout the process is killed and the attempt has timed_out=True.
    - If the awaiting task is cancelled the process is killed and CancelledError propagates.

    Raises FileNotFoundError / PermissionError when the binary cannot be started.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE if capture_stdout else asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    retained: deque[str] = deque(maxlen=max_stderr_lines)
    assert process.stderr is not None
    readers = [_read_lines(process.stderr, retained, on_stderr_line)]
    if capture_stdout:
        assert process.stdout is not None
        readers.append(_read_all(process.stdout))

    async def _drain_and_wait() -> tuple:
        results = await asyncio.gather(*readers)
        await process.wait()
        return tuple(results)

    timed_out = False
    stdout_bytes = b""
    line_count = 0
    try:
        results = await asyncio.wait_for(_drain_and_wait(), timeout=timeout)
        line_count = results[0]
        if capture_stdout:
            stdout_bytes = results[1]
    except asyncio.TimeoutError:
        timed_out = True
        _log.warning("Process timed out after %ss; killing. Repro: %s", timeout, _cmd_to_repro(cmd))
        await _kill(process)
    except asyncio.CancelledError:
        await asyncio.shield(_kill(process))
        raise

    returncode = process.returncode if process.returncode is not None else -1
    return FFmpegAttempt(
        cmd=list(cmd),
        returncode=int(returncode),
        stderr="\n".join(retained),
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr_lines=line_count if not timed_out else len(retained),
        timed_out=timed_out,
    )

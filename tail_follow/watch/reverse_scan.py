from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List

from ..config import DEFAULT_BUFFER_SIZE
from ..errors import CloseError, OpenError, ReadError
from ..fs.types import FileSystem
from ..utils import log_warn


ScanResult = List[str]


@dataclass(frozen=True)
class ScanRequest:
    path: Path
    start: int
    end: int
    max_lines: int

    def __post_init__(self) -> None:
        if int(self.start) < 0 or int(self.end) < int(self.start):
            raise ValueError(f"invalid scan range [{self.start}, {self.end})")
        if int(self.max_lines) < 1:
            raise ValueError(f"max_lines must be positive, got {self.max_lines}")


async def scan_last_lines(
    fs: FileSystem,
    request: ScanRequest,
    *,
    chunk_size: int = DEFAULT_BUFFER_SIZE,
    encoding: str = "utf-8",
) -> ScanResult:
    """
    Return up to `request.max_lines` complete lines of `[start, end)`, oldest first.

    The range is walked backward in `chunk_size` reads. Boundary rules:
    - The first newline met is the terminator of the range's trailing content; whatever
      follows it (an unterminated trailing line) is dropped, on every call.
    - Each later newline closes one line.
    - At `start == 0` the start of the file closes the oldest line. At `start > 0` the byte
      at `start - 1` decides: a newline closes the oldest line, anything else means that line
      began in already-accounted bytes and it is dropped.
    - Scanning stops as soon as `max_lines` lines are collected; older lines in the range
      are not reported.

    The handle is closed on every exit path. Raises OpenError / ReadError / CloseError.
    """
    path = request.path
    try:
        handle = await fs.open(path)
    except OSError as e:
        raise OpenError(path, e) from e

    try:
        raw = await _scan_backward(fs, handle, request, max(1, int(chunk_size or DEFAULT_BUFFER_SIZE)))
    except BaseException:
        await _close_quietly(fs, handle, path)
        raise

    try:
        await fs.close(handle)
    except OSError as e:
        raise CloseError(path, e) from e

    raw.reverse()
    return [b.decode(encoding, errors="replace") for b in raw]


async def _scan_backward(fs: FileSystem, handle: Any, request: ScanRequest, chunk_size: int) -> List[bytes]:
    start = int(request.start)
    end_pos = int(request.end)
    max_lines = int(request.max_lines)
    if start == end_pos:
        return []

    # Newest first while scanning.
    found: List[bytes] = []
    low = start - 1 if start > 0 else 0
    pos = end_pos
    pending = b""
    crossed = False

    while pos > low and len(found) < max_lines:
        lo = max(low, pos - chunk_size)
        want = pos - lo
        try:
            data = await fs.read(handle, lo, want)
        except OSError as e:
            raise ReadError(request.path, e) from e
        if len(data) != want:
            # The file shrank under us; the range no longer exists.
            raise ReadError(
                request.path,
                EOFError(f"short read at offset {lo}: wanted {want} bytes, got {len(data)}"),
            )

        end = len(data)
        while len(found) < max_lines:
            i = data.rfind(b"\n", 0, end)
            if i < 0:
                break
            if crossed:
                found.append(data[i + 1 : end] + pending)
            else:
                crossed = True
            pending = b""
            end = i
        if len(found) >= max_lines:
            return found
        pending = data[:end] + pending
        pos = lo

    if start == 0 and crossed and len(found) < max_lines:
        found.append(pending)
    return found


async def _close_quietly(fs: FileSystem, handle: Any, path: Path) -> None:
    try:
        await fs.close(handle)
    except OSError as e:
        log_warn("close", f"close failed for {path} while handling another error: {e}")

from __future__ import annotations

import asyncio
import enum
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..config import TailConfig, resolve_config
from ..errors import ConfigurationError, ProbeError, SubscriptionError, TailError
from ..events import ERROR, LINE, Event, EventEmitter
from ..fs.local import LocalFileSystem
from ..fs.types import FileSystem
from .change_monitor import ChangeMonitor
from .offset_cursor import OffsetCursor
from .reverse_scan import ScanRequest, scan_last_lines
from .session_status import build_session_status


class SessionState(str, enum.Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSED = "closed"


class WatchSession:
    """
    Follow one file: replay its last N lines, then emit every complete line appended to it.

    Lifecycle: INITIALIZING -> ACTIVE -> CLOSED, never backward.

    - `start()` probes the size, scans `[0, size)` for the backlog, then arms the monitor.
      If that first probe fails the error is emitted once and the session goes straight to
      CLOSED.
    - Scan errors are emitted and the session keeps watching; the failed range is retried
      only as part of the next growth notification.
    - `close()` is a no-op on a closed session. A scan still in flight finishes, but its
      lines are discarded.

    Must be started and used from a running asyncio event loop.
    """

    def __init__(
        self,
        path: Union[str, "os.PathLike[str]"],
        line_count: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
        *,
        fs: Optional[FileSystem] = None,
    ) -> None:
        if isinstance(path, bool) or not isinstance(path, (str, os.PathLike)) or not os.fspath(path):
            raise ConfigurationError("path is required and must be a string or os.PathLike")
        self.config: TailConfig = resolve_config(line_count, options)
        self.path = Path(path)
        if fs is None:
            fs = LocalFileSystem(use_polling=self.config.use_polling, poll_interval=self.config.poll_interval)
        self.fs: FileSystem = fs
        self.cursor = OffsetCursor()
        self.state = SessionState.INITIALIZING
        self.lines_emitted = 0
        self.errors_emitted = 0
        self.last_error = ""
        self._events = EventEmitter()
        self._monitor = ChangeMonitor(self)

    @property
    def line_count(self) -> int:
        return int(self.config.count)

    @property
    def last_offset(self) -> int:
        return int(self.cursor.offset)

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self._events.on(event, handler)

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        self._events.off(event, handler)

    def subscribe(self) -> "asyncio.Queue[Event]":
        return self._events.subscribe()

    def unsubscribe(self, q: "asyncio.Queue[Event]") -> None:
        self._events.unsubscribe(q)

    def emit_error(self, err: TailError) -> None:
        self.errors_emitted += 1
        self.last_error = str(err)
        self._events.emit(ERROR, err)

    async def start(self) -> None:
        if self.state is not SessionState.INITIALIZING:
            return
        try:
            size = await self.fs.stat(self.path)
        except OSError as e:
            self.state = SessionState.CLOSED
            self.emit_error(ProbeError(self.path, e))
            return
        if self.closed:
            return

        scanned = await self.scan_and_advance(size)
        if self.closed:
            return

        try:
            self._monitor.start()
        except SubscriptionError as e:
            self.state = SessionState.CLOSED
            self.emit_error(e)
            return
        self.state = SessionState.ACTIVE
        # Appends that landed while the backlog was being read produced no notification.
        # A failed backlog scan is not retried; the next growth notification covers it.
        if scanned:
            self._monitor.request_check()

    async def scan_and_advance(self, new_size: int) -> bool:
        """
        Scan `[cursor.offset, new_size)`, emit the lines, then move the cursor to `new_size`.

        Returns False when the scan failed or the session was closed meanwhile; the cursor
        is left untouched in both cases.
        """
        req = ScanRequest(
            path=self.path,
            start=self.cursor.offset,
            end=int(new_size),
            max_lines=self.line_count,
        )
        try:
            lines = await scan_last_lines(
                self.fs,
                req,
                chunk_size=self.config.buffer_size,
                encoding=self.config.encoding,
            )
        except TailError as e:
            if not self.closed:
                self.emit_error(e)
            return False
        if self.closed:
            return False
        for line in lines:
            self._events.emit(LINE, line)
            self.lines_emitted += 1
            # A handler may close the session mid-batch.
            if self.closed:
                return False
        self.cursor.advance(req.end)
        return True

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self._monitor.stop()

    async def aclose(self, join_timeout_s: float = 1.0) -> None:
        """
        close(), then wait for the in-flight check and the notification thread to finish.
        """
        self.close()
        await self._monitor.wait_idle()
        handle = self._monitor.handle
        if handle is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, handle.join, float(join_timeout_s))

    async def wait_idle(self) -> None:
        await self._monitor.wait_idle()

    def status(self) -> Dict[str, object]:
        return build_session_status(
            path=self.path,
            state=self.state.value,
            offset=self.cursor.offset,
            line_count=self.line_count,
            buffer_size=self.config.buffer_size,
            use_polling=self.config.use_polling,
            lines_emitted=self.lines_emitted,
            errors_emitted=self.errors_emitted,
            checks=self._monitor.checks,
            renames=self._monitor.renames,
            busy=self._monitor.busy,
            last_error=self.last_error,
        )

    async def __aenter__(self) -> "WatchSession":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


async def create(
    path: Union[str, "os.PathLike[str]"],
    line_count: Optional[int] = None,
    options: Optional[Dict[str, Any]] = None,
    *,
    fs: Optional[FileSystem] = None,
    on_line: Optional[Callable[[str], None]] = None,
    on_error: Optional[Callable[[TailError], None]] = None,
) -> WatchSession:
    """
    Construct a session, attach the handlers before the backlog is emitted, and start it.
    """
    session = WatchSession(path, line_count, options, fs=fs)
    if on_line is not None:
        session.on(LINE, on_line)
    if on_error is not None:
        session.on(ERROR, on_error)
    await session.start()
    return session

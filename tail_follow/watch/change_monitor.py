from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..errors import ProbeError, SubscriptionError
from ..fs.types import CHANGED, RENAMED, WatchHandle
from ..utils import log_warn

if TYPE_CHECKING:
    from .session import WatchSession


class ChangeMonitor:
    """
    Turns `changed` / `renamed` notifications into growth checks for one session.

    Notes:
    - Growth checks are serialized by coalescing: a notification arriving while a check is
      in flight only marks the monitor dirty, and one fresh check (with a fresh size probe)
      runs once the current one finishes. Two checks never read the same offset concurrently.
    - A rename only repoints the session path; the subscription and the offset are kept.
    - Shrinkage is not growth: no scan, no events, just a warning.
    """

    def __init__(self, session: "WatchSession") -> None:
        self._session = session
        self._handle: Optional[WatchHandle] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._dirty = False
        self._stopped = False
        self.checks = 0
        self.renames = 0

    @property
    def handle(self) -> Optional[WatchHandle]:
        return self._handle

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> WatchHandle:
        s = self._session
        try:
            self._handle = s.fs.watch(s.path, self._on_notification)
        except OSError as e:
            raise SubscriptionError(s.path, f"cannot watch {s.path}: {e}") from e
        return self._handle

    def stop(self) -> None:
        self._stopped = True
        self._dirty = False
        h = self._handle
        if h is not None:
            h.close()

    async def wait_idle(self) -> None:
        t = self._task
        if t is not None and not t.done():
            await asyncio.shield(t)

    def _on_notification(self, kind: str, name: Optional[str] = None) -> None:
        if self._stopped or self._session.closed:
            return
        if kind == CHANGED:
            self.request_check()
        elif kind == RENAMED:
            self._follow_rename(name)

    def _follow_rename(self, name: Optional[str]) -> None:
        if not name:
            return
        s = self._session
        s.path = Path(s.path).parent / Path(name).name
        self.renames += 1

    def request_check(self) -> None:
        if self._stopped:
            return
        self._dirty = True
        if self.busy:
            return
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty and not self._stopped:
            self._dirty = False
            await self._check_growth()

    async def _check_growth(self) -> None:
        s = self._session
        path = s.path
        self.checks += 1
        try:
            size = await s.fs.stat(path)
        except OSError as e:
            if not s.closed:
                s.emit_error(ProbeError(path, e))
            return
        if s.closed:
            return
        last = s.cursor.offset
        if size < last:
            log_warn("shrink", f"{path} shrank from {last} to {size} bytes; waiting for it to grow past {last}")
            return
        if size == last:
            return
        await s.scan_and_advance(size)

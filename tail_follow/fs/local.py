from __future__ import annotations

import asyncio
import errno
import functools
import os
import threading
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from ..utils import log_warn
from .observer_lifecycle import request_stop_and_join
from .types import CHANGED, RENAMED, WatchCallback


def _norm(p: Any) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(p)))


class _FollowingEventHandler(FileSystemEventHandler):
    """
    Filters watchdog events of the parent directory down to one file.

    Notes:
    - watchdog watches directories, so the handler keeps its own copy of the current file
      name and moves it along on rename. The subscription itself is never recreated.
    - Runs on the observer thread; `deliver` is responsible for hopping to the event loop.
    """

    def __init__(self, path: Path, deliver: Callable[[str, Optional[str]], None]) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._path = _norm(path)
        self._deliver = deliver

    @property
    def path(self) -> str:
        with self._lock:
            return self._path

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if _norm(event.src_path) != self.path:
            return
        self._deliver(CHANGED, None)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        dest = getattr(event, "dest_path", None)
        with self._lock:
            if _norm(event.src_path) != self._path:
                return
            if dest:
                self._path = _norm(dest)
        self._deliver(RENAMED, os.path.basename(os.fsdecode(dest)) if dest else None)


class LocalWatchHandle:
    def __init__(self, observer: BaseObserver, handler: _FollowingEventHandler) -> None:
        self._observer = observer
        self._handler = handler
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def path(self) -> Path:
        return Path(self._handler.path)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._observer.stop()
        except Exception:
            pass

    def join(self, timeout: Optional[float] = None) -> None:
        request_stop_and_join(
            stop=self.close,
            thread=self._observer,
            join_timeout_s=1.0 if timeout is None else float(timeout),
        )


class LocalFileSystem:
    """
    FileSystem on the local disk.

    Blocking calls run in the loop's default executor so the event loop never blocks on I/O;
    change notifications come from a watchdog observer thread and are re-dispatched with
    `loop.call_soon_threadsafe`.
    """

    def __init__(self, *, use_polling: bool = False, poll_interval: float = 1.0) -> None:
        self._use_polling = bool(use_polling)
        self._poll_interval = max(0.05, float(poll_interval))

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def open(self, path: Path) -> BinaryIO:
        return await self._run(open, os.fspath(path), "rb")

    async def read(self, handle: BinaryIO, offset: int, length: int) -> bytes:
        return await self._run(_read_at, handle, int(offset), int(length))

    async def stat(self, path: Path) -> int:
        st = await self._run(os.stat, os.fspath(path))
        return int(st.st_size)

    async def close(self, handle: BinaryIO) -> None:
        await self._run(handle.close)

    def watch(self, path: Path, callback: WatchCallback) -> LocalWatchHandle:
        loop = asyncio.get_running_loop()

        def _deliver(kind: str, name: Optional[str]) -> None:
            try:
                loop.call_soon_threadsafe(callback, kind, name)
            except RuntimeError:
                log_warn("deliver", f"dropped {kind} notification for {path}: event loop is closed")

        watch_dir = os.path.dirname(_norm(path))
        if not os.path.isdir(watch_dir):
            raise FileNotFoundError(errno.ENOENT, "directory to watch does not exist", watch_dir)
        handler = _FollowingEventHandler(Path(path), _deliver)
        if self._use_polling:
            observer: BaseObserver = PollingObserver(timeout=self._poll_interval)
        else:
            observer = Observer()
        observer.schedule(handler, watch_dir, recursive=False)
        observer.daemon = True
        try:
            observer.start()
        except Exception:
            request_stop_and_join(stop=observer.stop, thread=observer, join_timeout_s=1.0)
            raise
        return LocalWatchHandle(observer, handler)


def _read_at(f: BinaryIO, offset: int, length: int) -> bytes:
    f.seek(offset)
    chunks = []
    want = length
    while want > 0:
        chunk = f.read(want)
        if not chunk:
            break
        chunks.append(chunk)
        want -= len(chunk)
    return b"".join(chunks)

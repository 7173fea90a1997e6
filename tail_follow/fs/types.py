from pathlib import Path
from typing import Any, Callable, Optional, Protocol


# callback(kind, name): kind is "changed" or "renamed"; name is the new base name for
# "renamed" (None when the backend could not tell) and None for "changed".
WatchCallback = Callable[[str, Optional[str]], None]

CHANGED = "changed"
RENAMED = "renamed"


class WatchHandle(Protocol):
    def close(self) -> None:
        ...

    def join(self, timeout: Optional[float] = None) -> None:
        ...


class FileSystem(Protocol):
    """
    Capability interface a WatchSession is built on.

    Raw primitives raise OSError; classification into ProbeError/OpenError/... happens
    in the scanner and monitor. `watch` must deliver callbacks on the event loop thread.
    """

    async def open(self, path: Path) -> Any:
        ...

    async def read(self, handle: Any, offset: int, length: int) -> bytes:
        ...

    async def stat(self, path: Path) -> int:
        ...

    async def close(self, handle: Any) -> None:
        ...

    def watch(self, path: Path, callback: WatchCallback) -> WatchHandle:
        ...

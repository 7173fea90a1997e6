"""
Watch session facade.

Implementation lives in `tail_follow.watch.*`; this module keeps the short import path:

  - from tail_follow.watcher import WatchSession, create
"""

from .watch.change_monitor import ChangeMonitor
from .watch.offset_cursor import OffsetCursor
from .watch.reverse_scan import ScanRequest, ScanResult, scan_last_lines
from .watch.session import SessionState, WatchSession, create

__all__ = [
    "ChangeMonitor",
    "OffsetCursor",
    "ScanRequest",
    "ScanResult",
    "SessionState",
    "WatchSession",
    "create",
    "scan_last_lines",
]

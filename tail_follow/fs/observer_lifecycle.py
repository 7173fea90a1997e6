from __future__ import annotations

import threading
from typing import Callable, Optional


def request_stop_and_join(
    *,
    stop: Optional[Callable[[], None]],
    thread: Optional[threading.Thread],
    join_timeout_s: float,
) -> bool:
    """
    Best-effort request a notification thread to stop and join for a bounded time.

    Returns:
      still_running: True if the thread is still alive after join attempt.
    """
    t = thread
    if stop is not None:
        try:
            stop()
        except Exception:
            pass
    if t is not None and t.is_alive() and t is not threading.current_thread():
        try:
            t.join(timeout=float(join_timeout_s or 0.0))
        except RuntimeError:
            # Not started yet.
            pass
    return bool(t is not None and t.is_alive())

import asyncio
from typing import Any, Callable, Dict, List, Tuple

from .utils import log_warn


LINE = "line"
ERROR = "error"
EVENTS = (LINE, ERROR)

Event = Tuple[str, Any]


class EventEmitter:
    """
    `line` / `error` fan-out for a WatchSession.

    Two ways to listen:
    - callbacks registered with `on(event, fn)`, called synchronously in emit order;
    - bounded queues from `subscribe()`, for `async` consumers.

    Everything runs on the event loop thread, so no locking is needed.
    """

    def __init__(self, *, queue_size: int = 256) -> None:
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {e: [] for e in EVENTS}
        self._queues: List["asyncio.Queue[Event]"] = []
        self._queue_size = max(1, int(queue_size or 256))

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        if event not in self._handlers:
            raise ValueError(f"unknown event {event!r}, expected one of {EVENTS}")
        self._handlers[event].append(handler)

        def _off() -> None:
            self.off(event, handler)

        return _off

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        try:
            self._handlers[event].remove(handler)
        except (KeyError, ValueError):
            return

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def subscribe(self) -> "asyncio.Queue[Event]":
        q: "asyncio.Queue[Event]" = asyncio.Queue(maxsize=self._queue_size)
        self._queues.append(q)
        return q

    def unsubscribe(self, q: "asyncio.Queue[Event]") -> None:
        try:
            self._queues.remove(q)
        except ValueError:
            return

    def emit(self, event: str, payload: Any) -> int:
        """
        Deliver one event. Returns the number of callbacks that ran without raising.
        """
        delivered = 0
        for fn in list(self._handlers.get(event, [])):
            try:
                fn(payload)
                delivered += 1
            except Exception as e:
                log_warn(f"handler:{event}", f"{event} handler {fn!r} failed: {e!r}")
        self._publish((event, payload))
        return delivered

    def _publish(self, item: Event) -> None:
        # Errors must survive backpressure; lines are dropped when a consumer can't keep up.
        high = item[0] == ERROR
        for q in list(self._queues):
            try:
                q.put_nowait(item)
            except asyncio.QueueFull:
                if not high:
                    continue
                try:
                    _ = q.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                try:
                    q.put_nowait(item)
                except asyncio.QueueFull:
                    continue

from pathlib import Path
from typing import Optional, Union


class TailError(Exception):
    """Base class for every error raised or emitted by tail_follow."""


class ConfigurationError(TailError, ValueError):
    """Invalid construction argument (count, encoding, buffer size, path)."""


class SubscriptionError(TailError):
    """The change-notification primitive could not watch the path."""

    def __init__(self, path: Union[str, Path], message: str = "") -> None:
        self.path = Path(path)
        super().__init__(message or f"cannot watch {self.path}")


class TailIOError(TailError):
    """
    An I/O step of a size probe or scan failed.

    The underlying OSError is kept as `__cause__` (raise ... from err) and as `.os_error`.
    """

    action = "access"

    def __init__(self, path: Union[str, Path], os_error: Optional[BaseException] = None) -> None:
        self.path = Path(path)
        self.os_error = os_error
        # Emitted errors are never raised, so link the cause here as well.
        self.__cause__ = os_error
        detail = f": {os_error}" if os_error is not None else ""
        super().__init__(f"cannot {self.action} {self.path}{detail}")


class ProbeError(TailIOError):
    action = "stat"


class OpenError(TailIOError):
    action = "open"


class ReadError(TailIOError):
    action = "read"


class CloseError(TailIOError):
    action = "close"

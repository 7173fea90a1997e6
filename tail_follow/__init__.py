from typing import Any

from .config import TailConfig
from .errors import (
    CloseError,
    ConfigurationError,
    OpenError,
    ProbeError,
    ReadError,
    SubscriptionError,
    TailError,
    TailIOError,
)
from .watcher import SessionState, WatchSession, create

__all__ = [
    "CloseError",
    "ConfigurationError",
    "OpenError",
    "ProbeError",
    "ReadError",
    "SessionState",
    "SubscriptionError",
    "TailConfig",
    "TailError",
    "TailIOError",
    "WatchSession",
    "create",
    "main",
]


def main(argv: Any = None) -> int:
    # Lazy import so library users never pay for argparse/CLI setup.
    from .cli import main as _main

    return int(_main(argv))

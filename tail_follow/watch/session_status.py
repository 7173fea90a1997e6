from __future__ import annotations

from pathlib import Path
from typing import Dict


def build_session_status(
    *,
    path: Path,
    state: str,
    offset: int,
    line_count: int,
    buffer_size: int,
    use_polling: bool,
    lines_emitted: int,
    errors_emitted: int,
    checks: int,
    renames: int,
    busy: bool,
    last_error: str,
) -> Dict[str, object]:
    """
    Build the status snapshot of a WatchSession.

    Notes:
    - Keep field names and types stable.
    - This function should be pure (no IO, no side-effects).
    """
    return {
        "path": str(path) if path is not None else "",
        "state": str(state or ""),
        "offset": int(offset or 0),
        "line_count": int(line_count or 0),
        "buffer_size": int(buffer_size or 0),
        "backend": "polling" if bool(use_polling) else "native",
        "lines_emitted": int(lines_emitted or 0),
        "errors_emitted": int(errors_emitted or 0),
        "checks": int(checks or 0),
        "renames": int(renames or 0),
        "busy": bool(busy),
        "last_error": str(last_error or ""),
    }

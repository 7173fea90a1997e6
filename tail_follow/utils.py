import sys
import time


_LAST_WARN_TS_BY_KIND = {}


def log_warn(kind: str, msg: str, min_interval_s: float = 5.0) -> str:
    """
    Rate-limited stderr log to avoid spamming when a watched file keeps failing.
    """
    now = time.time()
    k = (kind or "warn").strip() or "warn"
    last = float(_LAST_WARN_TS_BY_KIND.get(k, 0.0) or 0.0)
    if now - last < float(min_interval_s or 0.0):
        return msg
    _LAST_WARN_TS_BY_KIND[k] = now
    try:
        print(f"[tail-follow] {msg}", file=sys.stderr)
    except Exception:
        pass
    return msg

import codecs
import json
import math
import re
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigurationError


DEFAULT_COUNT = 10
DEFAULT_BUFFER_SIZE = 1024
DEFAULT_POLL_INTERVAL = 1.0
MIN_POLL_INTERVAL = 0.05

_BYTES_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*(b|kb|mb|gb|tb|pb)?\s*$", re.IGNORECASE)
_BYTES_UNITS = {
    "b": 1,
    "kb": 1 << 10,
    "mb": 1 << 20,
    "gb": 1 << 30,
    "tb": 1 << 40,
    "pb": 1 << 50,
}
_TRUE_STRS = ("1", "true", "yes", "on")
_FALSE_STRS = ("", "0", "false", "no", "off")


@dataclass
class TailConfig:
    # Lines replayed at start and the cap per growth step (same as `tail -n`).
    count: int = DEFAULT_COUNT
    # Only UTF-8 is supported; kept so callers can round-trip the options they passed.
    encoding: str = "utf-8"
    # Chunk size of the backward scan reads. Advisory: it never changes which lines are found.
    buffer_size: int = DEFAULT_BUFFER_SIZE
    # Use watchdog's stat-polling observer instead of the native notification backend
    # (network filesystems, containers without inotify).
    use_polling: bool = False
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TailConfig":
        """
        Build a config from an options mapping (API `options` or a JSON config file).

        Notes:
        - `n` and `count` are aliases; a non-zero `n` wins.
        - `buffer_size` also accepts the camelCase `bufferSize`.
        - Numeric strings are accepted for numeric fields; anything unparsable is a
          ConfigurationError instead of a silent default.
        - Unknown keys are ignored.
        """
        if not isinstance(d, dict):
            raise ConfigurationError("options must be a mapping")

        count = _to_count(d.get("n"), "n") or _to_count(d.get("count"), "count") or DEFAULT_COUNT

        raw_buf = d.get("buffer_size")
        if raw_buf is None:
            raw_buf = d.get("bufferSize")
        buffer_size = DEFAULT_BUFFER_SIZE if raw_buf is None else parse_bytes(raw_buf)

        return TailConfig(
            count=count,
            encoding=_normalize_encoding(d.get("encoding")),
            buffer_size=buffer_size,
            use_polling=_to_bool(d.get("use_polling"), "use_polling"),
            poll_interval=_to_poll_interval(d.get("poll_interval")),
        )


def resolve_config(line_count: Any = None, options: Optional[Dict[str, Any]] = None) -> TailConfig:
    """
    Resolve the `(line_count, options)` construction overload once, at the boundary.

    Precedence: a non-zero positional `line_count`, then `options["n"]`, then
    `options["count"]`, then the default of 10.
    """
    cfg = TailConfig.from_dict(options if options is not None else {})
    if line_count is None:
        return cfg
    if isinstance(line_count, bool) or not isinstance(line_count, int):
        raise ConfigurationError(f"line_count must be an int, got {type(line_count).__name__}")
    n = _to_count(line_count, "line_count")
    if n:
        cfg = replace(cfg, count=n)
    return cfg


def parse_bytes(value: Any) -> int:
    """
    Parse a byte size: an int, or a string such as "512", "64kb", "1.5 MB".

    Multipliers are binary (1kb == 1024 bytes). The result must be at least one byte.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"invalid byte size: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ConfigurationError(f"invalid byte size: {value!r}")
    if isinstance(value, (int, float)):
        n = int(value)
    elif isinstance(value, str):
        m = _BYTES_RE.fullmatch(value)
        if m is None:
            raise ConfigurationError(f"invalid byte size: {value!r}")
        unit = (m.group(2) or "b").lower()
        n = int(float(m.group(1)) * _BYTES_UNITS[unit])
    else:
        raise ConfigurationError(f"invalid byte size: {value!r}")
    if n < 1:
        raise ConfigurationError(f"byte size must be positive: {value!r}")
    return n


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Read options from a JSON object file (used by the CLI `--config` flag).
    """
    p = Path(path).expanduser()
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read config file {p}: {e}") from e
    try:
        obj = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"config file {p} is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise ConfigurationError(f"config file {p} must contain a JSON object")
    return obj


def _to_count(v: Any, name: str) -> Optional[int]:
    # None / 0 / "" mean "not given" so the next source in the precedence chain applies.
    if v is None:
        return None
    if isinstance(v, bool):
        raise ConfigurationError(f"{name} must be a number, got {v!r}")
    if isinstance(v, int):
        n = v
    elif isinstance(v, float):
        if not v.is_integer():
            raise ConfigurationError(f"{name} must be a whole number, got {v!r}")
        n = int(v)
    elif isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        try:
            n = int(s)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got {v!r}") from None
    else:
        raise ConfigurationError(f"{name} must be a number, got {type(v).__name__}")
    if n < 0:
        raise ConfigurationError(f"{name} must not be negative, got {n}")
    return n or None


def _normalize_encoding(v: Any) -> str:
    if v is None or v == "":
        return "utf-8"
    if not isinstance(v, str):
        raise ConfigurationError(f"encoding must be a string, got {type(v).__name__}")
    try:
        name = codecs.lookup(v.strip()).name
    except LookupError:
        raise ConfigurationError(f"unknown encoding: {v!r}") from None
    if name != "utf-8":
        raise ConfigurationError(f"only utf-8 is supported, got {v!r}")
    return name


def _to_bool(v: Any, name: str) -> bool:
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return v != 0
    if isinstance(v, str):
        s = v.strip().lower()
        if s in _TRUE_STRS:
            return True
        if s in _FALSE_STRS:
            return False
    raise ConfigurationError(f"{name} must be a boolean, got {v!r}")


def _to_poll_interval(v: Any) -> float:
    if v is None or v == "":
        return DEFAULT_POLL_INTERVAL
    if isinstance(v, bool):
        raise ConfigurationError(f"poll_interval must be a number, got {v!r}")
    try:
        s = float(v)
    except (TypeError, ValueError):
        raise ConfigurationError(f"poll_interval must be a number, got {v!r}") from None
    if s <= 0:
        raise ConfigurationError(f"poll_interval must be positive, got {v!r}")
    return max(MIN_POLL_INTERVAL, s)

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from .config import load_config_file
from .errors import ConfigurationError, TailError
from .events import ERROR, LINE
from .watch.session import WatchSession


def _parse_args(argv):
    p = argparse.ArgumentParser(
        prog="tail-follow",
        description="Print the last N lines of a file, then every complete line appended to it.",
    )
    p.add_argument("path", help="file to follow")
    p.add_argument("-n", "--lines", type=int, default=None, help="lines to print at start (default: 10)")
    p.add_argument("--buffer-size", default=None, help="read chunk size, e.g. 4096 or 64kb (default: 1024)")
    p.add_argument("--polling", action="store_true", help="detect changes by polling stat() instead of native notifications")
    p.add_argument("--poll-interval", type=float, default=None, help="seconds between polls with --polling (default: 1.0)")
    p.add_argument("--config", default=None, help="JSON file with options (count, buffer_size, use_polling, poll_interval)")
    return p.parse_args(argv)


def _build_options(args) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if args.config:
        options.update(load_config_file(Path(args.config)))
    if args.buffer_size is not None:
        options["buffer_size"] = args.buffer_size
    if args.polling:
        options["use_polling"] = True
    if args.poll_interval is not None:
        options["poll_interval"] = args.poll_interval
    return options


async def _run(session: WatchSession, stop: asyncio.Event, out: TextIO, err: TextIO) -> int:
    def _print_line(line: str) -> None:
        print(line, file=out, flush=True)

    def _print_error(e: TailError) -> None:
        print(f"[tail-follow] {e}", file=err, flush=True)

    session.on(LINE, _print_line)
    session.on(ERROR, _print_error)
    await session.start()
    if session.closed:
        return 1
    try:
        await stop.wait()
    finally:
        await session.aclose()
    return 0


async def _main_async(session: WatchSession, out: TextIO, err: TextIO) -> int:
    return await _run(session, asyncio.Event(), out, err)


def main(argv=None, *, out: Optional[TextIO] = None, err: Optional[TextIO] = None) -> int:
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    args = _parse_args(raw_argv)
    out = out if out is not None else sys.stdout
    err = err if err is not None else sys.stderr

    try:
        session = WatchSession(args.path, args.lines, _build_options(args))
    except ConfigurationError as e:
        print(f"[tail-follow] {e}", file=err)
        return 2

    try:
        return asyncio.run(_main_async(session, out, err))
    except KeyboardInterrupt:
        return 0

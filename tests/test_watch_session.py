import asyncio
import unittest
from pathlib import Path

from tail_follow.errors import ConfigurationError, OpenError, ProbeError, ReadError, SubscriptionError
from tail_follow.watch.session import SessionState, WatchSession, create

from fs_fakes import MemoryFileSystem, wait_for


LOG = "/var/log/app.log"


class _Recorder:
    def __init__(self, session: WatchSession) -> None:
        self.lines = []
        self.errors = []
        session.on("line", self.lines.append)
        session.on("error", self.errors.append)


class TestWatchSessionStart(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.fs = MemoryFileSystem()

    async def test_backlog_is_last_n_lines(self) -> None:
        self.fs.write(LOG, b"".join(b"L%d\n" % i for i in range(1, 31)))
        s = WatchSession(LOG, 5, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(rec.lines, ["L26", "L27", "L28", "L29", "L30"])
        self.assertEqual(s.state, SessionState.ACTIVE)
        self.assertEqual(s.last_offset, len(self.fs.files[LOG]))
        self.assertEqual(len(self.fs.watches), 1)
        await s.aclose()

    async def test_backlog_default_is_ten(self) -> None:
        self.fs.write(LOG, b"".join(b"L%d\n" % i for i in range(1, 31)))
        s = WatchSession(LOG, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(rec.lines, [f"L{i}" for i in range(21, 31)])
        await s.aclose()

    async def test_backlog_skips_unterminated_tail(self) -> None:
        self.fs.write(LOG, b"a\nb\npartial")
        s = WatchSession(LOG, 10, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(rec.lines, ["a", "b"])
        self.assertEqual(s.last_offset, 11)
        await s.aclose()

    async def test_empty_file(self) -> None:
        self.fs.write(LOG, b"")
        s = WatchSession(LOG, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(rec.lines, [])
        self.assertEqual(s.state, SessionState.ACTIVE)
        await s.aclose()

    async def test_first_probe_failure_never_becomes_active(self) -> None:
        s = WatchSession("/missing.log", fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(s.state, SessionState.CLOSED)
        self.assertEqual(len(rec.errors), 1)
        self.assertIsInstance(rec.errors[0], ProbeError)
        self.assertEqual(self.fs.watches, [])
        await s.start()
        self.assertEqual(len(rec.errors), 1)

    async def test_initial_scan_failure_keeps_watching(self) -> None:
        self.fs.write(LOG, b"a\nb\n")
        self.fs.fail_read = 1
        s = WatchSession(LOG, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual([type(e) for e in rec.errors], [ReadError])
        self.assertEqual(s.state, SessionState.ACTIVE)
        self.assertEqual(s.last_offset, 0)
        await s.wait_idle()
        self.assertEqual(rec.lines, [])
        self.assertEqual(s.last_offset, 0)
        self.assertEqual(len(rec.errors), 1)
        await s.aclose()

    async def test_failed_backlog_is_not_replayed_without_growth(self) -> None:
        self.fs.write(LOG, b"a\nb\n")
        self.fs.fail_open = 1
        s = WatchSession(LOG, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        await s.wait_idle()
        self.assertEqual([type(e) for e in rec.errors], [OpenError])
        self.assertEqual(rec.lines, [])
        self.assertEqual(s.last_offset, 0)
        self.assertEqual(s.status()["checks"], 0)

        self.fs.append(LOG, b"c\n")
        self.fs.notify_changed()
        await s.wait_idle()
        self.assertEqual(rec.lines, ["a", "b", "c"])
        self.assertEqual(s.last_offset, 6)
        await s.aclose()

    async def test_handler_closing_during_backlog_stops_the_batch(self) -> None:
        self.fs.write(LOG, b"a\nb\nc\n")
        s = WatchSession(LOG, fs=self.fs)
        lines = []

        def _stop_at_first(line: str) -> None:
            lines.append(line)
            s.close()

        s.on("line", _stop_at_first)
        await s.start()
        await s.wait_idle()
        self.assertEqual(lines, ["a"])
        self.assertEqual(s.state, SessionState.CLOSED)
        self.assertEqual(s.last_offset, 0)
        self.assertEqual(self.fs.watches, [])

    async def test_subscription_failure_closes(self) -> None:
        self.fs.write(LOG, b"a\n")
        self.fs.fail_watch = True
        s = WatchSession(LOG, fs=self.fs)
        rec = _Recorder(s)
        await s.start()
        self.assertEqual(rec.lines, ["a"])
        self.assertEqual([type(e) for e in rec.errors], [SubscriptionError])
        self.assertEqual(s.state, SessionState.CLOSED)

    async def test_invalid_configuration_raises_synchronously(self) -> None:
        with self.assertRaises(ConfigurationError):
            WatchSession(LOG, -1, fs=self.fs)
        with self.assertRaises(ConfigurationError):
            WatchSession(LOG, options={"encoding": "latin-1"}, fs=self.fs)
        with self.assertRaises(ConfigurationError):
            WatchSession("", fs=self.fs)

    async def test_create_attaches_handlers_before_backlog(self) -> None:
        self.fs.write(LOG, b"x\ny\n")
        lines = []
        s = await create(LOG, options={"count": 1}, fs=self.fs, on_line=lines.append)
        self.assertEqual(lines, ["y"])
        self.assertEqual(s.line_count, 1)
        await s.aclose()

    async def test_async_context_manager(self) -> None:
        self.fs.write(LOG, b"x\n")
        async with WatchSession(LOG, fs=self.fs) as s:
            self.assertEqual(s.state, SessionState.ACTIVE)
        self.assertEqual(s.state, SessionState.CLOSED)
        self.assertTrue(self.fs.watches[0].closed)
        self.assertTrue(self.fs.watches[0].joined)

    async def test_subscribe_queue_receives_backlog(self) -> None:
        self.fs.write(LOG, b"x\ny\n")
        s = WatchSession(LOG, fs=self.fs)
        q = s.subscribe()
        await s.start()
        self.assertEqual([q.get_nowait(), q.get_nowait()], [("line", "x"), ("line", "y")])
        s.unsubscribe(q)
        await s.aclose()


class TestWatchSessionGrowth(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.fs = MemoryFileSystem()
        self.fs.write(LOG, b"a\n")
        self.session = WatchSession(LOG, 3, fs=self.fs)
        self.rec = _Recorder(self.session)
        await self.session.start()
        await self.session.wait_idle()
        self.rec.lines.clear()

    async def asyncTearDown(self) -> None:
        await self.session.aclose()

    async def _grow(self, data: bytes) -> None:
        self.fs.append(LOG, data)
        self.fs.notify_changed()
        await self.session.wait_idle()

    async def test_appended_lines_are_emitted_in_order(self) -> None:
        await self._grow(b"b\nc\n")
        self.assertEqual(self.rec.lines, ["b", "c"])
        self.assertEqual(self.session.last_offset, 6)
        self.assertEqual(self.rec.errors, [])

    async def test_offset_only_moves_forward(self) -> None:
        seen = [self.session.last_offset]
        for chunk in (b"b\n", b"cc\n", b"ddd\n"):
            await self._grow(chunk)
            seen.append(self.session.last_offset)
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(len(set(seen)), len(seen))

    async def test_overflow_keeps_only_most_recent_n(self) -> None:
        await self._grow(b"1\n2\n3\n4\n5\n")
        self.assertEqual(self.rec.lines, ["3", "4", "5"])
        self.assertEqual(self.session.last_offset, len(self.fs.files[LOG]))
        await self._grow(b"6\n")
        self.assertEqual(self.rec.lines, ["3", "4", "5", "6"])

    async def test_notification_without_growth_emits_nothing(self) -> None:
        self.fs.notify_changed()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, [])
        self.assertEqual(self.session.last_offset, 2)

    async def test_shrink_is_ignored(self) -> None:
        await self._grow(b"b\nc\n")
        self.rec.lines.clear()
        self.fs.write(LOG, b"z\n")
        self.fs.notify_changed()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, [])
        self.assertEqual(self.rec.errors, [])
        self.assertEqual(self.session.last_offset, 6)

    async def test_partial_line_waits_for_terminator_of_next_line(self) -> None:
        await self._grow(b"b\nhalf")
        self.assertEqual(self.rec.lines, ["b"])
        # "half" + "way" was cut by the previous scan boundary and is not reported.
        await self._grow(b"way\nnext\n")
        self.assertEqual(self.rec.lines, ["b", "next"])

    async def test_rename_follows_new_path(self) -> None:
        offset = self.session.last_offset
        self.fs.rename(LOG, "/var/log/app.log.1")
        self.assertEqual(self.session.path, Path("/var/log/app.log.1"))
        self.assertEqual(self.session.last_offset, offset)
        self.assertEqual(self.rec.errors, [])
        self.fs.append("/var/log/app.log.1", b"moved\n")
        self.fs.notify_changed()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, ["moved"])
        self.assertEqual(len(self.fs.watches), 1)
        self.assertEqual(self.session.status()["renames"], 1)

    async def test_rename_without_name_is_ignored(self) -> None:
        self.fs.watches[0].callback("renamed", None)
        self.assertEqual(self.session.path, Path(LOG))

    async def test_read_error_is_isolated(self) -> None:
        self.fs.fail_read = 1
        await self._grow(b"b\n")
        self.assertEqual(len(self.rec.errors), 1)
        self.assertIsInstance(self.rec.errors[0], ReadError)
        self.assertEqual(self.session.last_offset, 2)
        self.assertEqual(self.session.state, SessionState.ACTIVE)

        await self._grow(b"c\n")
        self.assertEqual(self.rec.lines, ["b", "c"])
        self.assertEqual(self.session.last_offset, 6)
        self.assertEqual(len(self.rec.errors), 1)

    async def test_probe_error_during_growth(self) -> None:
        self.fs.fail_stat = 1
        await self._grow(b"b\n")
        self.assertEqual([type(e) for e in self.rec.errors], [ProbeError])
        self.assertEqual(self.session.last_offset, 2)
        self.fs.notify_changed()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, ["b"])

    async def test_concurrent_notifications_are_coalesced(self) -> None:
        self.fs.read_gate = asyncio.Event()
        checks_before = self.session.status()["checks"]
        self.fs.append(LOG, b"b\n")
        self.fs.notify_changed()
        self.assertTrue(await wait_for(lambda: self.fs.waiting_reads > 0))

        self.fs.append(LOG, b"c\n")
        for _ in range(3):
            self.fs.notify_changed()
        self.assertTrue(self.session.status()["busy"])

        self.fs.read_gate.set()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, ["b", "c"])
        self.assertEqual(self.session.last_offset, 6)
        self.assertEqual(self.session.status()["checks"] - checks_before, 2)
        self.assertEqual(self.fs.max_open_handles, 1)

    async def test_close_discards_in_flight_scan(self) -> None:
        self.fs.read_gate = asyncio.Event()
        self.fs.append(LOG, b"b\n")
        self.fs.notify_changed()
        self.assertTrue(await wait_for(lambda: self.fs.waiting_reads > 0))

        self.session.close()
        self.fs.read_gate.set()
        await self.session.wait_idle()
        self.assertEqual(self.rec.lines, [])
        self.assertEqual(self.session.last_offset, 2)
        self.assertEqual(self.session.state, SessionState.CLOSED)
        self.assertEqual(self.fs.open_handles, 0)

    async def test_no_checks_after_close(self) -> None:
        self.session.close()
        self.session.close()
        checks = self.session.status()["checks"]
        self.fs.watches[0].callback("changed", None)
        await self.session.wait_idle()
        self.assertEqual(self.session.status()["checks"], checks)
        self.assertTrue(self.fs.watches[0].closed)

    async def test_handler_closing_mid_batch_discards_the_rest(self) -> None:
        def _stop_on_marker(line: str) -> None:
            if line == "stop":
                self.session.close()

        self.session.on("line", _stop_on_marker)
        await self._grow(b"b\nstop\nc\n")
        self.assertEqual(self.rec.lines, ["b", "stop"])
        self.assertEqual(self.session.state, SessionState.CLOSED)
        self.assertEqual(self.session.last_offset, 2)
        self.assertTrue(self.fs.watches[0].closed)

    async def test_failing_handler_does_not_block_others(self) -> None:
        def _boom(_line: str) -> None:
            raise RuntimeError("handler bug")

        self.session.on("line", _boom)
        late = []
        self.session.on("line", late.append)
        await self._grow(b"b\n")
        self.assertEqual(self.rec.lines, ["b"])
        self.assertEqual(late, ["b"])
        self.assertEqual(self.session.last_offset, 4)


if __name__ == "__main__":
    unittest.main()

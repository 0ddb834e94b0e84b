#!/usr/bin/env python3
"""
Terminal Monitor Tests

Drives whole monitoring loops against scripted screens with tiny intervals.
"""

import asyncio
import unittest
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from helpers import FakeBackend, FakeTransport
from common.exceptions import BackendCallFailed
from session_monitor.execution_store import Destination, ExecutionContext, ExecutionStore, execution_key
from session_monitor.terminal_monitor import MonitorConfig, TerminalMonitor

BASELINE = "$ claude\n> "
BUSY = "$ claude\n> explain main.py\nReading main.py\n✻ Thinking…\n  esc to interrupt"
IDLE = "$ claude\n> explain main.py\nReading main.py\nmain.py starts the server\n────────\n> \n────────"
IDLE_LATE = ("$ claude\n> explain main.py\nReading main.py\nmain.py starts the server\n"
             "See also server.py\n────────\n> \n────────")


def fast_config(**overrides):
    values = dict(
        poll_steps=[(3600.0, 0.01)],
        poll_max_interval=0.01,
        stability_interval=0.01,
        stability_window=3,
        status_update_interval=3600.0,
        takeover_grace_seconds=1.0,
    )
    values.update(overrides)
    return MonitorConfig(**values)


class TestTerminalMonitor(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.transport = FakeTransport()
        self.destination = Destination(channel_id="C1", thread_key="T1")
        self.key = execution_key(self.destination, "main")

    def make_monitor(self, backend, **overrides):
        return TerminalMonitor(backend, self.transport, fast_config(**overrides))

    async def test_runs_until_completion(self):
        backend = FakeBackend([BASELINE, BUSY, IDLE])
        monitor = self.make_monitor(backend)

        result = await asyncio.wait_for(monitor.monitor("main", "explain main.py", self.destination), 5)

        self.assertTrue(result.completed)
        self.assertEqual(result.reason, "completed")
        self.assertEqual(result.execution_key, self.key)
        self.assertEqual(backend.sent, [("main", "explain main.py")])
        self.assertEqual(self.transport.fenced_posts(), [
            "```\n> explain main.py\nReading main.py\n```",
            "```\nmain.py starts the server\n```",
        ])
        self.assertIn("explain main.py\nReading main.py\nmain.py starts the server", result.final_output)
        self.assertIn("✅ Completed", self.transport.updates[-1][2])
        self.assertEqual(monitor.active_executions(), [])

    async def test_busy_after_idle_keeps_running(self):
        # idle once, busy again, then idle for good
        backend = FakeBackend([BASELINE, IDLE, BUSY, BUSY, IDLE])
        monitor = self.make_monitor(backend)

        result = await asyncio.wait_for(monitor.monitor("main", "go", self.destination), 5)

        self.assertTrue(result.completed)
        self.assertGreaterEqual(backend.captures, 5 + 3)

    async def test_session_lost(self):
        backend = FakeBackend([BASELINE, BUSY], exists=False)
        monitor = self.make_monitor(backend)

        result = await asyncio.wait_for(monitor.monitor("main", "go", self.destination), 5)

        self.assertFalse(result.completed)
        self.assertEqual(result.reason, "session_lost")
        self.assertTrue(any("no longer exists" in text for text in self.transport.post_texts()))
        self.assertIn("⚠️", self.transport.updates[-1][2])
        self.assertEqual(monitor.active_executions(), [])

    async def test_backend_failure_is_reported_and_raised(self):
        backend = FakeBackend([BASELINE, BUSY], fail_on_capture=2,
                              fail_with=BackendCallFailed("capture failed", returncode=1, stderr="boom"))
        monitor = self.make_monitor(backend)

        with self.assertRaises(BackendCallFailed):
            await asyncio.wait_for(monitor.monitor("main", "go", self.destination), 5)

        self.assertTrue(any(text.startswith("❌ Error") for text in self.transport.post_texts()))
        self.assertIn("❌", self.transport.updates[-1][2])
        self.assertEqual(monitor.active_executions(), [])

    async def test_cancel_stops_the_loop(self):
        backend = FakeBackend([BASELINE, BUSY])
        monitor = self.make_monitor(backend)

        task = monitor.start("main", "go", self.destination)
        await asyncio.sleep(0.05)
        self.assertEqual(monitor.active_executions(), [self.key])

        self.assertTrue(monitor.cancel(self.key))
        result = await asyncio.wait_for(task, 5)

        self.assertFalse(result.completed)
        self.assertEqual(result.reason, "stopped")
        self.assertIn("⏸️ Monitoring stopped", self.transport.updates[-1][2])
        self.assertEqual(monitor.active_executions(), [])

    async def test_cancel_unknown_key(self):
        monitor = self.make_monitor(FakeBackend([BASELINE]))
        self.assertFalse(monitor.cancel("C1-T1-nothing"))

    async def test_task_cancellation_marks_status(self):
        backend = FakeBackend([BASELINE, BUSY])
        monitor = self.make_monitor(backend)

        task = monitor.start("main", "go", self.destination)
        await asyncio.sleep(0.05)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertIn("⏸️ Monitoring stopped", self.transport.updates[-1][2])
        self.assertEqual(monitor.active_executions(), [])

    async def test_takeover_leaves_one_loop_and_no_duplicates(self):
        backend = FakeBackend([BASELINE, BUSY])
        monitor = self.make_monitor(backend)

        first = monitor.start("main", "first", self.destination)
        await asyncio.sleep(0.05)
        second = monitor.start("main", "second", self.destination)
        await asyncio.sleep(0.05)

        self.assertTrue(first.done())
        self.assertEqual(first.result().reason, "stopped")
        self.assertEqual(monitor.active_executions(), [self.key])

        posts_before = len(self.transport.fenced_posts())
        await asyncio.sleep(0.05)
        self.assertEqual(len(self.transport.fenced_posts()), posts_before)
        self.assertEqual(len(self.transport.fenced_posts()), len(set(self.transport.fenced_posts())))

        monitor.cancel(self.key)
        await asyncio.wait_for(second, 5)
        self.assertEqual(backend.sent, [("main", "first"), ("main", "second")])

    async def test_rapid_takeovers_keep_only_the_newest(self):
        backend = FakeBackend([BASELINE, BUSY])
        monitor = self.make_monitor(backend)

        first = monitor.start("main", "A", self.destination)
        await asyncio.sleep(0.05)
        second = monitor.start("main", "B", self.destination)
        third = monitor.start("main", "C", self.destination)
        await asyncio.sleep(0.3)

        self.assertEqual(first.result().reason, "stopped")
        self.assertEqual(second.result().reason, "stopped")
        self.assertFalse(third.done())
        self.assertEqual(monitor.active_executions(), [self.key])
        self.assertEqual(monitor.store.get(self.key).input_text, "C")
        # B was superseded while waiting and never typed anything
        self.assertEqual(backend.sent, [("main", "A"), ("main", "C")])

        monitor.cancel(self.key)
        result = await asyncio.wait_for(third, 5)
        self.assertEqual(result.reason, "stopped")
        self.assertEqual(monitor.active_executions(), [])

    async def test_transport_failures_do_not_stop_polling(self):
        transport = FakeTransport(fail_posts=True)
        backend = FakeBackend([BASELINE, BUSY, IDLE])
        monitor = TerminalMonitor(backend, transport, fast_config())

        result = await asyncio.wait_for(monitor.monitor("main", "explain main.py", self.destination), 5)

        self.assertTrue(result.completed)
        self.assertEqual(result.reason, "completed")
        self.assertEqual(transport.posts, [])
        # baseline, busy, idle twice, then a full stability window
        self.assertEqual(backend.captures, 4 + 3)
        self.assertEqual(monitor.active_executions(), [])

    async def test_change_while_stabilizing_restarts_the_count(self):
        backend = FakeBackend([BASELINE, BUSY, IDLE, IDLE, IDLE, IDLE, IDLE_LATE])
        monitor = self.make_monitor(backend)

        result = await asyncio.wait_for(monitor.monitor("main", "explain main.py", self.destination), 5)

        self.assertTrue(result.completed)
        # two identical stability captures, a changed one, then a fresh window
        self.assertEqual(backend.captures, 4 + 2 + 3)
        self.assertEqual(self.transport.fenced_posts()[-1], "```\nSee also server.py\n```")

        late = self.transport.events.index(("post", "```\nSee also server.py\n```"))
        completed = next(i for i, (kind, text) in enumerate(self.transport.events)
                         if kind == "update" and "✅ Completed" in text)
        self.assertLess(late, completed)
        self.assertIn("See also server.py", result.final_output)

    async def test_final_output_with_same_length_screen(self):
        backend = FakeBackend(["$ make\nok 1", "$ make\nok 2"])
        monitor = self.make_monitor(backend)

        result = await asyncio.wait_for(monitor.monitor("main", "make", self.destination), 5)

        self.assertTrue(result.completed)
        self.assertEqual(result.final_output, "$ make\nok 2")

    async def test_different_keys_run_concurrently(self):
        backend = FakeBackend([BASELINE, BUSY])
        monitor = self.make_monitor(backend)
        other = Destination(channel_id="C1", thread_key="T2")

        monitor.start("main", "a", self.destination)
        monitor.start("main", "b", other)
        await asyncio.sleep(0.05)

        self.assertEqual(sorted(monitor.active_executions()),
                         sorted([self.key, execution_key(other, "main")]))
        await monitor.shutdown()
        self.assertEqual(monitor.active_executions(), [])


class TestExecutionStore(unittest.TestCase):

    def setUp(self):
        self.store = ExecutionStore()
        self.destination = Destination(channel_id="C1", thread_key="T1")

    def make_context(self, text):
        return ExecutionContext(session="main", input_text=text, destination=self.destination)

    def test_replace_stops_the_displaced_execution(self):
        first, second, third = (self.make_context(t) for t in "ABC")

        self.assertIsNone(self.store.replace(first))
        self.assertIs(self.store.replace(second), first)
        self.assertIs(self.store.replace(third), second)

        self.assertTrue(first.stopped)
        self.assertTrue(second.stopped)
        self.assertFalse(third.stopped)
        self.assertIs(self.store.get(third.key), third)

    def test_release_ignores_replaced_execution(self):
        old, new = self.make_context("old"), self.make_context("new")
        self.store.replace(old)
        self.store.replace(new)
        self.store.record_sent(new.key, "chunk")

        self.assertFalse(self.store.release(old))
        self.assertIs(self.store.get(new.key), new)
        self.assertEqual(self.store.last_sent(new.key), "chunk")

        self.assertTrue(self.store.release(new))
        self.assertEqual(self.store.active_keys(), [])
        self.assertIsNone(self.store.last_sent(new.key))


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Output Dispatcher Tests

Tests chunking, duplicate suppression, status messages and transport
failure handling.
"""

import unittest
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from helpers import FakeTransport
from session_monitor.execution_store import Destination, ExecutionContext, ExecutionStore
from session_monitor.output_dispatcher import OutputDispatcher, format_duration, split_output


class TestSplitOutput(unittest.TestCase):

    def test_short_text_is_one_chunk(self):
        self.assertEqual(split_output("hello", 10), ["hello"])

    def test_empty_text(self):
        self.assertEqual(split_output("", 10), [])

    def test_splits_after_last_newline(self):
        self.assertEqual(split_output("aaaa\nbbbb\ncccc", 10), ["aaaa\nbbbb\n", "cccc"])

    def test_hard_split_without_newline(self):
        self.assertEqual(split_output("abcdefghij", 4), ["abcd", "efgh", "ij"])

    def test_leading_newline_is_not_a_split_point(self):
        self.assertEqual(split_output("\nabcdef", 3), ["\nab", "cde", "f"])

    def test_chunks_join_back_to_input(self):
        text = "\n".join(f"row {i} " + "x" * (i % 37) for i in range(200))
        for limit in (1, 7, 50, 2500):
            with self.subTest(limit=limit):
                chunks = split_output(text, limit)
                self.assertEqual("".join(chunks), text)
                self.assertTrue(all(len(chunk) <= limit for chunk in chunks))

    def test_invalid_limit(self):
        with self.assertRaises(ValueError):
            split_output("abc", 0)


class TestFormatDuration(unittest.TestCase):

    def test_formats(self):
        self.assertEqual(format_duration(45), "45s")
        self.assertEqual(format_duration(192), "3m 12s")
        self.assertEqual(format_duration(7500), "2h 5m")


class TestOutputDispatcher(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.transport = FakeTransport()
        self.store = ExecutionStore()
        self.dispatcher = OutputDispatcher(self.transport, self.store, max_chunk_length=2500)
        self.ctx = ExecutionContext(
            session="main",
            input_text="run the tests",
            destination=Destination(channel_id="C1", thread_key="T1"),
        )

    async def test_dispatch_wraps_in_code_fence(self):
        sent = await self.dispatcher.dispatch(self.ctx, "hello")
        self.assertEqual(sent, 1)
        self.assertEqual(self.transport.post_texts(), ["```\nhello\n```"])
        self.assertEqual(self.store.last_sent(self.ctx.key), "hello")
        self.assertEqual(self.ctx.messages_sent, 1)

    async def test_duplicate_dispatch_sends_once(self):
        self.assertEqual(await self.dispatcher.dispatch(self.ctx, "same output"), 1)
        self.assertEqual(await self.dispatcher.dispatch(self.ctx, "same output"), 0)
        self.assertEqual(len(self.transport.posts), 1)

    async def test_different_content_is_sent(self):
        await self.dispatcher.dispatch(self.ctx, "first")
        await self.dispatcher.dispatch(self.ctx, "second")
        await self.dispatcher.dispatch(self.ctx, "first")
        self.assertEqual(len(self.transport.posts), 3)

    async def test_blank_text_is_ignored(self):
        self.assertEqual(await self.dispatcher.dispatch(self.ctx, "  \n"), 0)
        self.assertEqual(self.transport.posts, [])

    async def test_long_output_is_chunked(self):
        dispatcher = OutputDispatcher(self.transport, self.store, max_chunk_length=20)
        text = "\n".join(f"line number {i}" for i in range(10))
        sent = await dispatcher.dispatch(self.ctx, text)
        self.assertGreater(sent, 1)
        for message in self.transport.post_texts():
            self.assertTrue(message.startswith("```\n"))

    async def test_transport_error_is_dropped(self):
        dispatcher = OutputDispatcher(FakeTransport(fail_posts=True), self.store)
        self.assertEqual(await dispatcher.dispatch(self.ctx, "lost"), 0)
        self.assertIsNone(self.store.last_sent(self.ctx.key))

    async def test_status_message_is_posted_then_updated(self):
        await self.dispatcher.start_status(self.ctx)
        self.assertEqual(self.ctx.status_message_id, "msg-1")
        await self.dispatcher.update_status(self.ctx)
        await self.dispatcher.complete_status(self.ctx)

        self.assertEqual(len(self.transport.posts), 1)
        self.assertEqual([mid for _, mid, _ in self.transport.updates], ["msg-1", "msg-1"])
        self.assertIn("Monitoring", self.transport.updates[0][2])
        self.assertIn("✅ Completed", self.transport.updates[1][2])

    async def test_status_text_is_truncated(self):
        self.ctx.status_message_id = "msg-9"
        await self.dispatcher.fail_status(self.ctx, "x" * 5000)
        self.assertLessEqual(len(self.transport.updates[0][2]), self.transport.max_update_length)

    async def test_stopped_status(self):
        await self.dispatcher.start_status(self.ctx)
        await self.dispatcher.complete_status(self.ctx, stopped=True)
        self.assertIn("⏸️ Monitoring stopped", self.transport.updates[-1][2])


if __name__ == '__main__':
    unittest.main()

#!/usr/bin/env python3
"""
Poll Scheduler Tests
"""

import asyncio
import time
import unittest
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from session_monitor.completion_detector import CompletionState
from session_monitor.poll_scheduler import PollScheduler


class TestPollIntervals(unittest.TestCase):

    def setUp(self):
        self.scheduler = PollScheduler()

    def test_default_steps(self):
        expected = [
            (0, 5.0), (59.9, 5.0),
            (60, 10.0), (299, 10.0),
            (300, 30.0), (1799, 30.0),
            (1800, 60.0), (86400, 60.0),
        ]
        for elapsed, interval in expected:
            with self.subTest(elapsed=elapsed):
                self.assertEqual(self.scheduler.next_interval(elapsed), interval)

    def test_candidate_uses_stability_interval(self):
        self.assertEqual(
            self.scheduler.next_interval(1000, CompletionState.COMPLETION_CANDIDATE),
            self.scheduler.stability_interval,
        )

    def test_stability_interval_shorter_than_adaptive(self):
        self.assertLess(self.scheduler.stability_interval, self.scheduler.next_interval(0))

    def test_max_interval_caps_steps(self):
        scheduler = PollScheduler([(60, 120)], max_interval=45)
        self.assertEqual(scheduler.next_interval(0), 45)
        self.assertEqual(scheduler.next_interval(100), 45)

    def test_custom_steps_are_sorted(self):
        scheduler = PollScheduler([(300, 10), (60, 2)], max_interval=20)
        self.assertEqual(scheduler.next_interval(10), 2)
        self.assertEqual(scheduler.next_interval(100), 10)
        self.assertEqual(scheduler.next_interval(1000), 20)


class TestCooperativeSleep(unittest.IsolatedAsyncioTestCase):

    async def test_sleep_runs_full_interval(self):
        stop = asyncio.Event()
        self.assertFalse(await PollScheduler.sleep(0.01, stop))

    async def test_stop_flag_wakes_sleep(self):
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)
        started = time.monotonic()
        self.assertTrue(await PollScheduler.sleep(30, stop))
        self.assertLess(time.monotonic() - started, 5)

    async def test_already_stopped(self):
        stop = asyncio.Event()
        stop.set()
        self.assertTrue(await PollScheduler.sleep(30, stop))


if __name__ == '__main__':
    unittest.main()

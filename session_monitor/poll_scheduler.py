#!/usr/bin/env python3
"""
Poll Scheduler - adaptive polling cadence for a monitoring loop.

Short intervals while a response is young, longer ones as it drags on, and
a fixed short interval while confirming completion.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from .completion_detector import CompletionState

DEFAULT_POLL_STEPS: List[Tuple[float, float]] = [(60.0, 5.0), (300.0, 10.0), (1800.0, 30.0)]


class PollScheduler:
    """Maps elapsed time and completion state onto a sleep interval"""

    def __init__(self, steps: Optional[Sequence[Tuple[float, float]]] = None,
                 max_interval: float = 60.0, stability_interval: float = 1.0):
        self.steps = sorted(steps or DEFAULT_POLL_STEPS)
        self.max_interval = max_interval
        self.stability_interval = stability_interval

    def adaptive_interval(self, elapsed: float) -> float:
        for threshold, interval in self.steps:
            if elapsed < threshold:
                return min(interval, self.max_interval)
        return self.max_interval

    def next_interval(self, elapsed: float, state: CompletionState = CompletionState.RUNNING) -> float:
        """Interval before the next regular poll"""
        if state == CompletionState.COMPLETION_CANDIDATE:
            return self.stability_interval
        return self.adaptive_interval(elapsed)

    @staticmethod
    async def sleep(seconds: float, stop_event: Optional[asyncio.Event] = None) -> bool:
        """Sleep cooperatively; returns True if woken early by the stop flag"""
        if stop_event is None:
            await asyncio.sleep(seconds)
            return False
        if stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

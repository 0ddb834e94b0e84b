#!/usr/bin/env python3
"""
Execution Store
===============
Owns the per-key state shared between monitoring loops: which execution is
currently active for an execution key, and the last chunk each key sent.

Access is guarded by a re-entrant lock so executor threads can read it too.
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Destination:
    """Where chat messages for one conversation thread go"""
    channel_id: str
    thread_key: str


def execution_key(destination: Destination, session: str) -> str:
    """Composite key serializing monitoring loops per thread and session"""
    return f"{destination.channel_id}-{destination.thread_key}-{session}"


@dataclass
class ExecutionContext:
    """One in-flight monitoring operation"""
    session: str
    input_text: str
    destination: Destination
    start_time: float = field(default_factory=time.monotonic)
    status_message_id: Optional[str] = None
    messages_sent: int = 0
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None

    @property
    def key(self) -> str:
        return execution_key(self.destination, self.session)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self):
        self.stop_event.set()


class ExecutionStore:
    """Thread-safe registry of active executions and last-sent chunks"""

    def __init__(self):
        self._lock = threading.RLock()
        self._active: Dict[str, ExecutionContext] = {}
        self._last_sent: Dict[str, str] = {}

    # ---------- Active executions ----------
    def get(self, key: str) -> Optional[ExecutionContext]:
        with self._lock:
            return self._active.get(key)

    def replace(self, ctx: ExecutionContext) -> Optional[ExecutionContext]:
        """Install `ctx` as the active execution for its key.

        The execution it displaces, if any, is stopped and returned. Both
        happen under one lock acquisition, so concurrent callers for the same
        key always leave exactly one active execution: the last to call.
        """
        with self._lock:
            old = self._active.get(ctx.key)
            self._active[ctx.key] = ctx
        if old is not None and old is not ctx:
            old.stop()
            return old
        return None

    def is_current(self, ctx: ExecutionContext) -> bool:
        """True while `ctx` has not been replaced by a newer execution"""
        with self._lock:
            return self._active.get(ctx.key) is ctx

    def release(self, ctx: ExecutionContext) -> bool:
        """Drop the entries of `ctx` if it is still the current execution.

        A replaced execution must not clear state that now belongs to its
        successor.
        """
        with self._lock:
            if self._active.get(ctx.key) is not ctx:
                return False
            del self._active[ctx.key]
            self._last_sent.pop(ctx.key, None)
            return True

    def active_keys(self) -> List[str]:
        with self._lock:
            return list(self._active.keys())

    def active_contexts(self) -> List[ExecutionContext]:
        with self._lock:
            return list(self._active.values())

    # ---------- Last-sent chunks ----------
    def last_sent(self, key: str) -> Optional[str]:
        with self._lock:
            return self._last_sent.get(key)

    def record_sent(self, key: str, chunk: str):
        with self._lock:
            self._last_sent[key] = chunk

    def clear_last_sent(self, key: str):
        with self._lock:
            self._last_sent.pop(key, None)

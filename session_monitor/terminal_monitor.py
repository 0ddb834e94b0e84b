#!/usr/bin/env python3
"""
Terminal Monitor
================
Sends one input to a terminal session and follows the response until the
driven program is idle again, streaming new content to the chat thread.

Each execution runs its own cooperative loop:

1. capture a baseline, send the input, post a status message
2. every poll: re-check the session, capture, diff against the previous
   capture, dispatch the delta, feed the completion detector
3. once the detector is stabilizing: capture on the short stability interval
   until the raw screen stops changing
4. finish the status message and return an ExecutionResult

Only the previous and current snapshots are kept; every cycle recomputes
from full captures.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from common.exceptions import BackendError, SessionNotFound

from .anchor_diff import AnchorDiffEngine, AnchorMatch
from .completion_detector import CompletionDetector, CompletionState, build_idle_policy
from .execution_store import Destination, ExecutionContext, ExecutionStore, execution_key
from .output_dispatcher import OutputDispatcher
from .poll_scheduler import DEFAULT_POLL_STEPS, PollScheduler
from .screen_normalizer import DecorationRules, NormalizedScreen, ScreenNormalizer
from .transport import ChatTransport


@dataclass
class MonitorConfig:
    """Tunables for TerminalMonitor"""
    poll_steps: List[Tuple[float, float]] = field(default_factory=lambda: list(DEFAULT_POLL_STEPS))
    poll_max_interval: float = 60.0
    stability_interval: float = 1.0
    stability_window: int = 3
    status_update_interval: float = 30.0
    takeover_grace_seconds: float = 2.0
    max_chunk_length: int = 2500
    idle_rule: str = "banner"
    busy_banners: List[str] = field(default_factory=lambda: ["esc to interrupt"])
    decoration_rules: DecorationRules = field(default_factory=DecorationRules)


@dataclass
class ExecutionResult:
    """Outcome of one monitor() call"""
    final_output: str
    duration_seconds: float
    completed: bool
    execution_key: str = ""
    reason: str = "completed"  # completed | stopped | session_lost

    def to_dict(self):
        return {
            "final_output": self.final_output,
            "duration_seconds": round(self.duration_seconds, 2),
            "completed": self.completed,
            "execution_key": self.execution_key,
            "reason": self.reason,
        }


class TerminalMonitor:
    """Runs monitoring loops, at most one per execution key"""

    def __init__(self, backend, transport: ChatTransport, config: Optional[MonitorConfig] = None,
                 store: Optional[ExecutionStore] = None):
        self.backend = backend
        self.config = config or MonitorConfig()
        self.store = store or ExecutionStore()
        self.normalizer = ScreenNormalizer(self.config.decoration_rules)
        self.diff_engine = AnchorDiffEngine(self.normalizer)
        self.scheduler = PollScheduler(
            self.config.poll_steps,
            max_interval=self.config.poll_max_interval,
            stability_interval=self.config.stability_interval,
        )
        self.dispatcher = OutputDispatcher(transport, self.store, self.config.max_chunk_length)
        self._background_tasks: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(__name__)

    # ---------- Public API ----------
    def active_executions(self) -> List[str]:
        """Keys of executions whose loops are currently running"""
        return self.store.active_keys()

    def cancel(self, key: str) -> bool:
        """Ask the execution for `key` to stop at its next suspension point"""
        ctx = self.store.get(key)
        if ctx is None:
            return False
        self.logger.info(f"⏸️ Cancel requested for {key}")
        ctx.stop()
        return True

    def start(self, session: str, input_text: str, destination: Destination) -> asyncio.Task:
        """Run monitor() in the background and return its task"""
        task = asyncio.create_task(self.monitor(session, input_text, destination))
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    async def shutdown(self):
        """Stop every running execution and wait for the loops to exit"""
        for ctx in self.store.active_contexts():
            ctx.stop()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def monitor(self, session: str, input_text: str, destination: Destination) -> ExecutionResult:
        """Send input to `session` and stream its response to `destination`"""
        key = execution_key(destination, session)
        ctx = ExecutionContext(session=session, input_text=input_text, destination=destination)
        ctx.task = asyncio.current_task()

        try:
            await self._take_over(ctx)
        except asyncio.CancelledError:
            self.store.release(ctx)
            raise

        # A newer message for this key may have arrived while we waited
        if self._should_stop(ctx):
            self.logger.info(f"Execution {key} superseded before sending input")
            self.store.release(ctx)
            return ExecutionResult("", ctx.elapsed, False, key, "stopped")

        self.logger.info(f"▶️ Starting execution {key}")

        detector = CompletionDetector(
            build_idle_policy(self.config.idle_rule, self.config.busy_banners, self.config.decoration_rules),
            stability_window=self.config.stability_window,
        )
        baseline: Optional[NormalizedScreen] = None
        previous: Optional[NormalizedScreen] = None
        last_status_update = time.monotonic()

        try:
            # Baseline before sending so output produced before the first poll is not lost
            baseline = self.normalizer.normalize(await self.backend.capture_output(session))
            previous = baseline

            await self.backend.send_input(session, input_text)
            await self.dispatcher.start_status(ctx)

            while not self._should_stop(ctx):
                interval = self.scheduler.next_interval(ctx.elapsed, detector.state)
                if await self.scheduler.sleep(interval, ctx.stop_event):
                    break
                if not self.store.is_current(ctx):
                    break

                if not await self.backend.session_exists(session):
                    raise SessionNotFound(session)

                current = self.normalizer.normalize(await self.backend.capture_output(session))
                previous = await self._forward_delta(ctx, previous, current)

                state = detector.observe(current)
                if state == CompletionState.STABILIZING:
                    previous = await self._stabilize(ctx, detector, previous)
                    if detector.state == CompletionState.DONE:
                        break

                if time.monotonic() - last_status_update >= self.config.status_update_interval:
                    await self.dispatcher.update_status(ctx)
                    last_status_update = time.monotonic()

            completed = detector.state == CompletionState.DONE
            final_output = self._final_output(baseline, previous)
            await self.dispatcher.complete_status(ctx, stopped=not completed)
            self.logger.info(
                f"{'✅ Completed' if completed else '⏸️ Stopped'} execution {key} "
                f"after {ctx.elapsed:.1f}s ({ctx.messages_sent} messages)"
            )
            return ExecutionResult(final_output, ctx.elapsed, completed, key,
                                   "completed" if completed else "stopped")

        except SessionNotFound as e:
            self.logger.warning(f"Session lost during execution {key}: {e}")
            await self.dispatcher.post_notice(
                ctx, f"⚠️ tmux session `{session}` no longer exists. Monitoring ended."
            )
            await self.dispatcher.fail_status(ctx, "Session ended", icon="⚠️")
            return ExecutionResult(self._final_output(baseline, previous), ctx.elapsed, False, key,
                                   "session_lost")

        except BackendError as e:
            self.logger.error(f"Backend failure during execution {key}: {e}")
            await self.dispatcher.post_notice(ctx, f"❌ Error: {e.get_user_friendly_message()}")
            await self.dispatcher.fail_status(ctx, "Error")
            raise

        except asyncio.CancelledError:
            self.logger.info(f"Execution {key} cancelled")
            await self.dispatcher.complete_status(ctx, stopped=True)
            raise

        except Exception as e:
            self.logger.error(f"Unexpected error during execution {key}: {e}", exc_info=True)
            await self.dispatcher.fail_status(ctx, f"Error: {e}")
            raise

        finally:
            self.store.release(ctx)

    # ---------- Loop helpers ----------
    def _should_stop(self, ctx: ExecutionContext) -> bool:
        return ctx.stopped or not self.store.is_current(ctx)

    async def _take_over(self, ctx: ExecutionContext):
        """Make `ctx` the active execution for its key and wait for the one it replaced"""
        key = ctx.key
        old = self.store.replace(ctx)
        if old is None:
            return

        self.logger.info(f"🔁 Taking over execution {key}, waiting for previous loop to exit")
        task = old.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            done, _ = await asyncio.wait([task], timeout=self.config.takeover_grace_seconds)
            if not done:
                self.logger.warning(
                    f"Previous loop for {key} did not exit within {self.config.takeover_grace_seconds}s"
                )
        if self.store.is_current(ctx):
            self.store.clear_last_sent(key)

    async def _forward_delta(self, ctx: ExecutionContext, previous: NormalizedScreen,
                             current: NormalizedScreen) -> NormalizedScreen:
        """Dispatch whatever is new in `current` and make it the next previous"""
        result = self.diff_engine.compute(previous, current)
        self.logger.debug(
            f"Poll {ctx.key}: {len(current.anchor_lines)} lines, rule={result.match}, "
            f"delta={len(result.text)} chars"
        )
        if result.text and not self._should_stop(ctx):
            await self.dispatcher.dispatch(ctx, result.text)
        return current

    async def _stabilize(self, ctx: ExecutionContext, detector: CompletionDetector,
                         previous: NormalizedScreen) -> NormalizedScreen:
        """Capture on the stability interval until the screen stops changing"""
        self.logger.debug(f"Stabilizing {ctx.key}")
        last_status_update = time.monotonic()

        while detector.state == CompletionState.STABILIZING and not self._should_stop(ctx):
            raw = await self.backend.capture_output(ctx.session)
            if raw != previous.raw:
                previous = await self._forward_delta(ctx, previous, self.normalizer.normalize(raw))

            if detector.observe_stable_capture(raw):
                break

            if time.monotonic() - last_status_update >= self.config.status_update_interval:
                await self.dispatcher.update_status(ctx)
                last_status_update = time.monotonic()

            if await self.scheduler.sleep(self.scheduler.stability_interval, ctx.stop_event):
                break

        return previous

    def _final_output(self, baseline: Optional[NormalizedScreen],
                      final: Optional[NormalizedScreen]) -> str:
        """Everything the execution produced, relative to the pre-input screen"""
        if final is None:
            return ""
        if baseline is None or baseline is final:
            return ""
        result = self.diff_engine.compute(baseline, final)
        if result.match == AnchorMatch.UNCHANGED and baseline.anchor_text != final.anchor_text:
            # Equal length alone does not mean the run produced nothing
            return final.content
        if result.anchored:
            return result.text
        return final.content

    def _on_background_done(self, task: asyncio.Task):
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Background execution failed: {error}")

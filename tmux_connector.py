#!/usr/bin/env python3
"""
Tmux Connector
==============
Handles all tmux I/O for the terminal session monitor.

This module contains:
- TmuxSession data model for `tmux list-sessions`
- TmuxCommandQueue for serialized command execution per target session
- TmuxConnector, the backend adapter used by the monitor (list, exists,
  send input, capture, working directory)

No heuristics live here: every call either returns what tmux reported or
raises a BackendError subclass describing why it could not.
"""

import asyncio
import subprocess
import logging
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, List, Optional

from common.exceptions import (
    BackendCallFailed,
    BackendError,
    BackendUnavailable,
    SessionNotFound,
)

# stderr fragments tmux prints when the server/socket is gone
NO_SERVER_MARKERS = ("no server running", "error connecting to", "server exited")
# stderr fragments tmux prints when a target cannot be resolved
NOT_FOUND_MARKERS = ("can't find session", "can't find pane", "can't find window", "session not found")

LIST_SESSIONS_FORMAT = "#{session_name}:#{session_windows}:#{session_created}:#{session_attached}"


# ---------------------------- Data Models ------------------------------------
@dataclass
class TmuxSession:
    """One row of `tmux list-sessions`"""
    name: str
    window_count: int
    created_at: Optional[datetime]
    is_attached: bool

    def to_dict(self):
        """Convert to dictionary with the timestamp as ISO string"""
        return {
            "name": self.name,
            "window_count": self.window_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_attached": self.is_attached,
        }

    @classmethod
    def from_list_line(cls, line: str) -> "TmuxSession":
        """Parse a line produced with LIST_SESSIONS_FORMAT"""
        name, windows, created, attached = line.rsplit(":", 3)
        try:
            created_at = datetime.fromtimestamp(int(created))
        except ValueError:
            created_at = None
        return cls(
            name=name,
            window_count=int(windows) if windows.isdigit() else 0,
            created_at=created_at,
            is_attached=attached.strip() not in ("", "0"),
        )


# ---------------------------- Command Queue for Concurrency Control ----------
class TmuxCommandQueue:
    """Serializes tmux commands per target so keystroke sequences never interleave,
    while commands for different targets run in parallel"""

    def __init__(self, send_keys_delay: float = 0.1):
        self.send_keys_delay = send_keys_delay
        self._target_queues: Dict[str, asyncio.Queue] = {}
        self._target_workers: Dict[str, asyncio.Task] = {}
        self._global_queue: Optional[asyncio.Queue] = None
        self._global_worker: Optional[asyncio.Task] = None
        self._running = False
        self.logger = logging.getLogger(__name__)

    async def start(self):
        """Start the command workers"""
        if self._running:
            return
        self._running = True
        self._global_queue = asyncio.Queue()
        self._global_worker = asyncio.create_task(self._worker_loop("global", self._global_queue))
        self.logger.info("TmuxCommandQueue started with per-target queueing")

    async def stop(self):
        """Stop all command workers"""
        if not self._running:
            return
        self._running = False

        workers = list(self._target_workers.values())
        if self._global_worker:
            workers.append(self._global_worker)
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

        self._target_queues.clear()
        self._target_workers.clear()
        self._global_queue = None
        self._global_worker = None
        self.logger.info("TmuxCommandQueue stopped")

    def _extract_target(self, cmd: List[str]) -> Optional[str]:
        """Extract the -t target from a tmux command"""
        for i, arg in enumerate(cmd):
            if arg == "-t" and i + 1 < len(cmd):
                return cmd[i + 1].lstrip("=")
        return None

    async def _worker_loop(self, name: str, queue: asyncio.Queue):
        """Worker loop for one target (or the global queue)"""
        self.logger.debug(f"Started worker for {name}")

        while self._running:
            try:
                cmd, future = await queue.get()
                try:
                    loop = asyncio.get_running_loop()
                    result = await loop.run_in_executor(
                        None,
                        lambda: subprocess.run(cmd, capture_output=True, text=True, check=False)
                    )
                    if not future.done():
                        future.set_result(result)

                    # Give the target UI time to consume keystrokes
                    if "send-keys" in cmd and self.send_keys_delay:
                        await asyncio.sleep(self.send_keys_delay)

                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                finally:
                    queue.task_done()

            except asyncio.CancelledError:
                break

        self.logger.debug(f"Stopped worker for {name}")

    async def execute(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Execute command through the appropriate queue"""
        if not self._running:
            await self.start()

        future = asyncio.get_running_loop().create_future()
        target = self._extract_target(cmd)

        if target:
            if target not in self._target_queues:
                queue = asyncio.Queue()
                self._target_queues[target] = queue
                self._target_workers[target] = asyncio.create_task(self._worker_loop(target, queue))
                self.logger.debug(f"Created queue for target {target}")
            await self._target_queues[target].put((cmd, future))
        else:
            await self._global_queue.put((cmd, future))

        return await future

    async def cleanup_target(self, target: str):
        """Clean up queue and worker for a specific target"""
        worker = self._target_workers.pop(target, None)
        self._target_queues.pop(target, None)
        if worker:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
            self.logger.debug(f"Cleaned up queue for target {target}")


# ---------------------------- Backend Adapter --------------------------------
class TmuxConnector:
    """Session backend adapter over the tmux command line"""

    def __init__(self, capture_history_lines: int = 2000, settle_delay: float = 0.2,
                 confirm_gap: float = 0.05, confirm_presses: int = 2,
                 send_keys_delay: float = 0.1, tmux_binary: str = "tmux"):
        self.capture_history_lines = capture_history_lines
        self.settle_delay = settle_delay
        self.confirm_gap = confirm_gap
        self.confirm_presses = confirm_presses
        self.tmux_binary = tmux_binary
        self._tmux_queue = TmuxCommandQueue(send_keys_delay=send_keys_delay)
        self.logger = logging.getLogger(__name__)

    async def start(self):
        await self._tmux_queue.start()

    async def close(self):
        await self._tmux_queue.stop()

    async def forget_session(self, session: str):
        """Drop the command queue of a session that no longer exists"""
        await self._tmux_queue.cleanup_target(session)

    # ---------- Helper Methods ----------
    async def _run_async(self, args: List[str]) -> subprocess.CompletedProcess:
        """Run a tmux command through the queue; never raises for non-zero exit"""
        cmd = [self.tmux_binary] + args
        try:
            return await self._tmux_queue.execute(cmd)
        except OSError as e:
            self.logger.error(f"Command failed: {' '.join(cmd)} - {e}")
            raise BackendCallFailed(f"Could not run tmux: {e}", command=cmd) from e

    def _error_for_result(self, result: subprocess.CompletedProcess,
                          session: Optional[str] = None) -> BackendError:
        """Map a failed tmux result onto the exception taxonomy"""
        cmd = list(result.args) if isinstance(result.args, (list, tuple)) else [str(result.args)]
        stderr = (result.stderr or "").strip()
        lowered = stderr.lower()

        if any(marker in lowered for marker in NO_SERVER_MARKERS):
            return BackendUnavailable(f"tmux server is not running: {stderr}", command=cmd,
                                      returncode=result.returncode, stderr=stderr)
        if any(marker in lowered for marker in NOT_FOUND_MARKERS):
            return SessionNotFound(session or self._target_of(cmd), command=cmd,
                                   returncode=result.returncode, stderr=stderr)
        return BackendCallFailed(f"{' '.join(cmd)} exited with {result.returncode}: {stderr}",
                                 command=cmd, returncode=result.returncode, stderr=stderr)

    @staticmethod
    def _target_of(cmd: List[str]) -> str:
        for i, arg in enumerate(cmd):
            if arg == "-t" and i + 1 < len(cmd):
                return cmd[i + 1]
        return ""

    def _escape_text_for_tmux(self, text: str) -> str:
        """Escape text for safe transmission via `tmux send-keys -l`.

        The text travels as a single argv element, so quotes and shell
        metacharacters reach the pane unchanged. tmux itself still treats an
        argument ending in ';' as a command separator and turns a trailing
        '\\;' back into ';', so any trailing ';' gets one more backslash than
        was typed. NUL bytes cannot be passed through argv at all.
        """
        escaped_text = text

        if '\x00' in escaped_text:
            escaped_text = escaped_text.replace('\x00', '')
            self.logger.warning("Removed null bytes from text for tmux transmission")

        if escaped_text.endswith(';'):
            escaped_text = escaped_text[:-1] + '\\;'

        self.logger.debug(f"Text prepared for tmux: '{text[:100]}{'...' if len(text) > 100 else ''}'")
        return escaped_text

    # ---------- Backend Operations ----------
    async def list_sessions(self) -> List[TmuxSession]:
        """List tmux sessions; an absent tmux server yields an empty list"""
        result = await self._run_async(["list-sessions", "-F", LIST_SESSIONS_FORMAT])
        if result.returncode != 0:
            error = self._error_for_result(result)
            if isinstance(error, BackendUnavailable):
                self.logger.debug("No tmux server running, no sessions to list")
                return []
            raise error

        sessions = []
        for line in result.stdout.strip().splitlines():
            if not line.strip():
                continue
            try:
                sessions.append(TmuxSession.from_list_line(line))
            except ValueError:
                self.logger.warning(f"Skipping unparseable list-sessions line: {line!r}")
        return sessions

    async def session_exists(self, session: str) -> bool:
        """Check whether a tmux session exists"""
        # "=" forces an exact name match instead of tmux's prefix matching
        target = f"={session}" if ":" not in session and "." not in session else session
        result = await self._run_async(["has-session", "-t", target])
        if result.returncode == 0:
            return True

        error = self._error_for_result(result, session)
        if isinstance(error, (SessionNotFound, BackendUnavailable)):
            return False
        raise error

    async def send_input(self, session: str, text: str) -> None:
        """Type text into the session and confirm it.

        The confirmation key is pressed `confirm_presses` times: interactive
        prompts may consume the first press to accept an autocomplete or move
        focus, and only commit on the second.
        """
        escaped_text = self._escape_text_for_tmux(text)
        self.logger.info(f"Sending input to {session}: {text[:50]}{'...' if len(text) > 50 else ''}")

        if escaped_text:
            result = await self._run_async(["send-keys", "-t", session, "-l", "--", escaped_text])
            if result.returncode != 0:
                raise self._error_for_result(result, session)

        # Let the target program's UI settle before confirming
        await asyncio.sleep(self.settle_delay)

        for press in range(self.confirm_presses):
            if press:
                await asyncio.sleep(self.confirm_gap)
            result = await self._run_async(["send-keys", "-t", session, "C-m"])
            if result.returncode != 0:
                raise self._error_for_result(result, session)

    async def capture_output(self, session: str) -> str:
        """Capture the visible screen plus scrollback, escape sequences included"""
        args = ["capture-pane", "-p", "-e", "-t", session]
        if self.capture_history_lines:
            args += ["-S", f"-{self.capture_history_lines}"]

        result = await self._run_async(args)
        if result.returncode != 0:
            raise self._error_for_result(result, session)
        return result.stdout

    async def get_working_directory(self, session: str) -> str:
        """Get the current path of the session's active pane"""
        result = await self._run_async(["display-message", "-p", "-t", session, "#{pane_current_path}"])
        if result.returncode != 0:
            raise self._error_for_result(result, session)
        return result.stdout.strip()

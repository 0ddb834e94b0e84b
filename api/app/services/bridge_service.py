"""
Bridge service: routes chat actions to tmux sessions and monitoring loops.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from common.exceptions import MappingNotFound, SessionNotFound
from session_monitor.execution_store import Destination, execution_key
from session_monitor.terminal_monitor import TerminalMonitor
from session_monitor.transport import ChatTransport
from tmux_connector import TmuxConnector, TmuxSession

from app.services.session_mapping import SessionMapping, SessionMappingStore


class BridgeService:
    """Glue between the chat control plane, the mapping store and the monitor"""

    def __init__(self, connector: TmuxConnector, mappings: SessionMappingStore,
                 monitor: TerminalMonitor, transport: ChatTransport):
        self.connector = connector
        self.mappings = mappings
        self.monitor = monitor
        self.transport = transport
        self.logger = logging.getLogger(__name__)
        self._cleanup_task: Optional[asyncio.Task] = None

    async def list_sessions(self) -> List[TmuxSession]:
        return await self.connector.list_sessions()

    async def resolve_target(self, target: str) -> TmuxSession:
        """Resolve a 1-based list index or a session name to a tmux session"""
        sessions = await self.connector.list_sessions()
        target = target.strip()

        if target.isdigit():
            index = int(target) - 1
            if 0 <= index < len(sessions):
                return sessions[index]
            raise SessionNotFound(target, f"No tmux session at position {target}")

        for session in sessions:
            if session.name == target:
                return session
        raise SessionNotFound(target)

    async def connect(self, channel_id: str, target: str) -> Tuple[SessionMapping, str]:
        """Bind a new chat thread to a tmux session.

        The "connected" message posted to the channel starts the thread, and
        its message id becomes the thread key.
        """
        session = await self.resolve_target(target)
        if not await self.connector.session_exists(session.name):
            raise SessionNotFound(session.name)

        working_dir = await self.connector.get_working_directory(session.name)
        thread_key = await self.transport.post_message(
            Destination(channel_id=channel_id, thread_key=""),
            f"🔗 Connected to tmux session `{session.name}`\n📁 {working_dir}\n"
            f"Reply in this thread to send input to the session.",
        )
        mapping = self.mappings.create(thread_key, session.name, channel_id)
        return mapping, working_dir

    async def submit(self, thread_key: str, text: str) -> str:
        """Send a thread message to its tmux session and start monitoring.

        Returns the execution key of the started loop.
        """
        mapping = self.mappings.lookup(thread_key)
        if mapping is None:
            raise MappingNotFound(thread_key)

        destination = Destination(channel_id=mapping.channel_id, thread_key=thread_key)
        if not await self.connector.session_exists(mapping.tmux_session):
            self.logger.warning(f"tmux session {mapping.tmux_session} for thread {thread_key} is gone")
            await self.transport.post_message(
                destination,
                f"⚠️ tmux session `{mapping.tmux_session}` no longer exists. "
                f"Connect again to continue.",
            )
            self.mappings.remove(thread_key)
            await self.connector.forget_session(mapping.tmux_session)
            raise SessionNotFound(mapping.tmux_session)

        self.mappings.record_activity(thread_key)
        self.monitor.start(mapping.tmux_session, text, destination)
        return execution_key(destination, mapping.tmux_session)

    def list_executions(self) -> List[dict]:
        return [
            {
                "execution_key": ctx.key,
                "session": ctx.session,
                "channel_id": ctx.destination.channel_id,
                "thread_key": ctx.destination.thread_key,
                "elapsed_seconds": round(ctx.elapsed, 1),
                "messages_sent": ctx.messages_sent,
            }
            for ctx in self.monitor.store.active_contexts()
        ]

    def cancel(self, key: str) -> bool:
        return self.monitor.cancel(key)

    # ---------- Mapping cleanup ----------
    async def _cleanup_loop(self, interval_minutes: int, max_inactive_minutes: int):
        while True:
            await asyncio.sleep(interval_minutes * 60)
            removed = self.mappings.cleanup_inactive(max_inactive_minutes)
            if removed:
                self.logger.info(f"Removed {removed} mappings inactive for over {max_inactive_minutes} minutes")

    def start_cleanup(self, interval_minutes: int = 30, max_inactive_minutes: int = 60):
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(
                self._cleanup_loop(interval_minutes, max_inactive_minutes)
            )

    async def stop(self):
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.monitor.shutdown()


_bridge_service: Optional[BridgeService] = None


def set_bridge_service(service: Optional[BridgeService]):
    global _bridge_service
    _bridge_service = service


def get_bridge_service() -> BridgeService:
    """FastAPI dependency returning the service created at startup"""
    if _bridge_service is None:
        raise RuntimeError("Bridge service is not initialized")
    return _bridge_service

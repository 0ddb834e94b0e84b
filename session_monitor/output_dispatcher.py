#!/usr/bin/env python3
"""
Output Dispatcher
=================
Forwards content deltas to the chat transport in size-bounded, deduplicated
chunks, and keeps a single status message per execution up to date.
"""

import logging
from typing import List

from common.exceptions import TransportError

from .execution_store import ExecutionContext, ExecutionStore
from .transport import ChatTransport

CODE_FENCE = "```"


def split_output(text: str, max_length: int = 2500) -> List[str]:
    """Split text into chunks of at most max_length characters.

    Cuts after the last newline inside the limit when there is one, so the
    newline stays with the preceding chunk; otherwise cuts hard at the limit.
    Joining the chunks gives back the original text.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")
    if len(text) <= max_length:
        return [text] if text else []

    chunks = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        window = remaining[:max_length]
        last_newline = window.rfind('\n')
        cut = last_newline + 1 if last_newline > 0 else max_length
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]

    return chunks


def format_duration(seconds: float) -> str:
    """Format an elapsed time like 45s, 3m 12s or 2h 5m"""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


class OutputDispatcher:
    """Chunking, duplicate suppression and status message handling"""

    def __init__(self, transport: ChatTransport, store: ExecutionStore, max_chunk_length: int = 2500):
        self.transport = transport
        self.store = store
        # Leave room for the code fence wrapping every chunk
        fence_overhead = 2 * (len(CODE_FENCE) + 1)
        self.max_chunk_length = max(1, min(max_chunk_length, transport.max_post_length - fence_overhead))
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _fence(chunk: str) -> str:
        body = chunk.rstrip('\n')
        return f"{CODE_FENCE}\n{body}\n{CODE_FENCE}"

    def _fit_status(self, text: str) -> str:
        limit = self.transport.max_update_length
        if len(text) <= limit:
            return text
        return text[:max(0, limit - 1)] + "…"

    async def dispatch(self, ctx: ExecutionContext, text: str) -> int:
        """Send new content for an execution; returns the number of messages sent"""
        if not text or not text.strip():
            return 0

        sent = 0
        for chunk in split_output(text, self.max_chunk_length):
            if not chunk.strip():
                continue
            if self.store.last_sent(ctx.key) == chunk:
                self.logger.debug(f"Skipping duplicate chunk ({len(chunk)} chars) for {ctx.key}")
                continue
            try:
                await self.transport.post_message(ctx.destination, self._fence(chunk))
            except TransportError as e:
                self.logger.error(f"Dropping chunk for {ctx.key}: {e}")
                continue
            self.store.record_sent(ctx.key, chunk)
            ctx.messages_sent += 1
            sent += 1

        if sent:
            self.logger.debug(f"Sent {sent} message(s) for {ctx.key} ({len(text)} chars)")
        return sent

    async def post_notice(self, ctx: ExecutionContext, text: str) -> bool:
        """Post a plain (unfenced) notice to the execution's thread"""
        try:
            await self.transport.post_message(ctx.destination, self._fit_status(text))
            return True
        except TransportError as e:
            self.logger.error(f"Dropping notice for {ctx.key}: {e}")
            return False

    async def _set_status(self, ctx: ExecutionContext, text: str):
        text = self._fit_status(text)
        try:
            if ctx.status_message_id is None:
                ctx.status_message_id = await self.transport.post_message(ctx.destination, text)
            else:
                await self.transport.update_message(ctx.destination, ctx.status_message_id, text)
        except TransportError as e:
            self.logger.error(f"Status update dropped for {ctx.key}: {e}")

    async def start_status(self, ctx: ExecutionContext):
        preview = ctx.input_text if len(ctx.input_text) <= 100 else ctx.input_text[:100] + "..."
        await self._set_status(ctx, f"🚀 Sent to `{ctx.session}`: {preview}\n🔄 Monitoring...")

    async def update_status(self, ctx: ExecutionContext):
        await self._set_status(
            ctx, f"🔄 Monitoring... ⏱️ {format_duration(ctx.elapsed)} | sent: {ctx.messages_sent}"
        )

    async def complete_status(self, ctx: ExecutionContext, stopped: bool = False):
        if stopped:
            label = "⏸️ Monitoring stopped"
        else:
            label = "✅ Completed"
        await self._set_status(
            ctx, f"{label} ({format_duration(ctx.elapsed)}) | sent: {ctx.messages_sent}"
        )

    async def fail_status(self, ctx: ExecutionContext, reason: str, icon: str = "❌"):
        await self._set_status(
            ctx, f"{icon} {reason} ({format_duration(ctx.elapsed)}) | sent: {ctx.messages_sent}"
        )

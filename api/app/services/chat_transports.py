"""
Chat transport bindings used by the terminal monitor.

WebSocketChatTransport pushes events to chat clients connected on
/ws/channels/{channel_id}; SlackChatTransport talks to the Slack Web API.
"""

import asyncio
import logging
import uuid
from typing import Optional

import requests

from common.exceptions import TransportError
from session_monitor.execution_store import Destination
from session_monitor.transport import ChatTransport

from app.services.websocket_manager import WebSocketManager


class WebSocketChatTransport(ChatTransport):
    """Delivers messages as JSON events to the channel's WebSocket clients"""

    max_post_length = 4000
    max_update_length = 4000

    def __init__(self, manager: Optional[WebSocketManager] = None):
        self.manager = manager or WebSocketManager.get_instance()
        self.logger = logging.getLogger(__name__)

    async def post_message(self, destination: Destination, text: str) -> str:
        message_id = uuid.uuid4().hex
        await self.manager.send_event(destination.channel_id, {
            "type": "message",
            "message_id": message_id,
            "thread_key": destination.thread_key,
            "text": text,
        })
        return message_id

    async def update_message(self, destination: Destination, message_id: str, text: str) -> None:
        await self.manager.send_event(destination.channel_id, {
            "type": "message_update",
            "message_id": message_id,
            "thread_key": destination.thread_key,
            "text": text,
        })


class SlackChatTransport(ChatTransport):
    """Posts into Slack threads with chat.postMessage and edits with chat.update"""

    # Slack truncates long message text; chat.update is stricter in practice
    max_post_length = 3000
    max_update_length = 2000

    def __init__(self, bot_token: str, api_base: str = "https://slack.com/api", timeout: float = 30.0):
        if not bot_token:
            raise ValueError("A Slack bot token is required for the Slack transport")
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def _call_sync(self, method: str, **params) -> dict:
        try:
            resp = requests.post(
                f"{self.api_base}/{method}",
                json=params,
                headers={"Authorization": f"Bearer {self.bot_token}"},
                timeout=self.timeout,
            )
            result = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise TransportError(method, str(e)) from e

        if not result.get("ok"):
            error = result.get("error", "?")
            self.logger.error(f"[slack] API error: {method} -> {error}")
            raise TransportError(method, error)
        return result

    async def _call(self, method: str, **params) -> dict:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self._call_sync(method, **params))

    @staticmethod
    def _thread_ts(destination: Destination) -> Optional[str]:
        # Messages that start a thread are posted with an empty thread key
        return destination.thread_key or None

    async def post_message(self, destination: Destination, text: str) -> str:
        params = {"channel": destination.channel_id, "text": text}
        thread_ts = self._thread_ts(destination)
        if thread_ts:
            params["thread_ts"] = thread_ts
        result = await self._call("chat.postMessage", **params)
        return result.get("ts", "")

    async def update_message(self, destination: Destination, message_id: str, text: str) -> None:
        await self._call("chat.update", channel=destination.channel_id, ts=message_id, text=text)


def build_transport(settings) -> ChatTransport:
    """Create the transport selected by settings.chat_transport"""
    if settings.chat_transport == "slack":
        return SlackChatTransport(settings.slack_bot_token, api_base=settings.slack_api_base)
    if settings.chat_transport == "websocket":
        return WebSocketChatTransport()
    raise ValueError(f"Unknown chat transport: {settings.chat_transport}")

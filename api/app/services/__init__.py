"""
Business logic services for tmux-chat-bridge API
"""

from .session_mapping import SessionMapping, SessionMappingStore
from .websocket_manager import WebSocketManager
from .chat_transports import WebSocketChatTransport, SlackChatTransport, build_transport
from .bridge_service import BridgeService, get_bridge_service

__all__ = [
    'SessionMapping',
    'SessionMappingStore',
    'WebSocketManager',
    'WebSocketChatTransport',
    'SlackChatTransport',
    'build_transport',
    'BridgeService',
    'get_bridge_service'
]

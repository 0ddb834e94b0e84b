"""
Pydantic schemas for tmux-chat-bridge API request/response validation
"""

from .session import TmuxSessionInfo, SessionList, ConnectRequest, SessionMappingResponse
from .execution import ThreadMessage, ExecutionAccepted, ExecutionInfo, ExecutionList

__all__ = [
    'TmuxSessionInfo',
    'SessionList',
    'ConnectRequest',
    'SessionMappingResponse',
    'ThreadMessage',
    'ExecutionAccepted',
    'ExecutionInfo',
    'ExecutionList'
]

"""
Common utilities and shared modules for tmux-chat-bridge
"""

from .config import config, Config
from .exceptions import (
    BridgeException,
    BackendError,
    BackendUnavailable,
    SessionNotFound,
    BackendCallFailed,
    TransportError,
    MappingNotFound
)

__all__ = [
    'config',
    'Config',
    'BridgeException',
    'BackendError',
    'BackendUnavailable',
    'SessionNotFound',
    'BackendCallFailed',
    'TransportError',
    'MappingNotFound'
]

#!/usr/bin/env python3
"""
Custom Exception Classes for tmux-chat-bridge

This module defines the exceptions raised by the tmux backend adapter and the
chat transports so callers can tell a vanished session apart from a broken
backend or a failed chat send.
"""

from typing import List, Optional


class BridgeException(Exception):
    """Base exception class for all tmux-chat-bridge errors"""
    pass


class BackendError(BridgeException):
    """Exception raised when a tmux backend call fails"""

    def __init__(self, message: str, command: Optional[List[str]] = None,
                 returncode: Optional[int] = None, stderr: str = ""):
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr or ""
        super().__init__(message)

    def get_user_friendly_message(self) -> str:
        """Get a short explanation suitable for posting to a chat thread"""
        detail = self.stderr.strip() or str(self)
        if self.returncode is not None:
            return f"tmux call failed (exit {self.returncode}): {detail}"
        return f"tmux call failed: {detail}"


class BackendUnavailable(BackendError):
    """Exception raised when the tmux server itself is not running"""
    pass


class SessionNotFound(BackendError):
    """Exception raised when the addressed tmux session no longer exists"""

    def __init__(self, session: str, message: str = None, **kwargs):
        self.session = session
        if message is None:
            message = f"tmux session '{session}' not found"
        super().__init__(message, **kwargs)


class BackendCallFailed(BackendError):
    """Exception raised for any other tmux I/O failure"""
    pass


class TransportError(BridgeException):
    """Exception raised when posting or updating a chat message fails"""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Chat transport {operation} failed: {message}")


class MappingNotFound(BridgeException):
    """Exception raised when a chat thread is not bound to any tmux session"""

    def __init__(self, thread_key: str):
        self.thread_key = thread_key
        super().__init__(f"No tmux session is connected to thread '{thread_key}'")

"""
Chat transport interface consumed by the output dispatcher
"""

from abc import ABC, abstractmethod

from .execution_store import Destination


class ChatTransport(ABC):
    """Posts and edits messages in a chat thread.

    Implementations raise common.exceptions.TransportError on failure.
    """

    # Hard limits imposed by the chat service; updates are usually stricter
    max_post_length: int = 3000
    max_update_length: int = 2000

    @abstractmethod
    async def post_message(self, destination: Destination, text: str) -> str:
        """Post a new message and return its identifier"""

    @abstractmethod
    async def update_message(self, destination: Destination, message_id: str, text: str) -> None:
        """Replace the text of a previously posted message"""

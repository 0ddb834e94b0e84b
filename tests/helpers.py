"""
Shared fakes for the test suite
"""

import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.exceptions import SessionNotFound, TransportError
from session_monitor.transport import ChatTransport


class FakeTransport(ChatTransport):
    """Records every post and update instead of talking to a chat service"""

    max_post_length = 3000
    max_update_length = 2000

    def __init__(self, fail_posts=False):
        self.fail_posts = fail_posts
        self.posts = []  # (destination, text, message_id)
        self.updates = []  # (destination, message_id, text)
        self.events = []  # ("post" | "update", text) in call order
        self._next_id = 0

    async def post_message(self, destination, text):
        if self.fail_posts:
            raise TransportError("post_message", "channel_not_found")
        self._next_id += 1
        message_id = f"msg-{self._next_id}"
        self.posts.append((destination, text, message_id))
        self.events.append(("post", text))
        return message_id

    async def update_message(self, destination, message_id, text):
        self.updates.append((destination, message_id, text))
        self.events.append(("update", text))

    def post_texts(self):
        return [text for _, text, _ in self.posts]

    def fenced_posts(self):
        return [text for text in self.post_texts() if text.startswith("```")]


class FakeBackend:
    """Replays scripted screen captures; the last one repeats forever"""

    def __init__(self, screens, exists=True, fail_on_capture=None, fail_with=None):
        self.screens = list(screens)
        self.exists = exists
        self.captures = 0
        self.sent = []
        self.fail_on_capture = fail_on_capture
        self.fail_with = fail_with

    async def capture_output(self, session):
        if self.fail_on_capture is not None and self.captures >= self.fail_on_capture:
            raise self.fail_with
        screen = self.screens[min(self.captures, len(self.screens) - 1)]
        self.captures += 1
        return screen

    async def send_input(self, session, text):
        self.sent.append((session, text))

    async def session_exists(self, session):
        return self.exists


class FakeConnector(FakeBackend):
    """Backend with a session list, for the API layer"""

    def __init__(self, sessions, alive=None):
        super().__init__(["$ "])
        self.sessions = list(sessions)
        self.alive = set(alive if alive is not None else [s.name for s in sessions])
        self.forgotten = []

    async def list_sessions(self):
        return list(self.sessions)

    async def session_exists(self, session):
        return session in self.alive

    async def forget_session(self, session):
        self.forgotten.append(session)

    async def get_working_directory(self, session):
        if session not in self.alive:
            raise SessionNotFound(session)
        return "/home/dev/project"

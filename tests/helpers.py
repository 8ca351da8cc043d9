"""Plain helpers shared by test modules (fixtures live in conftest.py)."""

import re

from claimbot.channels.models import SentMessage
from claimbot.channels.queue import NotificationQueue

GROUP_CHAT = "-1001"
ALICE_ID = 1001
BOB_ID = 1002
CAROL_ID = 1003
BOT_ID = 9999
ADMIN_ID = 4242


def unescape(text: str) -> str:
    """Undo MarkdownV2 escaping so assertions can use plain text."""
    return re.sub(r"\\(.)", r"\1", text)


def queue_texts(queue: NotificationQueue) -> list[str]:
    return [unescape(entry.text) for entry in queue.entries]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDelivery:
    """Records sends; raises the queued errors in order (None means succeed)."""

    def __init__(self, errors=None):
        self.sent = []
        self.errors = list(errors or [])

    async def send(self, chat_id, text, options):
        self.sent.append((chat_id, text, dict(options)))
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        return SentMessage(message_id=len(self.sent), chat_id=chat_id, text=text)

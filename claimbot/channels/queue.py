"""
Tool: Notification Queue
Purpose: Ordered buffer of pending outbound messages

The queue is shared by every producer (mark engine, command handlers, HTTP
routes) and two consumers running as independent asyncio loops: the
Dispatcher, which drains non-throttled entries in FIFO order, and the
ThrottleMerger, which folds aged throttled entries into deliverable ones.

None of the methods below suspend. Each consumer performs its scan and its
mutation inside one synchronous call, so no other coroutine can observe or
change the buffer in between.

Usage:
    queue = NotificationQueue()
    future = queue.enqueue(chat_id, "text", options={"parse_mode": "MarkdownV2"})
    sent = await future
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from claimbot.channels.models import QueuedMessage, SentMessage

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000


class NotificationQueue:
    """FIFO buffer of QueuedMessage entries with per-entry throttle flag."""

    def __init__(
        self,
        max_length: int = MAX_MESSAGE_LENGTH,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the queue.

        Args:
            max_length: Platform ceiling for a single message body
            clock: Monotonic time source in seconds
        """
        self.max_length = max_length
        self.clock = clock
        self._entries: list[QueuedMessage] = []
        self._enqueued_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[QueuedMessage]:
        """Snapshot of the current entries, head first."""
        return list(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        throttled = sum(1 for entry in self._entries if entry.throttle)
        return {
            "queue_depth": len(self._entries),
            "throttled": throttled,
            "ready": len(self._entries) - throttled,
            "enqueued": self._enqueued_count,
        }

    def enqueue(
        self,
        chat_id: str | int,
        text: str,
        options: dict[str, Any] | None = None,
        fallback_options: dict[str, Any] | None = None,
        throttle: bool = False,
    ) -> asyncio.Future[SentMessage]:
        """
        Append a message to the tail of the queue.

        Must be called with a running event loop.

        Args:
            chat_id: Target channel
            text: Message body, at most max_length characters
            options: Delivery options for the first attempt
            fallback_options: Reduced options used on retry
            throttle: Hold the message for merging instead of sending it now

        Returns:
            Future resolved with SentMessage, or rejected with DeliveryFailed

        Raises:
            ValueError: If the body exceeds the ceiling (callers must pre-split)
        """
        if len(text) > self.max_length:
            raise ValueError(
                f"message of {len(text)} characters exceeds the {self.max_length} ceiling"
            )

        future: asyncio.Future[SentMessage] = asyncio.get_running_loop().create_future()
        entry = QueuedMessage(
            chat_id=str(chat_id),
            text=text,
            options=dict(options or {}),
            fallback_options=dict(fallback_options or {}),
            throttle=throttle,
            enqueued_at=self.clock(),
            waiters=[future],
        )
        self._entries.append(entry)
        self._enqueued_count += 1
        return future

    def push(self, entry: QueuedMessage) -> None:
        """Append an already-built entry (used by the merger)."""
        self._entries.append(entry)

    def push_front(self, entry: QueuedMessage) -> None:
        """Put an entry back at the head (delivery interrupted by shutdown)."""
        self._entries.insert(0, entry)

    def pop_next_ready(self) -> QueuedMessage | None:
        """Remove and return the first non-throttled entry, if any."""
        for index, entry in enumerate(self._entries):
            if not entry.throttle:
                return self._entries.pop(index)
        return None

    def throttled(self) -> list[tuple[int, QueuedMessage]]:
        """(index, entry) pairs of every throttled entry, head first."""
        return [(i, entry) for i, entry in enumerate(self._entries) if entry.throttle]

    def remove_indices(self, indices: Iterable[int]) -> list[QueuedMessage]:
        """
        Remove the entries at the given indices.

        Indices are processed from the highest down so earlier removals do not
        shift later ones.

        Returns:
            Removed entries in their original queue order
        """
        removed = []
        for index in sorted(set(indices), reverse=True):
            removed.append(self._entries.pop(index))
        removed.reverse()
        return removed

    def force_flush(self, chat_id: str | int, hold_seconds: float) -> int:
        """
        Age every throttled entry of a chat past the hold duration.

        Returns:
            Number of entries rewritten
        """
        chat_id = str(chat_id)
        aged = self.clock() - hold_seconds
        count = 0
        for entry in self._entries:
            if entry.throttle and entry.chat_id == chat_id:
                entry.enqueued_at = min(entry.enqueued_at, aged)
                count += 1
        return count

    def drain(self) -> list[QueuedMessage]:
        """Remove and return every entry (shutdown path)."""
        entries, self._entries = self._entries, []
        return entries

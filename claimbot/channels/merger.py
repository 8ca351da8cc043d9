"""
Tool: Throttle Merger
Purpose: Release throttled notifications in merged batches

Throttled messages are low-priority status pings that may wait. Each tick
the merger looks for one chat whose oldest throttled message has been held
longer than hold_seconds, takes that chat's whole throttled backlog, joins
adjacent messages that share identical options (as long as the joined body
fits under the ceiling) and puts the results back at the queue tail as
deliverable entries.

The scan, merge and queue mutation of a tick happen in one synchronous call
with no await in between, so producers cannot enqueue into a half-rewritten
queue.

Usage:
    merger = ThrottleMerger(queue, hold_seconds=120)
    task = merger.start_background()
    merger.force_flush(chat_id)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from claimbot.channels.models import QueuedMessage
from claimbot.channels.queue import NotificationQueue
from claimbot.logging_config import get_logger

logger = logging.getLogger(__name__)
events = get_logger("claimbot.merge")


def merge_entries(entries: list[QueuedMessage], max_length: int) -> list[QueuedMessage]:
    """
    Fold adjacent entries with identical options into combined entries.

    Bodies are joined with a newline in queue order. A merged entry keeps the
    waiters of all its constituents; the result entries are not throttled and
    carry no timestamp yet.
    """
    merged: list[QueuedMessage] = []
    current: QueuedMessage | None = None

    for entry in entries:
        if (
            current is not None
            and current.options == entry.options
            and len(current.text) + 1 + len(entry.text) <= max_length
        ):
            current.text = f"{current.text}\n{entry.text}"
            current.waiters.extend(entry.waiters)
            continue

        current = QueuedMessage(
            chat_id=entry.chat_id,
            text=entry.text,
            options=dict(entry.options),
            fallback_options=dict(entry.fallback_options),
            throttle=False,
            waiters=list(entry.waiters),
        )
        merged.append(current)

    return merged


class ThrottleMerger:
    """Periodically converts aged throttled backlogs into deliverable messages."""

    def __init__(
        self,
        queue: NotificationQueue,
        hold_seconds: float = 120.0,
        busy_interval: float = 0.1,
        idle_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the merger.

        Args:
            queue: Shared notification queue
            hold_seconds: How long the oldest throttled message of a chat may wait
            busy_interval: Cadence after a tick that flushed something
            idle_interval: Cadence after a tick that found nothing to do
            sleep: Awaitable sleep, injectable for tests
        """
        self.queue = queue
        self.hold_seconds = hold_seconds
        self.busy_interval = busy_interval
        self.idle_interval = idle_interval
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None
        self._flushed_batches = 0

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "flushed_batches": self._flushed_batches,
            "running": self._running,
        }

    def tick(self) -> bool:
        """
        Flush at most one chat's throttled backlog.

        Returns:
            True if a backlog was flushed
        """
        now = self.queue.clock()

        by_chat: dict[str, list[tuple[int, QueuedMessage]]] = {}
        for index, entry in self.queue.throttled():
            by_chat.setdefault(entry.chat_id, []).append((index, entry))

        for chat_id, items in by_chat.items():
            oldest = min(entry.enqueued_at for _, entry in items)
            if now - oldest < self.hold_seconds:
                continue

            removed = self.queue.remove_indices(index for index, _ in items)
            merged = merge_entries(removed, self.queue.max_length)
            for entry in merged:
                entry.enqueued_at = now
                self.queue.push(entry)

            self._flushed_batches += 1
            events.debug(
                "flushed throttled backlog",
                chat_id=chat_id,
                held=len(removed),
                released=len(merged),
            )
            return True

        return False

    def force_flush(self, chat_id: str | int) -> int:
        """
        Mark every throttled message of a chat as due.

        The next tick picks the backlog up.

        Returns:
            Number of messages affected
        """
        count = self.queue.force_flush(chat_id, self.hold_seconds)
        logger.info(f"Force-flush requested for chat {chat_id}: {count} message(s)")
        return count

    async def run(self) -> None:
        """Background loop alternating busy/idle cadence."""
        self._running = True
        logger.info("Throttle merger started")

        while self._running:
            try:
                found = self.tick()
            except Exception as e:
                logger.exception(f"Throttle merger tick failed: {e}")
                found = False
            try:
                await self._sleep(self.busy_interval if found else self.idle_interval)
            except asyncio.CancelledError:
                break

        self._running = False
        logger.info("Throttle merger stopped")

    def start_background(self) -> asyncio.Task:
        """Start the merger loop as a background task."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the merger loop. Ticks never suspend, so cancelling is safe."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

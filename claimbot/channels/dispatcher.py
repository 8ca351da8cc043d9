"""
Tool: Message Dispatcher
Purpose: Drain the notification queue at a fixed cadence with rate-limit backoff

State machine, one tick per scheduling quantum:
    idle     - queue empty: wait idle_interval and poll again
    draining - only throttled entries: wait throttle_wait_interval, remove nothing
    sending  - pop the first non-throttled entry and deliver it

Delivery failures get exactly one retry with the entry's fallback options:
    rate limited -> wait the platform's retry-after (or the default), retry
    other error  -> retry immediately
If the retry fails as well every waiter is rejected with DeliveryFailed.

Usage:
    dispatcher = Dispatcher(queue, delivery)
    task = dispatcher.start_background()
    ...
    await dispatcher.stop()
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, Protocol

from claimbot.channels.models import QueuedMessage, SentMessage
from claimbot.channels.queue import NotificationQueue
from claimbot.errors import DeliveryFailed, RateLimited
from claimbot.logging_config import get_logger

logger = logging.getLogger(__name__)
events = get_logger("claimbot.dispatch")

RETRY_AFTER_PATTERN = re.compile(r"retry after (\d+(?:\.\d+)?)", re.IGNORECASE)


class Delivery(Protocol):
    """Delivery collaborator: sends one message to the chat platform."""

    async def send(self, chat_id: str, text: str, options: dict[str, Any]) -> SentMessage:
        ...


def parse_retry_after(error: BaseException, default: float) -> float | None:
    """
    Work out how long the platform asked us to back off.

    Returns:
        Seconds to wait if the error is a rate-limit rejection, else None.
        A rate-limit rejection whose duration cannot be read yields default.
    """
    retry_after: Any = None
    if isinstance(error, RateLimited):
        retry_after = error.retry_after
        if retry_after is None:
            return default
    elif hasattr(error, "retry_after"):
        # telegram.error.RetryAfter and lookalikes
        retry_after = getattr(error, "retry_after")
    else:
        text = str(error)
        if "429" not in text and "too many requests" not in text.lower():
            return None
        match = RETRY_AFTER_PATTERN.search(text)
        if not match:
            return default
        retry_after = match.group(1)

    if isinstance(retry_after, timedelta):
        seconds = retry_after.total_seconds()
    else:
        try:
            seconds = float(retry_after)
        except (TypeError, ValueError):
            return default
    return seconds if seconds > 0 else default


class Dispatcher:
    """Single consumer that delivers non-throttled entries in FIFO order."""

    def __init__(
        self,
        queue: NotificationQueue,
        delivery: Delivery,
        idle_interval: float = 0.2,
        throttle_wait_interval: float = 1.0,
        send_interval: float = 0.8,
        rate_limit_default_backoff: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the dispatcher.

        Args:
            queue: Shared notification queue
            delivery: Delivery collaborator
            idle_interval: Wait when the queue is empty
            throttle_wait_interval: Wait when only throttled entries remain
            send_interval: Courtesy delay after each successful send
            rate_limit_default_backoff: Backoff when retry-after is unreadable
            sleep: Awaitable sleep, injectable for tests
        """
        self.queue = queue
        self.delivery = delivery
        self.idle_interval = idle_interval
        self.throttle_wait_interval = throttle_wait_interval
        self.send_interval = send_interval
        self.rate_limit_default_backoff = rate_limit_default_backoff
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None

        # Stats
        self._sent_count = 0
        self._retried_count = 0
        self._failed_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "sent": self._sent_count,
            "retried": self._retried_count,
            "failed": self._failed_count,
            "running": self._running,
        }

    async def tick(self) -> float:
        """
        Run one step of the state machine.

        Returns:
            Seconds to wait before the next tick
        """
        if len(self.queue) == 0:
            return self.idle_interval

        entry = self.queue.pop_next_ready()
        if entry is None:
            return self.throttle_wait_interval

        try:
            await self._deliver(entry)
        except asyncio.CancelledError:
            # cancelled mid-delivery or mid-backoff: keep the entry for the shutdown report
            self.queue.push_front(entry)
            logger.warning(f"Delivery to {entry.chat_id} interrupted, message requeued: {entry.preview}")
            raise
        return self.send_interval

    async def _deliver(self, entry: QueuedMessage) -> None:
        events.debug(
            "sending message",
            chat_id=entry.chat_id,
            preview=entry.preview,
            options=entry.options,
            merged=len(entry.waiters),
        )
        try:
            result = await self.delivery.send(entry.chat_id, entry.text, entry.options)
        except Exception as first_error:
            await self._retry(entry, first_error)
            return

        self._sent_count += 1
        entry.resolve(result)

    async def _retry(self, entry: QueuedMessage, first_error: Exception) -> None:
        self._retried_count += 1
        backoff = parse_retry_after(first_error, self.rate_limit_default_backoff)
        if backoff is not None:
            logger.warning(
                f"Rate limited sending to {entry.chat_id}, retrying in {backoff:g}s"
            )
            await self._sleep(backoff)
        else:
            logger.warning(
                f"Send to {entry.chat_id} failed ({type(first_error).__name__}: {first_error}), "
                f"retrying with fallback options"
            )

        try:
            result = await self.delivery.send(entry.chat_id, entry.text, entry.fallback_options)
        except Exception as e:
            self._failed_count += 1
            logger.error(f"Giving up on message to {entry.chat_id} ({entry.preview}): {e}")
            entry.reject(DeliveryFailed(f"Message delivery failed: {e}", cause=e))
            return

        self._sent_count += 1
        entry.resolve(result)

    async def run(self) -> None:
        """Background loop that drains the queue."""
        self._running = True
        logger.info("Dispatcher started")

        while self._running:
            try:
                delay = await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Dispatcher tick failed: {e}")
                delay = self.idle_interval
            try:
                await self._sleep(delay)
            except asyncio.CancelledError:
                break

        self._running = False
        logger.info("Dispatcher stopped")

    def start_background(self) -> asyncio.Task:
        """Start the dispatcher loop as a background task."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the loop after its current tick.

        A tick in the middle of a delivery is given up to timeout seconds to
        finish before the task is cancelled.
        """
        self._running = False
        if self._task and not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

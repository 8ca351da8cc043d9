"""
Tool: Notifier
Purpose: Producer-side facade over the notification queue

Everything that wants to talk to a chat goes through here:
- default delivery options are applied,
- a reduced fallback option set is computed for the dispatcher's retry
  (MarkdownV2 trips over odd input more often than legacy Markdown),
- bodies over the platform ceiling are split into ordered chunks, keeping
  ``` fences balanced on both sides of each cut,
- failed deliveries nobody awaits are still logged.

Usage:
    notifier = Notifier(queue, default_options={"disable_notification": True})
    notifier.send_message(chat_id, "hello")                  # fire and forget
    sent = await notifier.send_message(chat_id, "hello")     # wait for delivery
    await notifier.reply(chat_id, message_id, "done")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from claimbot.channels.models import SentMessage
from claimbot.channels.queue import NotificationQueue
from claimbot.errors import DeliveryFailed

logger = logging.getLogger(__name__)

FENCE = "```"


def fallback_options_for(options: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    """Reduced option set used when the first delivery attempt fails."""
    fallback = dict(defaults)
    if "disable_notification" in options:
        fallback["disable_notification"] = options["disable_notification"]
    parse_mode = options.get("parse_mode")
    if parse_mode and str(parse_mode).startswith("Markdown"):
        fallback["parse_mode"] = "Markdown"
    return fallback


def split_text(text: str, limit: int) -> list[str]:
    """
    Split a body into chunks no longer than limit, in reading order.

    Chunks are cut from the tail. When a cut lands inside a code fence the
    fence is closed at the end of the earlier part and reopened at the start
    of the later one.
    """
    if len(text) <= limit:
        return [text]

    # room for a reopening fence on the later part
    step = limit - len(FENCE)
    chunks: list[str] = []
    rest = text
    while len(rest) > limit:
        tail = rest[-step:]
        rest = rest[:-step]
        if tail.count(FENCE) % 2:
            tail = FENCE + tail
        if rest.count(FENCE) % 2:
            rest += FENCE
        chunks.append(tail)
    chunks.append(rest)
    chunks.reverse()
    return [chunk for chunk in chunks if chunk]


class Notifier:
    """Builds queue entries for outbound messages."""

    def __init__(
        self,
        queue: NotificationQueue,
        default_options: dict[str, Any] | None = None,
    ):
        self.queue = queue
        self.default_options = dict(default_options or {})

    def send_message(
        self,
        chat_id: str | int,
        text: str,
        options: dict[str, Any] | None = None,
        throttle: bool = False,
    ) -> asyncio.Future:
        """
        Queue a message for delivery.

        The returned future may be awaited to wait for delivery, or ignored;
        chunks of an oversized body are enqueued back to back.

        Args:
            chat_id: Target chat
            text: Message body of any length
            options: Delivery options layered over the defaults
            throttle: Let the merger hold and batch this message

        Returns:
            Future resolving to the SentMessage (the last one for split bodies)
        """
        merged_options = {**self.default_options, **(options or {})}
        fallback = fallback_options_for(merged_options, self.default_options)

        futures = [
            self.queue.enqueue(chat_id, chunk, merged_options, fallback, throttle=throttle)
            for chunk in split_text(text, self.queue.max_length)
        ]
        future = futures[0] if len(futures) == 1 else _last_result(futures)
        future.add_done_callback(self._observe)
        return future

    async def reply(
        self,
        chat_id: str | int,
        message_id: int | str,
        text: str,
        options: dict[str, Any] | None = None,
    ) -> SentMessage | None:
        """
        Reply to a message and wait for delivery.

        Falls back to a plain message if the reply cannot be delivered (for
        instance because the original message was deleted).

        Returns:
            SentMessage, or None if the fallback failed too
        """
        reply_options = dict(options or {})
        reply_options["reply_to_message_id"] = int(message_id)
        try:
            return await self.send_message(chat_id, text, reply_options)
        except DeliveryFailed as e:
            logger.info(f"Reply to {message_id} in {chat_id} failed ({e}), sending plainly")

        try:
            return await self.send_message(chat_id, text, options)
        except DeliveryFailed:
            return None

    @staticmethod
    def _observe(future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Notification not delivered: {error}")


def _last_result(futures: list[asyncio.Future]) -> asyncio.Future:
    """Future settled once every chunk is, with the last chunk's result."""
    outer = asyncio.get_running_loop().create_future()

    def _transfer(gathered: asyncio.Future) -> None:
        if outer.done():
            return
        if gathered.cancelled():
            outer.cancel()
        elif gathered.exception() is not None:
            outer.set_exception(gathered.exception())
        else:
            outer.set_result(gathered.result()[-1])

    asyncio.gather(*futures).add_done_callback(_transfer)
    return outer

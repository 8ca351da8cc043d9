"""
Tool: Outbound Message Models
Purpose: Data structures shared by the notification queue, dispatcher and merger

Usage:
    from claimbot.channels.models import QueuedMessage, SentMessage
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class SentMessage:
    """
    Result of a successful delivery.

    Attributes:
        message_id: Platform message ID
        chat_id: Chat the message landed in
        text: Body as delivered (after merging, if any)
    """

    message_id: int
    chat_id: str
    text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueuedMessage:
    """
    A pending outbound message.

    Lives only inside the NotificationQueue. Every waiter is resolved with the
    SentMessage on delivery or rejected with DeliveryFailed; a merged entry
    carries the waiters of every message folded into it.

    Attributes:
        chat_id: Target channel
        text: Message body, never longer than the queue ceiling
        options: Delivery options for the first attempt
        fallback_options: Reduced option set for the retry attempt
        throttle: Held back until the merger releases it
        enqueued_at: Clock reading at enqueue time (seconds)
        waiters: Futures resolved/rejected by the dispatcher
    """

    chat_id: str
    text: str
    options: dict[str, Any] = field(default_factory=dict)
    fallback_options: dict[str, Any] = field(default_factory=dict)
    throttle: bool = False
    enqueued_at: float = 0.0
    waiters: list[asyncio.Future] = field(default_factory=list)

    def resolve(self, result: SentMessage) -> None:
        for waiter in self.waiters:
            if not waiter.done():
                waiter.set_result(result)

    def reject(self, error: BaseException) -> None:
        for waiter in self.waiters:
            if not waiter.done():
                waiter.set_exception(error)

    @property
    def preview(self) -> str:
        """Short single-line preview for logs."""
        slim = self.text if len(self.text) <= 20 else self.text[:20] + "..."
        return slim.replace("\n", "\\n")

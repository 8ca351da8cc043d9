"""
Channel Tools Package
Outbound notification engine, Telegram delivery and slash commands.
"""

from .barrier import DeferredBarrier
from .dispatcher import Dispatcher
from .merger import ThrottleMerger
from .models import QueuedMessage, SentMessage
from .notifier import Notifier
from .queue import NotificationQueue

__all__ = [
    "DeferredBarrier",
    "Dispatcher",
    "NotificationQueue",
    "Notifier",
    "QueuedMessage",
    "SentMessage",
    "ThrottleMerger",
]

"""
Tool: Deferred Barrier
Purpose: Decouple the order effects are registered from the order they run

Callbacks are collected under a key and run, in registration order, once
the key is resolved. A resolved key stays resolved forever: callbacks added
afterwards run immediately instead of being buffered.

Typical use is "ping first, details after": while walking affected packages
we already know what detail to report, but the ping naming everyone involved
can only be written once the walk is over.

Usage:
    barrier = DeferredBarrier()
    key = barrier.new_key()
    await barrier.add(key, lambda: notifier.send_message(chat, "detail"))
    notifier.send_message(chat, "Ping ...")
    await barrier.resolve(key)
"""

from __future__ import annotations

import inspect
import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Any, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[Awaitable[Any], Any]]


class DeferredBarrier:
    """Key-keyed one-shot callback collector with FIFO execution."""

    def __init__(self):
        self._pending: dict[str, list[Callback]] = {}
        self._resolved: set[str] = set()

    @staticmethod
    def new_key(prefix: str = "") -> str:
        """Generate a fresh key; keys are never reused across batches."""
        token = secrets.token_hex(16)
        return f"{prefix}:{token}" if prefix else token

    def is_resolved(self, key: str) -> bool:
        return key in self._resolved

    def pending_count(self, key: str) -> int:
        return len(self._pending.get(key, []))

    async def add(self, key: str, callback: Callback) -> None:
        """
        Register a callback under a key.

        If the key has already been resolved the callback runs immediately
        (and is awaited if it returns an awaitable).
        """
        if key in self._resolved:
            await _invoke(callback)
            logger.debug(f"defer: ran callback immediately for resolved key {key}")
            return

        self._pending.setdefault(key, []).append(callback)

    async def resolve(self, key: str) -> int:
        """
        Mark a key resolved and run its pending callbacks in insertion order.

        Each callback is awaited before the next one starts.

        Returns:
            Number of callbacks executed
        """
        self._resolved.add(key)
        callbacks = self._pending.pop(key, [])
        for callback in callbacks:
            await _invoke(callback)
        if callbacks:
            logger.debug(f"defer: resolved {len(callbacks)} callback(s) from key {key}")
        return len(callbacks)


async def _invoke(callback: Callback) -> Any:
    result = callback()
    if inspect.isawaitable(result):
        return await result
    return result

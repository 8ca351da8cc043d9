"""
Tool: Bot Runtime
Purpose: Build the components, run the delivery loops, shut down cleanly

One BotRuntime per process. It owns:
- the PackageStore (loaded at start; an unreadable database aborts startup)
- the NotificationQueue with its two consumers, Dispatcher and ThrottleMerger
- the Notifier, DeferredBarrier and MarkEngine producers use
- the Telegram adapter when a bot token is configured

Shutdown stops both loops after their current tick, reports any messages
still queued and writes the store synchronously. The same synchronous flush
is registered with atexit for interpreter exits that skip stop().

Usage:
    runtime = BotRuntime()
    await runtime.start()
    ...
    await runtime.stop()
"""

from __future__ import annotations

import atexit
import logging
from typing import Any

from claimbot.channels.barrier import DeferredBarrier
from claimbot.channels.commands import CommandRouter
from claimbot.channels.dispatcher import Delivery, Dispatcher
from claimbot.channels.merger import ThrottleMerger
from claimbot.channels.notifier import Notifier
from claimbot.channels.queue import NotificationQueue
from claimbot.errors import DeliveryFailed, StoreWriteFailed
from claimbot.marks.definitions import load_definitions
from claimbot.marks.engine import MarkEngine
from claimbot.marks.store import PackageStore
from claimbot.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class BotRuntime:
    """Component graph and lifecycle of a running bot."""

    def __init__(self, settings: Settings | None = None, delivery: Delivery | None = None):
        """
        Initialize the runtime.

        Args:
            settings: Resolved settings, defaults to get_settings()
            delivery: Delivery collaborator; when omitted and a bot token is
                configured the Telegram adapter provides one at start()
        """
        self.settings = settings or get_settings()
        self.delivery = delivery
        self.adapter = None

        self.store = PackageStore.from_settings(self.settings)
        self.queue = NotificationQueue(max_length=self.settings.max_message_length)
        self.notifier = Notifier(self.queue, default_options=self.settings.default_options)
        self.barrier = DeferredBarrier()
        self.definitions = load_definitions(self.settings.marks)
        self.engine = MarkEngine(
            store=self.store,
            definitions=self.definitions,
            notifier=self.notifier,
            chat_id=self.settings.chat_id,
            barrier=self.barrier,
            aliases=self.settings.aliases,
            bot_user_id=self.settings.bot_user_id,
            log_dir_url=self.settings.log_dir_url,
        )
        self.merger = ThrottleMerger(
            self.queue,
            hold_seconds=self.settings.merge_hold_seconds,
            busy_interval=self.settings.merge_busy_interval,
            idle_interval=self.settings.merge_idle_interval,
        )
        self.dispatcher: Dispatcher | None = None
        self.commands = CommandRouter(
            self.engine,
            self.notifier,
            group_chat_id=self.settings.chat_id,
            bot_name=self.settings.bot_name,
            admin_user_id=self.settings.admin_user_id,
            merger=self.merger,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """
        Load the store and start the loops.

        Raises:
            StoreReadFailed: If neither the database nor its backup is readable
        """
        if self._started:
            return

        self.store.load()

        if self.delivery is None and self.settings.bot_token:
            from claimbot.channels.telegram_adapter import TelegramAdapter

            self.adapter = TelegramAdapter(self.settings.bot_token)
            self.adapter.register_commands(self.commands)
            await self.adapter.connect()
            self.delivery = self.adapter.delivery
            if not self.engine.bot_user_id and self.adapter.bot_user_id:
                self.engine.bot_user_id = self.adapter.bot_user_id

        if self.delivery is None:
            logger.warning("No delivery configured (CLAIMBOT_BOT_TOKEN unset), messages stay queued")
        else:
            self.dispatcher = Dispatcher(
                self.queue,
                self.delivery,
                idle_interval=self.settings.idle_interval,
                throttle_wait_interval=self.settings.throttle_wait_interval,
                send_interval=self.settings.send_interval,
                rate_limit_default_backoff=self.settings.rate_limit_default_backoff,
            )
            self.dispatcher.start_background()

        self.merger.start_background()
        atexit.register(self.flush_on_exit)
        self._started = True
        logger.info("claimbot runtime started")

    async def stop(self) -> None:
        """Stop the loops after their current tick and persist everything."""
        if not self._started:
            return

        await self.merger.stop()
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        if self.adapter is not None:
            await self.adapter.disconnect()

        for entry in self._report_undelivered():
            entry.reject(DeliveryFailed("Bot is shutting down"))

        self._flush_store()
        atexit.unregister(self.flush_on_exit)
        self._started = False
        logger.info("claimbot runtime stopped")

    def flush_on_exit(self) -> None:
        """atexit hook: report what never got sent and write the store."""
        self._report_undelivered()
        self._flush_store()

    def _report_undelivered(self) -> list:
        pending = self.queue.drain()
        for entry in pending:
            logger.warning(
                f"Undelivered message to {entry.chat_id}"
                f"{' (throttled)' if entry.throttle else ''}: {entry.preview}"
            )
        return pending

    def _flush_store(self) -> None:
        try:
            self.store.flush_sync()
        except StoreWriteFailed as e:
            logger.error(f"Could not write the database on shutdown: {e}")

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "queue": self.queue.stats,
            "dispatcher": self.dispatcher.stats if self.dispatcher else None,
            "merger": self.merger.stats,
        }

"""
Tool: Telegram Channel Adapter
Purpose: Telegram bot integration for claimbot

Connects to Telegram using the python-telegram-bot library in polling mode.
Provides the delivery collaborator used by the Dispatcher and hosts the
slash-command handlers from claimbot.channels.commands.

Dependencies (pip):
    - python-telegram-bot>=21.0

Secrets (environment):
    - CLAIMBOT_BOT_TOKEN
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from telegram import Bot, Update
from telegram.error import RetryAfter
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes

from claimbot.channels.models import SentMessage
from claimbot.errors import RateLimited

if TYPE_CHECKING:
    from claimbot.channels.commands import CommandRouter

logger = logging.getLogger(__name__)


class TelegramDelivery:
    """Sends queued messages through the Telegram Bot API."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, chat_id: str, text: str, options: dict[str, Any]) -> SentMessage:
        """
        Send one message.

        Raises:
            RateLimited: Telegram answered 429 with a retry-after hint
            telegram.error.TelegramError: any other rejection
        """
        try:
            message = await self.bot.send_message(chat_id=chat_id, text=text, **options)
        except RetryAfter as e:
            retry_after = e.retry_after
            seconds = retry_after.total_seconds() if hasattr(retry_after, "total_seconds") else float(retry_after)
            raise RateLimited(retry_after=seconds) from e

        return SentMessage(message_id=message.message_id, chat_id=str(message.chat.id), text=text)


class TelegramAdapter:
    """
    Telegram bot adapter using polling mode.

    Handles:
    - /add, /merge, /drop - claim bookkeeping
    - /mark, /unmark, /marks - status marks
    - /status, /more - overviews
    - /flush - force the throttled backlog of the group out (admin)
    """

    name = "telegram"

    def __init__(self, token: str):
        """
        Initialize Telegram adapter.

        Args:
            token: Telegram bot token from BotFather
        """
        self.token = token
        self.application: Application = ApplicationBuilder().token(token).build()
        self.bot: Bot = self.application.bot
        self.delivery = TelegramDelivery(self.bot)
        self.bot_user_id: int | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def register_commands(self, commands: CommandRouter) -> None:
        """Wire the command router into python-telegram-bot handlers."""

        def make_handler(command: str):
            async def handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
                message = update.effective_message
                user = update.effective_user
                if message is None or user is None or not message.text:
                    return
                await commands.dispatch(
                    command,
                    text=message.text,
                    chat_id=message.chat_id,
                    message_id=message.message_id,
                    user_id=user.id,
                    username=user.username,
                    first_name=user.first_name or "",
                    last_name=user.last_name or "",
                )

            return handler

        for command in commands.commands:
            self.application.add_handler(CommandHandler(command, make_handler(command)))
        self.application.add_error_handler(self._handle_error)

    async def connect(self) -> None:
        """Initialize bot and start polling."""
        await self.application.initialize()
        me = await self.bot.get_me()
        self.bot_user_id = me.id
        await self.application.start()
        await self.application.updater.start_polling(allowed_updates=["message"])
        self._connected = True
        logger.info(f"Telegram adapter connected as @{me.username} ({me.id})")

    async def disconnect(self) -> None:
        """Stop polling and shut the application down."""
        if not self._connected:
            return
        try:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
        finally:
            self._connected = False
            logger.info("Telegram adapter disconnected")

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Telegram handler error: {context.error}", exc_info=context.error)

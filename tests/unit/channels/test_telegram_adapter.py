"""Tests for claimbot/channels/telegram_adapter.py"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import BadRequest, RetryAfter
from telegram.ext import CommandHandler

from claimbot.channels.telegram_adapter import TelegramAdapter, TelegramDelivery
from claimbot.errors import RateLimited


@pytest.fixture
def bot():
    bot = MagicMock()
    message = MagicMock(message_id=42)
    message.chat.id = -1001
    bot.send_message = AsyncMock(return_value=message)
    return bot


class TestTelegramDelivery:
    @pytest.mark.asyncio
    async def test_send_passes_options(self, bot):
        delivery = TelegramDelivery(bot)

        sent = await delivery.send("-1001", "hello", {"parse_mode": "MarkdownV2"})

        bot.send_message.assert_awaited_once_with(chat_id="-1001", text="hello", parse_mode="MarkdownV2")
        assert sent.message_id == 42
        assert sent.chat_id == "-1001"

    @pytest.mark.asyncio
    async def test_retry_after_becomes_rate_limited(self, bot):
        bot.send_message.side_effect = RetryAfter(5)

        with pytest.raises(RateLimited) as exc_info:
            await TelegramDelivery(bot).send("-1001", "hello", {})

        assert exc_info.value.retry_after == 5

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, bot):
        bot.send_message.side_effect = BadRequest("Can't parse entities")

        with pytest.raises(BadRequest):
            await TelegramDelivery(bot).send("-1001", "*broken", {"parse_mode": "MarkdownV2"})


class TestTelegramAdapter:
    def test_registers_one_handler_per_command(self):
        adapter = TelegramAdapter("123456:TEST-TOKEN")
        router = MagicMock(commands=("add", "mark"))

        adapter.register_commands(router)

        handlers = [h for group in adapter.application.handlers.values() for h in group]
        assert all(isinstance(h, CommandHandler) for h in handlers)
        assert sorted(cmd for h in handlers for cmd in h.commands) == ["add", "mark"]
        assert not adapter.connected

    @pytest.mark.asyncio
    async def test_disconnect_without_connect_is_noop(self):
        adapter = TelegramAdapter("123456:TEST-TOKEN")

        await adapter.disconnect()

        assert not adapter.connected

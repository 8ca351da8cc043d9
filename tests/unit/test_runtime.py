"""Tests for claimbot/runtime.py"""

import asyncio
import json

import pytest

from claimbot.errors import DeliveryFailed, StoreReadFailed
from claimbot.marks.models import MarkRecord
from claimbot.runtime import BotRuntime
from tests.helpers import GROUP_CHAT, FakeDelivery


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_messages_flow_to_delivery(self, settings):
        delivery = FakeDelivery()
        runtime = BotRuntime(settings, delivery=delivery)
        await runtime.start()
        try:
            future = runtime.notifier.send_message(GROUP_CHAT, "hello")
            sent = await asyncio.wait_for(future, timeout=2)
        finally:
            await runtime.stop()

        assert sent.text == "hello"
        assert delivery.sent[0][:2] == (GROUP_CHAT, "hello")

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self, settings):
        runtime = BotRuntime(settings, delivery=FakeDelivery())

        await runtime.start()
        await runtime.start()
        assert runtime.started

        await runtime.stop()
        await runtime.stop()
        assert not runtime.started

    @pytest.mark.asyncio
    async def test_unreadable_database_aborts_start(self, settings, data_dir):
        (data_dir / "packageMarks.json").write_text("not json", encoding="utf-8")
        runtime = BotRuntime(settings, delivery=FakeDelivery())

        with pytest.raises(StoreReadFailed):
            await runtime.start()
        assert not runtime.started

    @pytest.mark.asyncio
    async def test_stats(self, settings):
        runtime = BotRuntime(settings, delivery=FakeDelivery())
        await runtime.start()
        await asyncio.sleep(0)
        try:
            stats = runtime.stats
        finally:
            await runtime.stop()

        assert stats["queue"]["queue_depth"] == 0
        assert stats["dispatcher"]["running"] is True
        assert stats["merger"]["running"] is True


class TestShutdown:
    @pytest.mark.asyncio
    async def test_stop_writes_the_store(self, settings, data_dir):
        runtime = BotRuntime(settings, delivery=FakeDelivery())
        await runtime.start()
        runtime.store.put_mark("glibc", MarkRecord("noqemu"))

        await runtime.stop()

        saved = json.loads((data_dir / "packageMarks.json").read_text())
        assert saved == [{"name": "glibc", "marks": [{"name": "noqemu", "by": None, "comment": ""}]}]

    @pytest.mark.asyncio
    async def test_queued_messages_rejected_on_stop(self, settings):
        runtime = BotRuntime(settings)
        await runtime.start()
        assert runtime.dispatcher is None
        future = runtime.notifier.send_message(GROUP_CHAT, "never sent")

        await runtime.stop()

        with pytest.raises(DeliveryFailed, match="shutting down"):
            await future
        assert len(runtime.queue) == 0

    def test_flush_on_exit_reports_and_writes(self, settings, data_dir):
        runtime = BotRuntime(settings)
        runtime.store.put_mark("gcc", MarkRecord("important"))

        runtime.flush_on_exit()

        saved = json.loads((data_dir / "packageMarks.json").read_text())
        assert saved[0]["name"] == "gcc"

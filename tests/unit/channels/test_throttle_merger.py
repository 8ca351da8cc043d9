"""Tests for claimbot/channels/merger.py"""

import asyncio

import pytest

from claimbot.channels.merger import ThrottleMerger, merge_entries
from claimbot.channels.models import QueuedMessage, SentMessage


@pytest.fixture
def merger(queue):
    return ThrottleMerger(queue, hold_seconds=120)


class TestMergeEntries:
    def test_adjacent_entries_with_same_options_merge(self):
        entries = [
            QueuedMessage(chat_id="c", text="a", options={"x": 1}, throttle=True),
            QueuedMessage(chat_id="c", text="b", options={"x": 1}, throttle=True),
        ]

        merged = merge_entries(entries, max_length=100)

        assert len(merged) == 1
        assert merged[0].text == "a\nb"
        assert merged[0].throttle is False

    def test_different_options_break_the_run(self):
        entries = [
            QueuedMessage(chat_id="c", text="a", options={"x": 1}),
            QueuedMessage(chat_id="c", text="b", options={"x": 2}),
            QueuedMessage(chat_id="c", text="c", options={"x": 1}),
        ]

        merged = merge_entries(entries, max_length=100)

        assert [m.text for m in merged] == ["a", "b", "c"]

    def test_ceiling_is_respected(self):
        entries = [QueuedMessage(chat_id="c", text="x" * 6) for _ in range(3)]

        merged = merge_entries(entries, max_length=13)

        assert [len(m.text) for m in merged] == [13, 6]

    def test_joined_length_exactly_at_ceiling_merges(self):
        entries = [QueuedMessage(chat_id="c", text="aaaa"), QueuedMessage(chat_id="c", text="bbbb")]
        assert len(merge_entries(entries, max_length=9)) == 1
        assert len(merge_entries(entries, max_length=8)) == 2


class TestTick:
    @pytest.mark.asyncio
    async def test_nothing_released_before_hold(self, queue, merger, clock):
        queue.enqueue("group", "held", throttle=True)
        clock.advance(119)

        assert merger.tick() is False
        assert queue.entries[0].throttle is True

    @pytest.mark.asyncio
    async def test_whole_backlog_released_once_oldest_ages(self, queue, merger, clock):
        queue.enqueue("group", "first", throttle=True)
        clock.advance(60)
        queue.enqueue("group", "second", throttle=True)
        clock.advance(60)

        assert merger.tick() is True

        entries = queue.entries
        assert len(entries) == 1
        assert entries[0].text == "first\nsecond"
        assert entries[0].throttle is False
        assert entries[0].enqueued_at == clock.now

    @pytest.mark.asyncio
    async def test_merged_waiters_all_resolve(self, queue, merger, clock):
        f1 = queue.enqueue("group", "a", throttle=True)
        f2 = queue.enqueue("group", "b", throttle=True)
        clock.advance(120)
        merger.tick()

        entry = queue.pop_next_ready()
        entry.resolve(SentMessage(message_id=5, chat_id="group", text=entry.text))

        assert (await f1).message_id == 5
        assert (await f2).message_id == 5

    @pytest.mark.asyncio
    async def test_released_entries_go_to_the_tail(self, queue, merger, clock):
        queue.enqueue("group", "held", throttle=True)
        clock.advance(120)
        queue.enqueue("group", "urgent")

        merger.tick()

        assert [e.text for e in queue.entries] == ["urgent", "held"]

    @pytest.mark.asyncio
    async def test_one_chat_per_tick(self, queue, merger, clock):
        queue.enqueue("one", "a", throttle=True)
        queue.enqueue("two", "b", throttle=True)
        clock.advance(120)

        assert merger.tick() is True
        assert sum(1 for e in queue.entries if e.throttle) == 1
        assert merger.tick() is True
        assert all(not e.throttle for e in queue.entries)
        assert merger.tick() is False

    @pytest.mark.asyncio
    async def test_other_chats_keep_waiting(self, queue, merger, clock):
        queue.enqueue("old", "a", throttle=True)
        clock.advance(100)
        queue.enqueue("young", "b", throttle=True)
        clock.advance(20)

        merger.tick()

        young = [e for e in queue.entries if e.chat_id == "young"]
        assert young[0].throttle is True


class TestForceFlush:
    @pytest.mark.asyncio
    async def test_force_flush_releases_on_next_tick(self, queue, merger):
        queue.enqueue("group", "held", throttle=True)

        assert merger.force_flush("group") == 1
        assert merger.tick() is True
        assert queue.entries[0].throttle is False

    @pytest.mark.asyncio
    async def test_force_flush_unknown_chat(self, queue, merger):
        queue.enqueue("group", "held", throttle=True)
        assert merger.force_flush("elsewhere") == 0
        assert merger.tick() is False


class TestLoop:
    @pytest.mark.asyncio
    async def test_background_loop_releases_and_stops(self, queue, clock):
        merger = ThrottleMerger(queue, hold_seconds=120, busy_interval=0.001, idle_interval=0.001)
        queue.enqueue("group", "held", throttle=True)
        clock.advance(120)

        merger.start_background()
        for _ in range(100):
            if not queue.entries[0].throttle:
                break
            await asyncio.sleep(0.001)
        await merger.stop()

        assert queue.entries[0].throttle is False
        assert merger.stats["running"] is False

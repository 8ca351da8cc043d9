"""Shared test fixtures for claimbot tests.

This module provides common fixtures used across all test modules:
- A controllable clock for queue/merger timing
- An isolated PackageStore backed by temporary JSON files
- A MarkEngine wired to a real NotificationQueue
- Standard test actors

Usage:
    async def test_something(engine, alice, queue):
        await engine.set_mark("glibc", "ready", "", alice)
        assert queue.entries

Plain helpers and IDs live in tests/helpers.py.
"""

from pathlib import Path

import pytest

from claimbot.channels.barrier import DeferredBarrier
from claimbot.channels.notifier import Notifier
from claimbot.channels.queue import NotificationQueue
from claimbot.marks.definitions import load_definitions
from claimbot.marks.engine import MarkEngine
from claimbot.marks.models import Actor
from claimbot.marks.store import JsonFileStore, PackageStore
from claimbot.settings import Settings
from tests.helpers import ADMIN_ID, ALICE_ID, BOB_ID, BOT_ID, CAROL_ID, GROUP_CHAT, FakeClock


# ─────────────────────────────────────────────────────────────────────────────
# Timing
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(clock) -> NotificationQueue:
    return NotificationQueue(max_length=4000, clock=clock)


@pytest.fixture
def notifier(queue) -> Notifier:
    return Notifier(queue, default_options={"disable_notification": True})


# ─────────────────────────────────────────────────────────────────────────────
# Store and engine
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "db"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def store(data_dir: Path) -> PackageStore:
    """Empty, loaded store writing into a temporary directory."""
    package_store = PackageStore(
        claims_file=JsonFileStore(data_dir / "packageStatus.json", data_dir / "packageStatus.bak.json"),
        marks_file=JsonFileStore(data_dir / "packageMarks.json", data_dir / "packageMarks.bak.json"),
        clock=lambda: 1700000000000,
    )
    package_store.load()
    return package_store


@pytest.fixture
def definitions():
    return load_definitions()


@pytest.fixture
def engine(store, definitions, notifier) -> MarkEngine:
    return MarkEngine(
        store=store,
        definitions=definitions,
        notifier=notifier,
        chat_id=GROUP_CHAT,
        barrier=DeferredBarrier(),
        aliases={ALICE_ID: "alice", BOB_ID: "bob", CAROL_ID: "carol"},
        bot_user_id=BOT_ID,
        log_dir_url="https://example.org/logs/{pkgname}/",
    )


@pytest.fixture
def alice() -> Actor:
    return Actor(user_id=ALICE_ID, display_name="alice", url=f"tg://user?id={ALICE_ID}")


@pytest.fixture
def bob() -> Actor:
    return Actor(user_id=BOB_ID, display_name="bob", url=f"tg://user?id={BOB_ID}")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, display_name="admin", privileged=True)


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    """Settings with fast loop cadences and an isolated database."""
    return Settings(
        chat_id=GROUP_CHAT,
        http_api_token="secret",
        admin_user_id=ADMIN_ID,
        bot_user_id=BOT_ID,
        bot_name="claimbot",
        idle_interval=0.01,
        throttle_wait_interval=0.01,
        send_interval=0.0,
        rate_limit_default_backoff=0.01,
        merge_hold_seconds=120.0,
        merge_busy_interval=0.01,
        merge_idle_interval=0.01,
        default_options={"disable_notification": True},
        data_dir=data_dir,
        aliases={ALICE_ID: "alice", BOB_ID: "bob"},
    )

"""
Integration test fixtures for claimbot.

Provides fixtures specific to integration testing:
- A seeded on-disk database
- A BotRuntime without a chat platform, so sent messages stay queued
- A FastAPI TestClient running the app lifespan
"""

import json
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from claimbot.api.main import create_app
from claimbot.runtime import BotRuntime
from tests.helpers import ALICE_ID, BOB_ID


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def seeded_db(data_dir: Path) -> Path:
    """
    alice claims foo (marked ready), bar waits on foo.

    Written in the legacy string-list shapes so startup also upgrades them.
    """
    claims = [{"userid": ALICE_ID, "username": "alice", "packages": ["foo"]}]
    marks = [
        {"name": "foo", "marks": ["ready"]},
        {
            "name": "bar",
            "marks": [
                {
                    "name": "outdated_dep",
                    "by": {"url": "", "uid": BOB_ID, "alias": "bob"},
                    "comment": "[foo] and [gcc]",
                }
            ],
        },
    ]
    (data_dir / "packageStatus.json").write_text(json.dumps(claims), encoding="utf-8")
    (data_dir / "packageMarks.json").write_text(json.dumps(marks), encoding="utf-8")
    return data_dir


# ─────────────────────────────────────────────────────────────────────────────
# HTTP API
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runtime(settings, seeded_db) -> BotRuntime:
    return BotRuntime(settings)


@pytest.fixture
def test_client(runtime) -> Generator[TestClient, None, None]:
    """TestClient whose lifespan starts and stops the runtime."""
    app = create_app(lambda: runtime)
    with TestClient(app) as client:
        yield client

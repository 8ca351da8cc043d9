"""Tests for claimbot/cli.py"""

import json
import sys

import pytest

from claimbot import __version__
from claimbot.cli import main
from claimbot.settings import reset_settings


@pytest.fixture
def run_cli(monkeypatch, data_dir, capsys):
    monkeypatch.setenv("CLAIMBOT_DATA_DIR", str(data_dir))
    reset_settings()

    def run(*argv):
        monkeypatch.setattr(sys, "argv", ["claimbot", *argv])
        code = main()
        return code, capsys.readouterr()

    yield run
    reset_settings()


def test_version(run_cli):
    code, out = run_cli("--version")

    assert code == 0
    assert __version__ in out.out


def test_marks_lists_catalogue(run_cli):
    code, out = run_cli("marks")

    assert code == 0
    assert "failing" in out.out
    assert "bot only" in out.out


def test_upgrade_db_rewrites_legacy_records(run_cli, data_dir):
    (data_dir / "packageMarks.json").write_text(json.dumps([{"name": "glibc", "marks": ["ready"]}]))

    code, out = run_cli("upgrade-db")

    assert code == 0
    assert "1 marked package(s)" in out.out
    saved = json.loads((data_dir / "packageMarks.json").read_text())
    assert saved[0]["marks"] == [{"name": "ready", "by": None, "comment": ""}]


def test_status_json(run_cli, data_dir):
    (data_dir / "packageStatus.json").write_text(
        json.dumps([{"userid": 1, "username": "alice", "packages": [{"name": "gcc", "lastActive": 5}]}])
    )

    code, out = run_cli("status", "--json")

    assert code == 0
    assert json.loads(out.out)["claims"][0]["packages"] == [{"name": "gcc", "lastActive": 5}]


def test_status_reports_unreadable_database(run_cli, data_dir):
    (data_dir / "packageStatus.json").write_text("garbage")

    code, out = run_cli("status")

    assert code == 1
    assert "Failed to read the database" in out.err

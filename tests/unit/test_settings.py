"""Tests for claimbot/settings.py"""

from pathlib import Path

import pytest

from claimbot.settings import DEFAULT_CONFIG, Settings, get_settings, load_config, reset_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CLAIMBOT_BOT_TOKEN",
        "CLAIMBOT_CHAT_ID",
        "CLAIMBOT_HTTP_API_TOKEN",
        "CLAIMBOT_ADMIN_USER_ID",
        "CLAIMBOT_BOT_NAME",
        "CLAIMBOT_DATA_DIR",
        "CLAIMBOT_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "nope.yaml") == DEFAULT_CONFIG

    def test_yaml_merged_over_defaults(self, tmp_path):
        path = tmp_path / "claimbot.yaml"
        path.write_text("merger:\n  hold_seconds: 30\naliases:\n  1001: alice\n")

        config = load_config(path)

        assert config["merger"]["hold_seconds"] == 30
        assert config["merger"]["busy_interval"] == 0.1
        assert config["aliases"] == {1001: "alice"}

    def test_broken_yaml_falls_back(self, tmp_path):
        path = tmp_path / "claimbot.yaml"
        path.write_text("queue: [unclosed")

        assert load_config(path) == DEFAULT_CONFIG

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("http:\n  port: 8080\n")
        monkeypatch.setenv("CLAIMBOT_CONFIG", str(path))

        assert load_config()["http"]["port"] == 8080


class TestSettings:
    def test_environment_values(self, monkeypatch):
        monkeypatch.setenv("CLAIMBOT_CHAT_ID", "-1001")
        monkeypatch.setenv("CLAIMBOT_ADMIN_USER_ID", "42")
        monkeypatch.setenv("CLAIMBOT_BOT_NAME", "ClaimBot")
        monkeypatch.setenv("CLAIMBOT_DATA_DIR", "/srv/claimbot")

        settings = Settings.from_config(load_config(Path("/nonexistent.yaml")))

        assert settings.chat_id == "-1001"
        assert settings.admin_user_id == 42
        assert settings.bot_name == "claimbot"
        assert settings.marks_path == Path("/srv/claimbot/packageMarks.json")

    def test_non_integer_id_ignored(self, monkeypatch):
        monkeypatch.setenv("CLAIMBOT_ADMIN_USER_ID", "admin")

        assert Settings.from_config(load_config(Path("/nonexistent.yaml"))).admin_user_id == 0

    def test_defaults(self):
        settings = Settings.from_config(load_config(Path("/nonexistent.yaml")))

        assert settings.max_message_length == 4000
        assert settings.send_interval == 0.8
        assert settings.default_options == {"disable_notification": True}
        assert settings.http_api_token == ""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

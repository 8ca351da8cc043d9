"""
Configuration loading for claimbot.

Static tuning lives in args/claimbot.yaml; secrets and deployment values come
from the environment (a .env file in the project root is honoured).

Usage:
    from claimbot.settings import get_settings
    settings = get_settings()
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from claimbot import CONFIG_PATH, DATA_DIR, PROJECT_ROOT

logger = logging.getLogger(__name__)

load_dotenv(PROJECT_ROOT / ".env")


DEFAULT_CONFIG: dict[str, Any] = {
    "queue": {
        "max_message_length": 4000,
        "idle_interval": 0.2,
        "throttle_wait_interval": 1.0,
        "send_interval": 0.8,
        "rate_limit_default_backoff": 3.0,
    },
    "merger": {
        "hold_seconds": 120.0,
        "busy_interval": 0.1,
        "idle_interval": 1.0,
    },
    "delivery": {
        "default_options": {"disable_notification": True},
    },
    "store": {
        "claims_file": "packageStatus.json",
        "claims_backup_file": "packageStatus.bak.json",
        "marks_file": "packageMarks.json",
        "marks_backup_file": "packageMarks.bak.json",
    },
    "http": {
        "host": "127.0.0.1",
        "port": 30644,
    },
    "aliases": {},
    "marks": {},
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, layered over DEFAULT_CONFIG."""
    if path is None:
        env_path = os.environ.get("CLAIMBOT_CONFIG")
        path = Path(env_path) if env_path else CONFIG_PATH

    if not path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not read {path}, using defaults: {e}")
        return copy.deepcopy(DEFAULT_CONFIG)

    return _deep_merge(DEFAULT_CONFIG, config)


def _env_int(name: str, default: int = 0) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not an integer: {value!r}")
        return default


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    bot_token: str = ""
    chat_id: str = ""
    http_api_token: str = ""
    admin_user_id: int = 0
    bot_user_id: int = 0
    bot_name: str = ""
    log_dir_url: str = "https://archriscv.felixc.at/.status/logs/{pkgname}/"

    max_message_length: int = 4000
    idle_interval: float = 0.2
    throttle_wait_interval: float = 1.0
    send_interval: float = 0.8
    rate_limit_default_backoff: float = 3.0

    merge_hold_seconds: float = 120.0
    merge_busy_interval: float = 0.1
    merge_idle_interval: float = 1.0

    default_options: dict[str, Any] = field(default_factory=dict)

    data_dir: Path = DATA_DIR
    claims_file: str = "packageStatus.json"
    claims_backup_file: str = "packageStatus.bak.json"
    marks_file: str = "packageMarks.json"
    marks_backup_file: str = "packageMarks.bak.json"

    http_host: str = "127.0.0.1"
    http_port: int = 30644

    aliases: dict[int, str] = field(default_factory=dict)
    marks: dict[str, Any] = field(default_factory=dict)

    @property
    def claims_path(self) -> Path:
        return self.data_dir / self.claims_file

    @property
    def claims_backup_path(self) -> Path:
        return self.data_dir / self.claims_backup_file

    @property
    def marks_path(self) -> Path:
        return self.data_dir / self.marks_file

    @property
    def marks_backup_path(self) -> Path:
        return self.data_dir / self.marks_backup_file

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> Settings:
        queue = config["queue"]
        merger = config["merger"]
        store = config["store"]
        http = config["http"]

        data_dir = os.environ.get("CLAIMBOT_DATA_DIR")

        return cls(
            bot_token=os.environ.get("CLAIMBOT_BOT_TOKEN", ""),
            chat_id=os.environ.get("CLAIMBOT_CHAT_ID", ""),
            http_api_token=os.environ.get("CLAIMBOT_HTTP_API_TOKEN", ""),
            admin_user_id=_env_int("CLAIMBOT_ADMIN_USER_ID"),
            bot_user_id=_env_int("CLAIMBOT_BOT_USER_ID"),
            bot_name=os.environ.get("CLAIMBOT_BOT_NAME", "").lower(),
            log_dir_url=os.environ.get("CLAIMBOT_LOG_DIR_URL", cls.log_dir_url),
            max_message_length=int(queue["max_message_length"]),
            idle_interval=float(queue["idle_interval"]),
            throttle_wait_interval=float(queue["throttle_wait_interval"]),
            send_interval=float(queue["send_interval"]),
            rate_limit_default_backoff=float(queue["rate_limit_default_backoff"]),
            merge_hold_seconds=float(merger["hold_seconds"]),
            merge_busy_interval=float(merger["busy_interval"]),
            merge_idle_interval=float(merger["idle_interval"]),
            default_options=dict(config["delivery"]["default_options"] or {}),
            data_dir=Path(data_dir) if data_dir else DATA_DIR,
            claims_file=store["claims_file"],
            claims_backup_file=store["claims_backup_file"],
            marks_file=store["marks_file"],
            marks_backup_file=store["marks_backup_file"],
            http_host=http["host"],
            http_port=int(http["port"]),
            aliases={int(uid): str(alias) for uid, alias in (config["aliases"] or {}).items()},
            marks=dict(config["marks"] or {}),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_config(load_config())
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads them."""
    global _settings
    _settings = None

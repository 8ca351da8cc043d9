"""
Structured logging for claimbot: structlog wrapping stdlib.

Every record, whether it comes from a claimbot module, from uvicorn or from
python-telegram-bot, goes through one ProcessorFormatter so the process
writes a single stream: console output by default, JSON lines when
CLAIMBOT_LOG_FORMAT=json.

The Dispatcher and Merger also emit structured events (`events` loggers
bound to claimbot.dispatch / claimbot.merge) at DEBUG for each send and
merge; set CLAIMBOT_LOG_LEVEL=DEBUG to see them.

Usage:
    from claimbot.logging_config import setup_logging
    setup_logging()
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import Any

import structlog

# Bot API URLs embed the token: https://api.telegram.org/bot<id>:<secret>/sendMessage
_BOT_TOKEN = re.compile(r"bot\d+:[A-Za-z0-9_-]+")

# Per-request chatter from libraries polling or serving in a loop
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "telegram.ext.Updater": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def redact_bot_token(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Keep the Telegram token out of log output."""
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = _BOT_TOKEN.sub("bot<redacted>", event)
    return event_dict


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get("CLAIMBOT_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("CLAIMBOT_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_bot_token,
    ]

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # uvicorn runs with log_config=None; route its loggers through the root handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(quiet_level, numeric_level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Structured logger for key/value events."""
    return structlog.get_logger(name)


__all__ = ["get_logger", "redact_bot_token", "setup_logging"]

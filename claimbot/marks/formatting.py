"""
Telegram MarkdownV2 helpers for mark and claim messages.

See https://core.telegram.org/bots/api#markdownv2-style for the escaping rules.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from claimbot.marks.models import MarkDefinition, MarkRecord

_MD_SPECIAL = re.compile(r"([\[\]()_*~`>#+\-=|{}.!\\])")
_CODE_SPECIAL = re.compile(r"([`\\])")

TIMEZONE = timezone(timedelta(hours=8))


def to_safe_md(text: Any) -> str:
    return _MD_SPECIAL.sub(r"\\\1", str(text))


def to_safe_code(text: str) -> str:
    return _CODE_SPECIAL.sub(r"\\\1", text)


def wrap_code(text: str) -> str:
    return f"`{to_safe_code(text)}`"


def mention_link(user_id: int, display_name: str, tag: bool = False) -> str:
    """Inline mention; tag=True adds a zero-width space so clients notify the user."""
    name = to_safe_md(display_name.strip() or f"uid={user_id}")
    if tag:
        name += "\u200b"
    return f"[{name}](tg://user?id={user_id})"


def current_time_str(now: datetime | None = None) -> str:
    now = now or datetime.now(TIMEZONE)
    return now.astimezone(TIMEZONE).strftime("%Y-%m-%d %H:%M:%S") + " (UTC+8)"


def mark_to_string(
    mark: MarkRecord,
    definitions: dict[str, MarkDefinition],
) -> str:
    """MarkdownV2-safe one-line rendering, e.g. (#ready Builds from upstream “note” by alice)."""
    definition = definitions.get(mark.name) or definitions.get("unknown")
    description = definition.description if definition else mark.name
    by = mark.by.display_name if mark.by else "null"
    comment = f" “{mark.comment}”" if mark.comment else ""
    return to_safe_md(f"(#{mark.name} {description}{comment} by {by})")


def marks_to_lines(marks: list[MarkRecord], definitions: dict[str, MarkDefinition]) -> list[str]:
    return [mark_to_string(mark, definitions) for mark in marks]


def log_dir_link(url_template: str, package: str, text: str) -> str:
    """Markdown link to a package's build logs, or plain text without a template."""
    safe_text = to_safe_md(text)
    if not url_template:
        return safe_text
    return f"[{safe_text}]({url_template.replace('{pkgname}', package)})"

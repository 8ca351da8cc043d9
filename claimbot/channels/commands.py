"""
Tool: Command Router
Purpose: Slash-command handlers shared by every chat adapter

Adapters only translate platform updates into dispatch() calls; everything
that decides what a command means lives here.

Commands:
    /add pkg                      claim a package
    /merge pkg, /drop pkg         release a claimed package
    /mark pkg mark [comment]      set a mark
    /unmark pkg mark|all          clear one mark, or every clearable mark
    /marks                        list the available marks
    /status                       list contributors and their packages
    /more pkg                     show a package's owner and marks
    /flush                        send the group's held messages now (admin)

Usage:
    router = CommandRouter(engine, notifier, group_chat_id=settings.chat_id)
    await router.dispatch("add", text="/add glibc", chat_id=1, message_id=2, user_id=3)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from claimbot.channels.notifier import Notifier
from claimbot.errors import UnknownMark
from claimbot.marks.engine import BatchResult, MarkEngine, OpResult
from claimbot.marks.formatting import marks_to_lines, to_safe_md
from claimbot.marks.models import Actor

if TYPE_CHECKING:
    from claimbot.channels.merger import ThrottleMerger

logger = logging.getLogger(__name__)

MARKDOWN = {"parse_mode": "MarkdownV2"}

_ADDRESSED = re.compile(r"^/[A-Za-z0-9_]+@([A-Za-z0-9_]+)")


@dataclass
class CommandContext:
    """Where a command came from and who sent it."""

    chat_id: str
    message_id: int
    user_id: int
    username: str | None = None
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CommandRouter:
    """Parses command text and calls into the mark engine."""

    commands = ("add", "merge", "drop", "mark", "unmark", "marks", "status", "more", "flush")

    def __init__(
        self,
        engine: MarkEngine,
        notifier: Notifier,
        group_chat_id: str | int = "",
        bot_name: str = "",
        admin_user_id: int = 0,
        merger: ThrottleMerger | None = None,
    ):
        self.engine = engine
        self.notifier = notifier
        self.group_chat_id = str(group_chat_id) if group_chat_id else ""
        self.bot_name = bot_name.lower()
        self.admin_user_id = admin_user_id
        self.merger = merger

    def is_addressed_to_me(self, text: str) -> bool:
        """False for "/cmd@otherbot" in group chats shared with other bots."""
        match = _ADDRESSED.match(text)
        if not match or not self.bot_name:
            return True
        return match.group(1).lower() == self.bot_name

    def actor_for(self, ctx: CommandContext) -> Actor:
        if ctx.user_id in self.engine.aliases:
            display_name = self.engine.aliases[ctx.user_id]
        else:
            display_name = ctx.username or ctx.full_name or f"uid={ctx.user_id}"
        return Actor(
            user_id=ctx.user_id,
            display_name=display_name,
            url=f"tg://user?id={ctx.user_id}",
            privileged=bool(self.admin_user_id) and ctx.user_id == self.admin_user_id,
        )

    async def dispatch(
        self,
        command: str,
        text: str,
        chat_id: str | int,
        message_id: int,
        user_id: int,
        username: str | None = None,
        first_name: str = "",
        last_name: str = "",
    ) -> None:
        """
        Handle one command message.

        Args:
            command: Command name without the slash
            text: Full message text
            chat_id: Chat the command was sent in
            message_id: ID of the command message, replies quote it
            user_id: Sender
            username: Sender's username, if any
            first_name: Sender's first name
            last_name: Sender's last name
        """
        if command not in self.commands:
            return
        if not self.is_addressed_to_me(text):
            logger.debug(f"Ignoring command addressed to another bot: {text[:40]}")
            return

        ctx = CommandContext(
            chat_id=str(chat_id),
            message_id=message_id,
            user_id=user_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
        )
        parts = text.split(None, 1)
        rest = parts[1].strip() if len(parts) > 1 else ""
        logger.info(f"Command /{command} from {user_id} in {chat_id}")

        handler = getattr(self, f"_cmd_{command}")
        await handler(ctx, rest)

    # ------------------------------------------------------------------
    # Output helpers
    # ------------------------------------------------------------------

    async def _reply(self, ctx: CommandContext, text: str) -> None:
        await self.notifier.reply(ctx.chat_id, ctx.message_id, text, MARKDOWN)

    def _is_group(self, ctx: CommandContext) -> bool:
        return not self.group_chat_id or ctx.chat_id == self.group_chat_id

    def _announce_to_group(self, text: str) -> None:
        """Tell the group about a change made elsewhere; held for batching."""
        if not self.group_chat_id:
            return
        self.notifier.send_message(self.group_chat_id, to_safe_md(text), MARKDOWN, throttle=True)

    def _reply_text(self, result: OpResult | BatchResult, success_text: str) -> str:
        if result.success:
            return to_safe_md(success_text)
        if isinstance(result, BatchResult):
            reason = "\n".join(result.reasons)
        else:
            reason = result.reason
        return to_safe_md(reason or "Operation failed")

    async def _show_mark_help(self, ctx: CommandContext) -> None:
        names = ", ".join(self.engine.definitions)
        self.notifier.send_message(
            ctx.chat_id,
            to_safe_md(f"/mark usage:\n/mark pkg mark [comment]\n\nAvailable marks: {names}"),
            MARKDOWN,
        )

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    async def _cmd_add(self, ctx: CommandContext, rest: str) -> None:
        args = rest.split()
        if len(args) != 1:
            await self._reply(ctx, to_safe_md("Usage: /add pkgname"))
            return
        package = args[0]

        result = await self.engine.claim(package, self.actor_for(ctx))
        if not result.success:
            await self._reply(ctx, to_safe_md(result.reason))
            return

        marks = self.engine.store.marks_of(package)
        if marks:
            text = to_safe_md("Claimed, but note this package has marks:\n")
            text += "\n".join(marks_to_lines(marks, self.engine.definitions))
            text += to_safe_md("\n\nUse /more to see the full list")
        else:
            text = to_safe_md("Claimed")
        await self._reply(ctx, text)

        if not self._is_group(ctx):
            self._announce_to_group(f"{package} has been claimed.")

    async def _cmd_merge(self, ctx: CommandContext, rest: str) -> None:
        args = rest.split()
        if len(args) != 1:
            await self._reply(ctx, to_safe_md("Usage: /merge pkgname"))
            return

        result = await self.engine.release(args[0], ctx.user_id)
        await self._reply(ctx, self._reply_text(result, "Released"))

    _cmd_drop = _cmd_merge

    # ------------------------------------------------------------------
    # Marks
    # ------------------------------------------------------------------

    async def _cmd_mark(self, ctx: CommandContext, rest: str) -> None:
        args = rest.split(None, 2)
        if len(args) < 2 or args[1] not in self.engine.definitions:
            await self._show_mark_help(ctx)
            return
        package, mark_name = args[0], args[1]
        comment = args[2].strip() if len(args) > 2 else ""

        result = await self.engine.set_mark(package, mark_name, comment, self.actor_for(ctx))
        if isinstance(result.error, UnknownMark):
            await self._show_mark_help(ctx)
            return

        text = self._reply_text(result, "Status updated")
        if result.success and result.triggered_marks:
            text += to_safe_md(f"\nAlso cleared: {', '.join(result.triggered_marks)}")
        await self._reply(ctx, text)

        if result.success and not self._is_group(ctx):
            self._announce_to_group(
                f"{package} has been marked as {mark_name}: {comment or 'no comment'}"
            )

    async def _cmd_unmark(self, ctx: CommandContext, rest: str) -> None:
        args = rest.split()
        if len(args) != 2:
            await self._reply(ctx, to_safe_md("Usage: /unmark pkgname mark|all"))
            return
        package, mark_name = args
        actor = self.actor_for(ctx)

        result: OpResult | BatchResult
        if mark_name == "all":
            result = await self.engine.clear_all_user_clearable_marks(package, actor)
            cleared = result.cleared
        else:
            result = await self.engine.clear_mark(package, mark_name, actor)
            cleared = [mark_name] if result.success else []

        await self._reply(ctx, self._reply_text(result, "Status updated"))

        if cleared and not self._is_group(ctx):
            self._announce_to_group(f"{package} is no longer marked as {', '.join(cleared)}")

    async def _cmd_marks(self, ctx: CommandContext, rest: str) -> None:
        lines = []
        for definition in self.engine.definitions.values():
            line = f"#{definition.name} {definition.description}"
            if definition.help_text:
                line += f": {definition.help_text}"
            lines.append(line)
        await self._reply(ctx, to_safe_md("\n".join(lines)))

    # ------------------------------------------------------------------
    # Overviews
    # ------------------------------------------------------------------

    async def _cmd_status(self, ctx: CommandContext, rest: str) -> None:
        await self._reply(ctx, self.engine.status_overview())

    async def _cmd_more(self, ctx: CommandContext, rest: str) -> None:
        args = rest.split()
        if len(args) != 1:
            await self._reply(ctx, to_safe_md("Usage: /more pkgname"))
            return
        await self._reply(ctx, self.engine.describe_package(args[0]))

    async def _cmd_flush(self, ctx: CommandContext, rest: str) -> None:
        if not self.admin_user_id or ctx.user_id != self.admin_user_id:
            await self._reply(ctx, to_safe_md("Only the admin can flush held messages"))
            return
        if self.merger is None:
            await self._reply(ctx, to_safe_md("Message merging is not running"))
            return

        target = rest.split()[0] if rest.split() else (self.group_chat_id or ctx.chat_id)
        flushed = self.merger.force_flush(target)
        await self._reply(ctx, to_safe_md(f"Flushed {flushed} held message(s)"))


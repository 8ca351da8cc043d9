"""
Tool: Mark Engine
Purpose: Claim bookkeeping, status marks with cascading triggers, and CI-driven
propagation across packages

Every public operation returns an OpResult (or a batch/report built from
them) instead of raising; the `reason` of a failed result is meant to be shown
to users verbatim.

Concurrency model: there are no locks. All read-then-mutate sequences against
the store run without an await in between, and persistence happens after the
mutation is complete. Notifications are enqueued, never awaited, so queue
order equals the order the engine produced them in.

Usage:
    engine = MarkEngine(store, definitions, notifier, chat_id=group_chat)
    result = await engine.set_mark("glibc", "ready", "", actor)
    if not result.success:
        print(result.reason)
    await engine.batch_propagate_on_completion("glibc")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from claimbot.channels.barrier import DeferredBarrier
from claimbot.channels.notifier import Notifier
from claimbot.errors import (
    ClaimBotError,
    CommentRequired,
    MergeConflict,
    NotFound,
    NotUserClearable,
    NotUserSettable,
    StoreWriteFailed,
    UnknownMark,
)
from claimbot.marks.definitions import COMPLETION_CLEARED_MARKS, DEPENDENCY_MARKS
from claimbot.marks.formatting import (
    current_time_str,
    log_dir_link,
    marks_to_lines,
    mention_link,
    to_safe_code,
    to_safe_md,
)
from claimbot.marks.models import (
    Actor,
    MarkDefinition,
    MarkOp,
    MarkRecord,
    PackageClaim,
)
from claimbot.marks.store import PackageStore

logger = logging.getLogger(__name__)

MARKDOWN = {"parse_mode": "MarkdownV2"}


@dataclass
class OpResult:
    """Outcome of one mark or claim operation."""

    success: bool
    mark: str | None = None
    error: ClaimBotError | None = None
    triggered: list[OpResult] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return self.error.reason if self.error else ""

    @property
    def triggered_marks(self) -> list[str]:
        """Names of marks a trigger actually changed."""
        return [t.mark for t in self.triggered if t.success and t.mark]

    @classmethod
    def ok(cls, mark: str | None = None, triggered: list[OpResult] | None = None) -> OpResult:
        return cls(success=True, mark=mark, triggered=triggered or [])

    @classmethod
    def fail(cls, error: ClaimBotError, mark: str | None = None) -> OpResult:
        return cls(success=False, mark=mark, error=error)


@dataclass
class BatchResult:
    """Per-item outcomes of a bulk operation."""

    outcomes: list[OpResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and all(o.success for o in self.outcomes)

    @property
    def cleared(self) -> list[str]:
        return [o.mark for o in self.outcomes if o.success and o.mark]

    @property
    def reasons(self) -> list[str]:
        return [o.reason for o in self.outcomes if not o.success]


@dataclass
class CompletionReport:
    """What batch_propagate_on_completion / report_failure did."""

    package: str
    owner_id: int | None = None
    cleared: list[str] = field(default_factory=list)
    release: OpResult | None = None
    affected_packages: list[str] = field(default_factory=list)
    mentioned: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def owner_found(self) -> bool:
        return self.owner_id is not None


@dataclass
class _DependentChange:
    package: str
    mark: str
    cleared: bool


class MarkEngine:
    """Owns all claim/mark state transitions and the notifications they cause."""

    def __init__(
        self,
        store: PackageStore,
        definitions: dict[str, MarkDefinition],
        notifier: Notifier,
        chat_id: str | int = "",
        barrier: DeferredBarrier | None = None,
        aliases: dict[int, str] | None = None,
        bot_user_id: int = 0,
        log_dir_url: str = "",
    ):
        """
        Initialize the engine.

        Args:
            store: Claim/mark store
            definitions: Mark catalogue
            notifier: Outbound message facade
            chat_id: Group chat that receives state-change notifications
            barrier: Deferred barrier for ping-before-detail ordering
            aliases: User ID -> display alias
            bot_user_id: The bot's own user ID, used as setter of automatic marks
            log_dir_url: Build log URL template containing {pkgname}
        """
        self.store = store
        self.definitions = definitions
        self.notifier = notifier
        self.chat_id = str(chat_id) if chat_id else ""
        self.barrier = barrier or DeferredBarrier()
        self.aliases = dict(aliases or {})
        self.bot_user_id = bot_user_id
        self.log_dir_url = log_dir_url

    # ------------------------------------------------------------------
    # Identity helpers
    # ------------------------------------------------------------------

    def alias_for(self, user_id: int) -> str:
        if user_id in self.aliases:
            return self.aliases[user_id]
        claim = self.store.get_claim(user_id)
        if claim and claim.display_name:
            return claim.display_name
        return f"uid={user_id}"

    @property
    def bot_actor(self) -> Actor:
        return Actor(
            user_id=self.bot_user_id,
            display_name="bot",
            url=f"tg://user?id={self.bot_user_id}",
            privileged=True,
        )

    def _mention(self, user_id: int) -> str:
        return mention_link(user_id, self.alias_for(user_id))

    def _announce(self, text: str, throttle: bool = False) -> None:
        """Queue a MarkdownV2 message to the group chat without waiting for it."""
        if not self.chat_id:
            logger.debug(f"No group chat configured, dropping notification: {text[:40]}")
            return
        self.notifier.send_message(self.chat_id, text, MARKDOWN, throttle=throttle)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    async def claim(self, package: str, actor: Actor) -> OpResult:
        """Claim a package for the actor."""
        owner = self.store.find_owner(package)
        if owner is not None:
            if owner.user_id == actor.user_id:
                return OpResult.fail(MergeConflict("You have already claimed this package"))
            return OpResult.fail(
                MergeConflict("Claim failed, this package has been claimed by someone else")
            )

        self.store.add_package(actor.user_id, actor.display_name or None, package)
        try:
            await self.store.save_claims()
        except StoreWriteFailed as e:
            return OpResult.fail(e)
        logger.info(f"{package} claimed by {actor.user_id}")
        return OpResult.ok()

    def _release_now(self, package: str, user_id: int) -> OpResult:
        if self.store.find_owner(package) is None:
            return OpResult.fail(MergeConflict("Package is not in the claim records"))

        claim = self.store.get_claim(user_id)
        if claim is None:
            return OpResult.fail(MergeConflict("You have not claimed any package"))
        if not claim.has_package(package):
            return OpResult.fail(
                MergeConflict(
                    "Package is not in your claim records, please contact its owner"
                )
            )

        self.store.remove_package(user_id, package)
        return OpResult.ok()

    async def release(self, package: str, user_id: int) -> OpResult:
        """Release ("merge"/"drop") a package from its owner's claims."""
        result = self._release_now(package, user_id)
        if not result.success:
            return result
        try:
            await self.store.save_claims()
        except StoreWriteFailed as e:
            return OpResult.fail(e)
        logger.info(f"{package} released by {user_id}")
        return result

    # ------------------------------------------------------------------
    # Marks
    # ------------------------------------------------------------------

    def _fire_triggers(
        self,
        package: str,
        definition: MarkDefinition,
        fires_on: MarkOp,
        actor: Actor,
    ) -> list[OpResult]:
        """
        Apply a definition's triggers once, without evaluating triggers of
        the marks they touch. Failures are recorded, never propagated.
        """
        outcomes = []
        for trigger in definition.triggers_for(fires_on):
            if trigger.op == MarkOp.UNMARK:
                removed = self.store.remove_mark(package, trigger.mark_name)
                if removed is None:
                    outcomes.append(OpResult.fail(NotFound(), mark=trigger.mark_name))
                else:
                    outcomes.append(OpResult.ok(trigger.mark_name))
            else:
                if trigger.mark_name not in self.definitions:
                    outcomes.append(OpResult.fail(UnknownMark(trigger.mark_name), mark=trigger.mark_name))
                    continue
                self.store.put_mark(package, MarkRecord(trigger.mark_name, actor.as_setter(), ""))
                outcomes.append(OpResult.ok(trigger.mark_name))
        return outcomes

    async def _save_marks(self) -> ClaimBotError | None:
        try:
            await self.store.save_marks()
        except StoreWriteFailed as e:
            logger.error(f"Persisting marks failed: {e}")
            return e
        return None

    async def set_mark(self, package: str, mark_name: str, comment: str, actor: Actor) -> OpResult:
        """
        Set (or replace) a mark on a package.

        Args:
            package: Package name
            mark_name: Mark to set
            comment: Free-text comment, may be empty
            actor: Who is marking

        Returns:
            OpResult; `triggered` lists the cascading changes
        """
        definition = self.definitions.get(mark_name)
        if definition is None:
            return OpResult.fail(UnknownMark(mark_name), mark=mark_name)
        comment = comment.strip()
        if definition.comment_required and not comment:
            return OpResult.fail(CommentRequired(), mark=mark_name)
        if not definition.user_can_set and not actor.privileged:
            return OpResult.fail(NotUserSettable(), mark=mark_name)

        triggered = self._fire_triggers(package, definition, MarkOp.MARK, actor)
        if definition.appends_timestamp:
            comment = f"{comment} {current_time_str()}".strip()
        self.store.put_mark(package, MarkRecord(mark_name, actor.as_setter(), comment))

        error = await self._save_marks()
        if error:
            return OpResult(success=False, mark=mark_name, error=error, triggered=triggered)
        logger.info(f"{package} marked as {mark_name} by {actor.user_id}")
        return OpResult.ok(mark_name, triggered)

    async def clear_mark(self, package: str, mark_name: str, actor: Actor) -> OpResult:
        """Clear a mark from a package."""
        mark_set = self.store.get_mark_set(package)
        if mark_set is None:
            return OpResult.fail(NotFound(), mark=mark_name)
        if mark_set.get(mark_name) is None:
            return OpResult.fail(
                NotFound("Package is not currently marked with this status"), mark=mark_name
            )

        definition = self.definitions.get(mark_name)
        if definition is not None and not definition.user_can_clear and not actor.privileged:
            return OpResult.fail(NotUserClearable(), mark=mark_name)

        triggered = []
        if definition is not None:
            triggered = self._fire_triggers(package, definition, MarkOp.UNMARK, actor)
        self.store.remove_mark(package, mark_name)

        error = await self._save_marks()
        if error:
            return OpResult(success=False, mark=mark_name, error=error, triggered=triggered)
        logger.info(f"{package} unmarked {mark_name} by {actor.user_id}")
        return OpResult.ok(mark_name, triggered)

    async def clear_all_user_clearable_marks(self, package: str, actor: Actor) -> BatchResult:
        """
        Clear every mark the actor may clear ("unmark all").

        Never stops at the first failure; success only if every attempt succeeded.
        """
        mark_names = [m.name for m in self.store.marks_of(package)]
        if not mark_names:
            return BatchResult([OpResult.fail(NotFound())])

        outcomes = []
        for mark_name in mark_names:
            definition = self.definitions.get(mark_name)
            if definition is not None and not definition.user_can_clear and not actor.privileged:
                continue
            if self.store.get_mark_set(package) is None or not any(
                m.name == mark_name for m in self.store.marks_of(package)
            ):
                # already removed by an earlier trigger
                continue
            outcomes.append(await self.clear_mark(package, mark_name, actor))
        if not outcomes:
            return BatchResult(
                [OpResult.fail(NotUserClearable("None of this package's marks can be cleared manually"))]
            )
        return BatchResult(outcomes)

    # ------------------------------------------------------------------
    # CI signals
    # ------------------------------------------------------------------

    def _propagate_to_dependents(self, package: str) -> tuple[list[str], list[_DependentChange], dict[int, str]]:
        """
        Drop references to a built package from other packages' dependency marks.

        Exact "[package]" comments clear the mark; longer comments lose the
        tag and the mark is re-applied with the rest. Runs without suspending.

        Returns:
            (visited packages in order, changes, user_id -> alias to ping)
        """
        tag = f"[{package}]"
        tag_pattern = re.compile(re.escape(tag), re.IGNORECASE)
        visited: list[str] = []
        changes: list[_DependentChange] = []
        mentions: dict[int, str] = {}

        for mark_set in self.store.find_by_marks_and_comment(DEPENDENCY_MARKS, tag):
            if mark_set.package_name == package:
                continue
            visited.append(mark_set.package_name)
            for mark in list(mark_set.marks):
                if mark.name not in DEPENDENCY_MARKS or not tag_pattern.search(mark.comment):
                    continue
                if mark.by is not None:
                    mentions.setdefault(mark.by.source_id, self.alias_for(mark.by.source_id))

                if mark.comment.strip().lower() == tag.lower():
                    self.store.remove_mark(mark_set.package_name, mark.name)
                    changes.append(_DependentChange(mark_set.package_name, mark.name, cleared=True))
                else:
                    residual = tag_pattern.sub("", mark.comment)
                    residual = re.sub(r"[ \t]{2,}", " ", residual).strip()
                    self.store.put_mark(
                        mark_set.package_name, MarkRecord(mark.name, mark.by, residual)
                    )
                    changes.append(_DependentChange(mark_set.package_name, mark.name, cleared=False))

        return visited, changes, mentions

    async def batch_propagate_on_completion(self, package: str) -> CompletionReport:
        """
        React to CI reporting that a package was built.

        Order of output in the group chat:
            1. ping of the owner ("[auto-merge] ... built")
            2. one message per terminal mark cleared on the package
            3. release failure, if any
            4. one ping naming everyone whose dependency marks referenced it
            5. the per-package details of step 4, in visitation order
        """
        report = CompletionReport(package=package)

        owner: PackageClaim | None = self.store.find_owner(package)
        if owner is not None:
            report.owner_id = owner.user_id
            self._announce(
                f"Ping {self._mention(owner.user_id)}"
                + to_safe_md(f": [auto-merge] {package} has been built")
            )

        # terminal marks go out undeferred so they precede the ping below
        for mark_name in COMPLETION_CLEARED_MARKS:
            if self.store.remove_mark(package, mark_name) is None:
                continue
            report.cleared.append(mark_name)
            self._announce(
                to_safe_md(f"Auto unmark: {package} has been built and is no longer marked as {mark_name}")
            )

        if owner is not None:
            report.release = self._release_now(package, owner.user_id)
            if not report.release.success:
                self._announce(to_safe_md(f"Auto merge failed: {report.release.reason}"))

        visited, changes, mentions = self._propagate_to_dependents(package)
        report.affected_packages = visited
        report.mentioned = list(mentions)

        batch_key = self.barrier.new_key(package)
        keys = {name: f"{batch_key}:{name}" for name in visited}
        for change in changes:
            if change.cleared:
                text = (
                    f"Auto unmark: {change.package} is no longer marked as {change.mark} "
                    f"because {package} has been built"
                )
            else:
                text = f"Mark changed: [{package}] removed from the {change.mark} mark of {change.package}"
            await self.barrier.add(keys[change.package], partial(self._announce, to_safe_md(text)))

        if mentions:
            links = " ".join(mention_link(uid, alias) for uid, alias in mentions.items())
            self._announce(f"Ping {links}{to_safe_md(':')}")
        for name in visited:
            await self.barrier.resolve(keys[name])

        if owner is not None and report.release and report.release.success:
            try:
                await self.store.save_claims()
            except StoreWriteFailed as e:
                report.errors.append(e.reason)
        error = await self._save_marks()
        if error:
            report.errors.append(error.reason)
        for reason in report.errors:
            self._announce(to_safe_md(f"Auto update of {package} not saved: {reason}"))

        logger.info(
            f"Completion of {package}: cleared={report.cleared} affected={report.affected_packages}"
        )
        return report

    async def report_failure(self, package: str) -> CompletionReport:
        """
        React to CI reporting that a package failed to build.

        The owner ping goes out first; the mark changes follow it.
        """
        report = CompletionReport(package=package)
        owner = self.store.find_owner(package)
        if owner is not None:
            report.owner_id = owner.user_id
            self._announce(
                f"Ping {self._mention(owner.user_id)}"
                + to_safe_md(f": [ci] {package} is failing ")
                + log_dir_link(self.log_dir_url, package, "(logs)")
            )

        key = self.barrier.new_key(f"ci:{package}")
        result = await self.set_mark(package, "failing", "", self.bot_actor)
        if result.success:
            await self.barrier.add(
                key,
                partial(self._announce, to_safe_md(f"[ci] {package} has been marked as failing automatically")),
            )
        else:
            report.errors.append(result.reason)
        for mark_name in result.triggered_marks:
            report.cleared.append(mark_name)
            await self.barrier.add(
                key,
                partial(self._announce, to_safe_md(f"[ci] {package} is no longer marked as {mark_name}")),
            )
        await self.barrier.resolve(key)
        return report

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def describe_package(self, package: str) -> str:
        """MarkdownV2 summary of a package's owner and marks."""
        parts = []
        owner = self.store.find_owner(package)
        if owner is not None:
            parts.append(to_safe_md(f"Claimed by {self.alias_for(owner.user_id)}.\n"))
        parts.append("\n".join(marks_to_lines(self.store.marks_of(package), self.definitions)))
        text = "".join(parts).strip()
        return text or to_safe_md("This package has no marks")

    def status_overview(self) -> str:
        """MarkdownV2 list of every contributor and their packages."""
        lines = []
        for claim in self.store.claims:
            if not claim.packages:
                continue
            who = (
                to_safe_md(claim.display_name)
                if claim.display_name
                else mention_link(claim.user_id, "someone without a username")
            )
            packages = "` `".join(to_safe_code(name) for name in sorted(claim.package_names))
            lines.append(f"{who}{to_safe_md(' - ')}`{packages}`")

        text = "\n\n".join(lines) or to_safe_md("(empty)")
        return text + to_safe_md(
            "\n\nMaintain this list with add, merge and drop; use more to see a package's marks."
        )

    def public_view(self) -> dict[str, Any]:
        """Stripped claim and mark lists for the HTTP API."""
        work_list = [
            {"alias": self.alias_for(claim.user_id), "packages": claim.package_names}
            for claim in self.store.claims
        ]
        mark_list = [
            {
                "name": mark_set.package_name,
                "marks": [
                    {
                        "name": mark.name,
                        "by": {"alias": mark.by.display_name if mark.by else "null"},
                        "comment": mark.comment,
                    }
                    for mark in mark_set.marks
                ],
            }
            for mark_set in self.store.mark_sets
        ]
        return {"workList": work_list, "markList": mark_list}

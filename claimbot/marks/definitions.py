"""
Tool: Mark Definitions
Purpose: The catalogue of status marks and their cascading triggers

Definitions are static at runtime. The built-in catalogue below can be
extended or overridden from the `marks:` section of args/claimbot.yaml:

    marks:
      blocked:
        description: Blocked by infrastructure
        comment_required: true
        triggers:
          - {mark: ready, op: unmark, when: mark}

Usage:
    from claimbot.marks.definitions import load_definitions
    definitions = load_definitions(settings.marks)
"""

from __future__ import annotations

import logging
from typing import Any

from claimbot.marks.models import MarkDefinition, MarkOp, Trigger

logger = logging.getLogger(__name__)

# Marks cleared on a package once CI reports it built
COMPLETION_CLEARED_MARKS = (
    "outdated",
    "stuck",
    "ready",
    "outdated_dep",
    "missing_dep",
    "unknown",
    "ignore",
    "failing",
)

# Marks whose comment references other packages as "[pkgname]"
DEPENDENCY_MARKS = ("outdated_dep", "missing_dep")


def _unmark_on_mark(*names: str) -> tuple[Trigger, ...]:
    return tuple(Trigger(mark_name=name, op=MarkOp.UNMARK, fires_on=MarkOp.MARK) for name in names)


BUILTIN_MARKS: dict[str, MarkDefinition] = {
    definition.name: definition
    for definition in (
        MarkDefinition(
            name="unknown",
            description="Special state, ask the owner",
            help_text="The package has an unresolved problem none of the other marks describe. Explain it in the comment.",
            comment_required=True,
        ),
        MarkDefinition(
            name="upstreamed",
            description="Waiting for upstream",
            help_text="Needs a fix upstream, either the package's own upstream or Arch Linux x86_64.",
            comment_required=True,
        ),
        MarkDefinition(
            name="outdated",
            description="Needs a version bump",
            help_text="The package cannot be built because its version is outdated.",
        ),
        MarkDefinition(
            name="outdated_dep",
            description="Needs a dependency version bump",
            help_text="The package cannot be built because a dependency is outdated. Reference it as [pkgname].",
            comment_required=True,
        ),
        MarkDefinition(
            name="stuck",
            description="No progress",
            help_text="The package is very hard to fix and will not be fixed soon.",
            comment_required=True,
        ),
        MarkDefinition(
            name="noqemu",
            description="Only builds on real boards",
            help_text="The package only fails to build under qemu-user.",
        ),
        MarkDefinition(
            name="ready",
            description="Builds from upstream as is",
            help_text="Can be built directly. Not for packages that need a patch first.",
            appends_timestamp=True,
            triggers=_unmark_on_mark("failing", "flaky"),
        ),
        MarkDefinition(
            name="ignore",
            description="Not applicable to riscv64",
            help_text="The package is meaningless on riscv64.",
            triggers=_unmark_on_mark(
                "failing", "flaky", "ready", "missing_dep", "outdated_dep", "outdated", "noqemu"
            ),
        ),
        MarkDefinition(
            name="missing_dep",
            description="Missing dependency",
            help_text="A dependency is currently missing. Reference it as [pkgname].",
            comment_required=True,
        ),
        MarkDefinition(
            name="flaky",
            description="Fails to build intermittently",
            help_text="The package may need several attempts to build.",
            comment_required=True,
            triggers=_unmark_on_mark("ready"),
        ),
        MarkDefinition(
            name="failing",
            description="Fails to build",
            help_text="CI reports the package fails to build. Do not change this mark by hand.",
            user_can_set=False,
            user_can_clear=False,
            appends_timestamp=True,
            triggers=_unmark_on_mark("ready"),
        ),
        MarkDefinition(
            name="nocheck",
            description="Fails its test suite",
            help_text="Needs --nocheck to build.",
            comment_required=True,
            appends_timestamp=True,
        ),
        MarkDefinition(
            name="important",
            description="Important package",
            help_text="The package is important and needs special attention.",
        ),
    )
}


def definition_from_dict(name: str, data: dict[str, Any]) -> MarkDefinition:
    """
    Build a MarkDefinition from its YAML form.

    Raises:
        ValueError: If a trigger is malformed or targets the mark itself
    """
    triggers = []
    for raw in data.get("triggers") or []:
        try:
            trigger = Trigger(
                mark_name=str(raw["mark"]),
                op=MarkOp(raw["op"]),
                fires_on=MarkOp(raw.get("when", "mark")),
            )
        except (KeyError, ValueError) as e:
            raise ValueError(f"invalid trigger on mark {name!r}: {raw!r}") from e
        if trigger.mark_name == name:
            raise ValueError(f"mark {name!r} cannot trigger itself")
        triggers.append(trigger)

    return MarkDefinition(
        name=name,
        description=str(data.get("description", name)),
        help_text=str(data.get("help", data.get("help_text", ""))),
        comment_required=bool(data.get("comment_required", False)),
        user_can_set=bool(data.get("user_can_set", True)),
        user_can_clear=bool(data.get("user_can_clear", True)),
        appends_timestamp=bool(data.get("appends_timestamp", False)),
        triggers=tuple(triggers),
    )


def load_definitions(overrides: dict[str, Any] | None = None) -> dict[str, MarkDefinition]:
    """Built-in definitions with configured additions/overrides applied."""
    definitions = dict(BUILTIN_MARKS)
    for name, data in (overrides or {}).items():
        definitions[name] = definition_from_dict(name, data or {})
        logger.info(f"Mark definition {name!r} loaded from configuration")

    for definition in definitions.values():
        for trigger in definition.triggers:
            if trigger.mark_name not in definitions:
                logger.warning(
                    f"Mark {definition.name!r} triggers unknown mark {trigger.mark_name!r}"
                )
    return definitions

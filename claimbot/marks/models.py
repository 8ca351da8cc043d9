"""
Tool: Claim and Mark Models
Purpose: Canonical data structures for package claims and status marks

The on-disk JSON keeps the field names of earlier releases so existing
databases stay readable:

    claims: [{"userid": 1, "username": "alice",
              "packages": [{"name": "pkg", "lastActive": 1700000000000}]}]
    marks:  [{"name": "pkg",
              "marks": [{"name": "ready",
                         "by": {"url": "...", "uid": 1, "alias": "alice"},
                         "comment": ""}]}]

Usage:
    from claimbot.marks.models import PackageClaim, PackageMarkSet, MarkRecord
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


class MarkOp(str, Enum):
    MARK = "mark"
    UNMARK = "unmark"


@dataclass
class PackageEntry:
    """A claimed package and the last time its owner touched it."""

    name: str
    last_active: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "lastActive": self.last_active}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageEntry:
        return cls(name=data["name"], last_active=int(data.get("lastActive") or now_ms()))


@dataclass
class PackageClaim:
    """
    All packages owned by one contributor.

    Attributes:
        user_id: Platform user ID of the owner
        display_name: Platform username, if any
        packages: Claimed packages, unique by name
    """

    user_id: int
    display_name: str | None = None
    packages: list[PackageEntry] = field(default_factory=list)

    def has_package(self, name: str) -> bool:
        return any(pkg.name == name for pkg in self.packages)

    @property
    def package_names(self) -> list[str]:
        return [pkg.name for pkg in self.packages]

    def to_dict(self) -> dict[str, Any]:
        return {
            "userid": self.user_id,
            "username": self.display_name,
            "packages": [pkg.to_dict() for pkg in self.packages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageClaim:
        return cls(
            user_id=int(data["userid"]),
            display_name=data.get("username"),
            packages=[PackageEntry.from_dict(pkg) for pkg in data.get("packages", [])],
        )


@dataclass(frozen=True)
class MarkSetter:
    """Who set a mark."""

    display_name: str
    source_id: int
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "uid": self.source_id, "alias": self.display_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarkSetter:
        return cls(
            display_name=str(data.get("alias", "")),
            source_id=int(data.get("uid", 0)),
            url=str(data.get("url", "")),
        )


@dataclass
class MarkRecord:
    """One status mark on a package."""

    name: str
    by: MarkSetter | None = None
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "by": self.by.to_dict() if self.by else None,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarkRecord:
        by = data.get("by")
        comment = data.get("comment")
        return cls(
            name=data["name"],
            by=MarkSetter.from_dict(by) if isinstance(by, dict) else None,
            comment=comment if isinstance(comment, str) else "",
        )


@dataclass
class PackageMarkSet:
    """All marks of one package, unique by mark name and sorted by name."""

    package_name: str
    marks: list[MarkRecord] = field(default_factory=list)

    def get(self, mark_name: str) -> MarkRecord | None:
        for mark in self.marks:
            if mark.name == mark_name:
                return mark
        return None

    @property
    def mark_names(self) -> list[str]:
        return [mark.name for mark in self.marks]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.package_name, "marks": [mark.to_dict() for mark in self.marks]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageMarkSet:
        return cls(
            package_name=data["name"],
            marks=[MarkRecord.from_dict(mark) for mark in data.get("marks", [])],
        )


@dataclass(frozen=True)
class Trigger:
    """Setting/clearing one mark sets/clears another."""

    mark_name: str
    op: MarkOp
    fires_on: MarkOp


@dataclass(frozen=True)
class MarkDefinition:
    """Static configuration of a mark kind."""

    name: str
    description: str
    help_text: str = ""
    comment_required: bool = False
    user_can_set: bool = True
    user_can_clear: bool = True
    appends_timestamp: bool = False
    triggers: tuple[Trigger, ...] = ()

    def triggers_for(self, op: MarkOp) -> list[Trigger]:
        return [t for t in self.triggers if t.fires_on == op and t.mark_name != self.name]


@dataclass(frozen=True)
class Actor:
    """
    Whoever initiates a mark or claim operation.

    Privileged actors (the bot itself, the admin) may set and clear marks
    that users cannot touch.
    """

    user_id: int
    display_name: str
    url: str = ""
    privileged: bool = False

    def as_setter(self) -> MarkSetter:
        return MarkSetter(display_name=self.display_name, source_id=self.user_id, url=self.url)

"""
Tool: Status/Mark Store
Purpose: Sole owner of the claim and mark records, plus their JSON persistence

Each record kind lives in one JSON array on disk, written to a primary file
and a backup copy. Reading falls back to the backup when the primary is
missing or corrupt; if neither can be read the store refuses to start.

Older databases used plain strings for packages and marks. Those are upgraded
in place when loaded and the upgraded records are written straight back.

Usage:
    store = PackageStore.from_settings(settings)
    store.load()
    store.put_mark("pkg", MarkRecord("ready"))
    await store.save_marks()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from claimbot.errors import StoreReadFailed, StoreWriteFailed
from claimbot.marks.models import (
    MarkRecord,
    PackageClaim,
    PackageEntry,
    PackageMarkSet,
    now_ms,
)

logger = logging.getLogger(__name__)

# Garbage written by a long-gone serialization bug
_INVALID_PACKAGE_NAME = "[object Object]"


class JsonFileStore:
    """load()/save() of one JSON array with a backup copy."""

    def __init__(self, path: Path, backup_path: Path):
        self.path = Path(path)
        self.backup_path = Path(backup_path)

    def load(self) -> list[dict[str, Any]]:
        """
        Read the records.

        Returns:
            Records from the primary file, or from the backup if the primary
            is unreadable; an empty list when neither file exists yet

        Raises:
            StoreReadFailed: If a file exists but neither copy can be parsed
        """
        if not self.path.exists() and not self.backup_path.exists():
            logger.info(f"No database at {self.path}, starting empty")
            return []

        errors = []
        for candidate in (self.path, self.backup_path):
            if not candidate.exists():
                continue
            try:
                with open(candidate, encoding="utf-8") as f:
                    records = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to read {candidate}: {e}")
                errors.append(f"{candidate.name}: {e}")
                continue
            if not isinstance(records, list):
                errors.append(f"{candidate.name}: top level is not an array")
                continue
            if candidate == self.backup_path:
                logger.warning(f"Loaded {len(records)} record(s) from backup {candidate}")
            return records

        raise StoreReadFailed(f"Failed to read the database: {'; '.join(errors)}")

    def save_sync(self, records: list[dict[str, Any]]) -> None:
        """
        Write the records to the primary file, then the backup.

        Raises:
            StoreWriteFailed: On any I/O error
        """
        payload = json.dumps(records, indent=2, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(payload, encoding="utf-8")
            self.backup_path.write_text(payload, encoding="utf-8")
        except OSError as e:
            raise StoreWriteFailed(f"Failed to write the database: {e}") from e

    async def save(self, records: list[dict[str, Any]]) -> None:
        """Async entry point; records are serialized before any suspension."""
        self.save_sync(records)


def upgrade_claims(raw: Iterable[dict[str, Any]], clock: Callable[[], int] = now_ms) -> list[PackageClaim]:
    """
    Bring claim records of any earlier schema up to date.

    - plain string packages become {"name", "lastActive": now}
    - a missing username becomes None
    - garbage package names are dropped, duplicates collapse
    """
    claims = []
    for user in raw:
        seen: set[str] = set()
        packages = []
        for pkg in user.get("packages", []):
            if isinstance(pkg, str):
                entry = PackageEntry(name=pkg, last_active=clock())
            elif isinstance(pkg, dict) and isinstance(pkg.get("name"), str):
                entry = PackageEntry(name=pkg["name"], last_active=int(pkg.get("lastActive") or clock()))
            else:
                raise TypeError(f"Unexpected package type: {pkg!r}")
            if entry.name == _INVALID_PACKAGE_NAME or entry.name in seen:
                continue
            seen.add(entry.name)
            packages.append(entry)
        claims.append(
            PackageClaim(
                user_id=int(user["userid"]),
                display_name=user.get("username"),
                packages=packages,
            )
        )
    return claims


def upgrade_marks(raw: Iterable[dict[str, Any]]) -> list[PackageMarkSet]:
    """
    Bring mark records of any earlier schema up to date.

    - plain string marks become {"name", "by": None, "comment": ""}
    - non-string comments become ""
    - entries repeating a package name are folded into one set
    - duplicate mark names keep the last occurrence
    - marks are sorted by name, empty sets pruned
    """
    packages: dict[str, dict[str, MarkRecord]] = {}
    for pkg in raw:
        by_name = packages.setdefault(pkg["name"], {})
        for mark in pkg.get("marks", []):
            if isinstance(mark, str):
                record = MarkRecord(name=mark)
            else:
                record = MarkRecord.from_dict(mark)
            by_name[record.name] = record

    return [
        PackageMarkSet(package_name=name, marks=sorted(by_name.values(), key=lambda m: m.name))
        for name, by_name in packages.items()
        if by_name
    ]


class PackageStore:
    """
    In-memory claim and mark collections.

    No other component touches the underlying lists. Mutators are plain
    synchronous methods; persistence is a separate awaited step so callers
    can complete a read-then-write sequence without suspending in between.
    """

    def __init__(
        self,
        claims_file: JsonFileStore,
        marks_file: JsonFileStore,
        clock: Callable[[], int] = now_ms,
    ):
        self.claims_file = claims_file
        self.marks_file = marks_file
        self.clock = clock
        self._claims: list[PackageClaim] = []
        self._marks: list[PackageMarkSet] = []

    @classmethod
    def from_settings(cls, settings) -> PackageStore:
        return cls(
            claims_file=JsonFileStore(settings.claims_path, settings.claims_backup_path),
            marks_file=JsonFileStore(settings.marks_path, settings.marks_backup_path),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Load both record kinds, upgrading legacy shapes, and write them back.

        Raises:
            StoreReadFailed: If a record kind cannot be read at all
            StoreWriteFailed: If the upgraded records cannot be written back
        """
        self._claims = upgrade_claims(self.claims_file.load(), self.clock)
        self._marks = upgrade_marks(self.marks_file.load())
        self._marks.sort(key=lambda s: s.package_name)
        logger.info(
            f"Loaded {len(self._claims)} claim record(s) and {len(self._marks)} marked package(s)"
        )
        self.flush_sync()

    async def save_claims(self) -> None:
        await self.claims_file.save([claim.to_dict() for claim in self._claims])

    async def save_marks(self) -> None:
        self.prune()
        await self.marks_file.save([mark_set.to_dict() for mark_set in self._marks])

    def flush_sync(self) -> None:
        """Write everything synchronously (startup upgrade and shutdown hook)."""
        self.prune()
        self.claims_file.save_sync([claim.to_dict() for claim in self._claims])
        self.marks_file.save_sync([mark_set.to_dict() for mark_set in self._marks])

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    @property
    def claims(self) -> list[PackageClaim]:
        return list(self._claims)

    def get_claim(self, user_id: int) -> PackageClaim | None:
        for claim in self._claims:
            if claim.user_id == user_id:
                return claim
        return None

    def find_owner(self, package: str) -> PackageClaim | None:
        for claim in self._claims:
            if claim.has_package(package):
                return claim
        return None

    def add_package(self, user_id: int, display_name: str | None, package: str) -> PackageClaim:
        """Add a package to a user's claim, creating the record on first claim."""
        claim = self.get_claim(user_id)
        if claim is None:
            claim = PackageClaim(user_id=user_id, display_name=display_name)
            self._claims.append(claim)
        elif display_name and claim.display_name != display_name:
            claim.display_name = display_name
        if not claim.has_package(package):
            claim.packages.append(PackageEntry(name=package, last_active=self.clock()))
        return claim

    def remove_package(self, user_id: int, package: str) -> bool:
        """Drop a package from a user's claim; the (possibly empty) record stays."""
        claim = self.get_claim(user_id)
        if claim is None or not claim.has_package(package):
            return False
        claim.packages = [pkg for pkg in claim.packages if pkg.name != package]
        return True

    # ------------------------------------------------------------------
    # Marks
    # ------------------------------------------------------------------

    @property
    def mark_sets(self) -> list[PackageMarkSet]:
        self.prune()
        return list(self._marks)

    def get_mark_set(self, package: str) -> PackageMarkSet | None:
        for mark_set in self._marks:
            if mark_set.package_name == package:
                return mark_set
        return None

    def marks_of(self, package: str) -> list[MarkRecord]:
        mark_set = self.get_mark_set(package)
        return list(mark_set.marks) if mark_set else []

    def put_mark(self, package: str, record: MarkRecord) -> None:
        """Insert a mark, replacing any mark of the same name."""
        mark_set = self.get_mark_set(package)
        if mark_set is None:
            self._marks.append(PackageMarkSet(package_name=package, marks=[record]))
            self._marks.sort(key=lambda s: s.package_name)
            return
        mark_set.marks = [m for m in mark_set.marks if m.name != record.name]
        mark_set.marks.append(record)
        mark_set.marks.sort(key=lambda m: m.name)

    def remove_mark(self, package: str, mark_name: str) -> MarkRecord | None:
        """Remove a mark; returns the removed record or None if absent."""
        mark_set = self.get_mark_set(package)
        if mark_set is None:
            return None
        removed = mark_set.get(mark_name)
        if removed is None:
            return None
        mark_set.marks = [m for m in mark_set.marks if m.name != mark_name]
        return removed

    def prune(self) -> None:
        """Drop mark sets that no longer hold any mark."""
        self._marks[:] = [mark_set for mark_set in self._marks if mark_set.marks]

    def find_by_mark_name(self, mark_name: str) -> list[PackageMarkSet]:
        self.prune()
        return [s for s in self._marks if s.get(mark_name) is not None]

    def find_by_comment(self, text: str) -> list[PackageMarkSet]:
        self.prune()
        needle = text.lower()
        return [s for s in self._marks if any(needle in m.comment.lower() for m in s.marks)]

    def find_by_marks_and_comment(self, mark_names: Iterable[str], text: str) -> list[PackageMarkSet]:
        self.prune()
        names = set(mark_names)
        needle = text.lower()
        return [
            s
            for s in self._marks
            if any(m.name in names and needle in m.comment.lower() for m in s.marks)
        ]

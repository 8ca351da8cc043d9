"""
Mark Tools Package
Package claims, status marks and the engine that keeps them consistent.
"""

from .models import (
    Actor,
    MarkDefinition,
    MarkOp,
    MarkRecord,
    MarkSetter,
    PackageClaim,
    PackageEntry,
    PackageMarkSet,
    Trigger,
)

__all__ = [
    "Actor",
    "MarkDefinition",
    "MarkOp",
    "MarkRecord",
    "MarkSetter",
    "PackageClaim",
    "PackageEntry",
    "PackageMarkSet",
    "Trigger",
]

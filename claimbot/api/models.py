"""
Pydantic models for the HTTP API responses.

Field names of the package overview follow the JSON that existing
consumers of /pkg already parse.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class WorkListEntry(BaseModel):
    """One contributor and the packages they claimed."""

    alias: str
    packages: list[str] = Field(default_factory=list)


class MarkSetterView(BaseModel):
    alias: str


class MarkView(BaseModel):
    name: str
    by: MarkSetterView
    comment: str = ""


class MarkListEntry(BaseModel):
    """Marks of one package."""

    name: str
    marks: list[MarkView] = Field(default_factory=list)


class PackageOverview(BaseModel):
    """Response of GET /pkg."""

    workList: list[WorkListEntry] = Field(default_factory=list)  # noqa: N815
    markList: list[MarkListEntry] = Field(default_factory=list)  # noqa: N815


class FlushResult(BaseModel):
    """Response of POST /flush/{chat_id}."""

    chat_id: str
    flushed: int = Field(..., description="Held messages made due")


class RuntimeStats(BaseModel):
    """Response of GET /stats."""

    queue: dict[str, int]
    dispatcher: dict[str, int | bool] | None = None
    merger: dict[str, int | bool]

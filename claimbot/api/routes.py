"""
HTTP trigger routes.

CI calls these when a package build finishes:

    GET  /delete/{pkg}/{ftbfs|leaf}?token=...   package built: auto-merge and unmark
    GET  /add/{pkg}/ftbfs?token=...             package failed: mark failing
    POST /flush/{chat_id}?token=...             send a chat's held messages now
    GET  /pkg                                   public claim and mark lists
    GET  /stats                                 queue and loop counters
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from claimbot.api.models import FlushResult, PackageOverview, RuntimeStats
from claimbot.runtime import BotRuntime

logger = logging.getLogger(__name__)

router = APIRouter()

COMPLETION_STATUSES = ("ftbfs", "leaf")
FAILURE_STATUSES = ("ftbfs",)


def get_runtime(request: Request) -> BotRuntime:
    return request.app.state.runtime


def require_token(
    token: str | None = Query(default=None),
    runtime: BotRuntime = Depends(get_runtime),
) -> None:
    """Reject the request unless ?token= matches CLAIMBOT_HTTP_API_TOKEN."""
    expected = runtime.settings.http_api_token
    if not expected or token != expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.get("/pkg", response_model=PackageOverview)
async def get_packages(runtime: BotRuntime = Depends(get_runtime)):
    """Claimed packages per contributor and marks per package."""
    return runtime.engine.public_view()


@router.get("/delete/{package}/{build_status}", response_class=PlainTextResponse)
async def package_built(
    package: str,
    build_status: str,
    runtime: BotRuntime = Depends(get_runtime),
    _: None = Depends(require_token),
):
    """
    CI reports a package as built.

    Releases the owner's claim, clears terminal marks and drops references
    to the package from other packages' dependency marks.
    """
    if build_status not in COMPLETION_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    logger.info(f"CI: {package} built ({build_status})")
    report = await runtime.engine.batch_propagate_on_completion(package)
    return "success" if report.owner_found else "package not found;success"


@router.get("/add/{package}/{build_status}", response_class=PlainTextResponse)
async def package_failed(
    package: str,
    build_status: str,
    runtime: BotRuntime = Depends(get_runtime),
    _: None = Depends(require_token),
):
    """CI reports a package as failing to build."""
    if build_status not in FAILURE_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    logger.info(f"CI: {package} failing ({build_status})")
    report = await runtime.engine.report_failure(package)
    return "success" if report.owner_found else "package not found;success"


@router.post("/flush/{chat_id}", response_model=FlushResult)
async def flush_chat(
    chat_id: str,
    runtime: BotRuntime = Depends(get_runtime),
    _: None = Depends(require_token),
):
    """Make every held message of a chat due on the merger's next tick."""
    flushed = runtime.merger.force_flush(chat_id)
    return FlushResult(chat_id=chat_id, flushed=flushed)


@router.get("/stats", response_model=RuntimeStats)
async def get_stats(runtime: BotRuntime = Depends(get_runtime)):
    return runtime.stats

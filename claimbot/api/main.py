"""
claimbot HTTP API - FastAPI Application

Hosts the CI trigger routes and owns the bot runtime: the lifespan starts the
delivery loops and the Telegram adapter and stops them on shutdown.

Usage:
    uvicorn claimbot.api.main:app --host 127.0.0.1 --port 30644

    Or through the CLI:
    claimbot serve
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from claimbot import __version__
from claimbot.api.routes import router
from claimbot.runtime import BotRuntime

logger = logging.getLogger(__name__)


def create_app(runtime_factory: Callable[[], BotRuntime] = BotRuntime) -> FastAPI:
    """
    Build the application.

    Args:
        runtime_factory: Called once at startup to build the runtime
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting claimbot...")
        runtime = runtime_factory()
        app.state.runtime = runtime
        await runtime.start()

        yield

        logger.info("Shutting down claimbot...")
        await runtime.stop()

    app = FastAPI(
        title="claimbot",
        description="Package claim and status-mark tracking bot",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()

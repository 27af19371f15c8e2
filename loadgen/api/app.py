"""
FastAPI application serving live run status next to the workload.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import uvicorn
from fastapi import FastAPI

from loadgen import __version__
from loadgen.api.routes import run as run_routes

if TYPE_CHECKING:
    from loadgen.core.driver import WorkloadDriver

logger = logging.getLogger(__name__)


def create_app(driver: Optional["WorkloadDriver"] = None) -> FastAPI:
    app = FastAPI(
        title="loadgen",
        description="Live status of a synthetic SQL workload",
        version=__version__,
    )
    app.state.driver = driver
    app.include_router(run_routes.router, tags=["run"])
    return app


class StatusServer:
    """Runs uvicorn in the current event loop for the lifetime of a run."""

    def __init__(self, app: FastAPI, *, host: str, port: int, log_level: str = "warning"):
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                log_level=log_level.lower(),
                # Logging is configured by the CLI entry point.
                log_config=None,
            )
        )
        self._task: Optional[asyncio.Task[None]] = None
        self.host = host
        self.port = port

    async def start(self) -> None:
        self._task = asyncio.create_task(self._server.serve())
        logger.info("Status API listening on http://%s:%d", self.host, self.port)

    async def stop(self, *, timeout_seconds: float = 5.0) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._task, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Status API did not stop within %.1fs", timeout_seconds)
            self._task.cancel()
        self._task = None

from __future__ import annotations

import asyncio
import shutil
from enum import Enum
from typing import Optional

from app.core.config import Settings
from app.core.logging import configure_logging

logger = configure_logging(__name__)

_CLI_TOOLS = {"ghostscript": "gs", "pdftoppm": "pdftoppm"}


class LifecycleState(str, Enum):
    STARTING = "STARTING"
    READY = "READY"
    FAILED = "FAILED"


class AppLifecycle:
    """Readiness state driven by a supervised startup task."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.state = LifecycleState.STARTING
        self._task: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self.state is LifecycleState.READY

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self._run(), name="startup")
        return self._task

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        try:
            if self.settings.startup_delay_seconds > 0:
                await asyncio.sleep(self.settings.startup_delay_seconds)
            self._check_tools()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.state = LifecycleState.FAILED
            logger.exception("Startup task failed")
            return
        self.state = LifecycleState.READY
        logger.info("Service ready")

    def _check_tools(self) -> None:
        for strategy in self.settings.raster_strategies:
            binary = _CLI_TOOLS.get(strategy)
            if binary is None:
                continue
            if shutil.which(binary):
                logger.info("Rasterizer %s available (%s)", strategy, binary)
            else:
                logger.warning("Rasterizer %s unavailable: %s not on PATH", strategy, binary)

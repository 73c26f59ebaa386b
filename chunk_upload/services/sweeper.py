"""
Background expiry of abandoned and merged upload sessions.
"""
import asyncio
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from .upload_service import UploadService

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Runs ``UploadService.sweep`` every ``interval`` seconds on the event loop."""

    def __init__(self, service: UploadService, interval: float):
        self.service = service
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info(f"Session sweeper started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")

    async def run_once(self):
        # Directory removal blocks, keep it off the event loop
        return await run_in_threadpool(self.service.sweep)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")

"""
Lifecycle shared by the background workers: one asyncio task per worker,
a tick every interval, and a stop that waits for the task to wind down.
"""

import asyncio
from typing import Optional

import structlog

from seatkeeper.core.logging import get_logger


class BackgroundWorker:
    name = "worker"

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self.logger = get_logger(f"seatkeeper.workers.{self.name}")
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name=self.name)
        self.logger.info("worker_started", worker=self.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        await self.on_stop()
        self.logger.info("worker_stopped", worker=self.name)

    async def tick(self) -> None:
        raise NotImplementedError

    async def on_stop(self) -> None:
        pass

    async def _run(self) -> None:
        structlog.contextvars.bind_contextvars(worker=self.name)
        while not self._stopping.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception("worker_tick_failed", error=str(e))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

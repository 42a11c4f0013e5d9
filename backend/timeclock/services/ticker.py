"""
Ticker

A single cooperative asyncio loop that calls a recompute callback once per
interval. The owner (the lifecycle controller) starts it while a session is
active and stops it on every state transition; starting it again first
cancels the previous loop, so two loops never run for one owner.
"""
import asyncio
import logging
from typing import Callable, Optional

from timeclock.services.logging import session_logger

logger = logging.getLogger(__name__)


class Ticker:
    def __init__(self, callback: Callable[[], None], interval: float = 1.0, name: str = "ticker"):
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0
        self.failed_ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Must be called from inside a running event loop."""
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """Cancel the loop if it is running. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def shutdown(self) -> None:
        """Cancel the loop and wait until it has really finished."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def tick(self) -> bool:
        """
        Run the callback once.

        A failing recomputation only skips this tick; the loop keeps going.
        """
        try:
            self.callback()
        except Exception as e:
            self.failed_ticks += 1
            logger.warning(f"Ticker '{self.name}' skipped a tick: {e}")
            session_logger.tick_failed(ticker=self.name, error=str(e))
            return False
        self.ticks += 1
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

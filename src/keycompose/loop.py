"""Render loop: one compositor frame per display refresh."""

import asyncio
import logging

logger = logging.getLogger(__name__)


DEFAULT_REFRESH_RATE = 60


class RenderLoop:
    """Cooperatively scheduled render ticks on the running asyncio loop.

    Each tick calls ``compositor.render_frame()`` and then suspends until
    the next refresh boundary. Nothing else inside a tick awaits.
    """

    def __init__(self, compositor, refresh_rate: float = DEFAULT_REFRESH_RATE, sleep=asyncio.sleep):
        if refresh_rate <= 0:
            raise ValueError(f"refresh_rate must be > 0, got {refresh_rate}")
        self.compositor = compositor
        self.interval = 1.0 / refresh_rate
        self.frames_rendered = 0
        self._sleep = sleep
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        while True:
            self.compositor.render_frame()
            self.frames_rendered += 1
            await self._sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop (idempotent)."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self.run())
            logger.debug("Render loop started at %.1f Hz", 1.0 / self.interval)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

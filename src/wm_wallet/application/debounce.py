"""Timer-backed coalescing primitive.

Every `trigger()` restarts the timer; when the timer finally fires the
action runs exactly once, no matter how many triggers arrived in the window.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self._delay = delay
        self._action = action
        self._timer: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        """Must be called from inside the running event loop."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Drop a pending fire and cancel actions already running."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._running):
            task.cancel()

    async def wait_idle(self) -> None:
        """Wait for actions that already started (not for a pending timer)."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._action())
        self._running.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: "asyncio.Task[None]") -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced action failed", exc_info=exc)

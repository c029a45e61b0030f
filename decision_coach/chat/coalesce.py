"""Coalescing timer: bursts of requests collapse into one delayed run."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional


class CoalescingTimer:
    """Runs ``callback`` once, ``delay`` seconds after the most recent ``schedule()``.

    Holds a single pending handle; every ``schedule()`` replaces it.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: float,
        *,
        name: str = "coalesce",
    ) -> None:
        self.callback = callback
        self.delay = delay
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(f"decision_coach.{name}")

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire_later(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Run a pending callback now instead of waiting for the window."""

        if self.pending:
            self.cancel()
            await self._invoke()

    async def wait(self) -> None:
        """Wait until the pending run (if any) and any run in progress finish."""

        for task in (self._task, self._running):
            if task is not None and not task.done():
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        self._running = asyncio.current_task()
        try:
            await self._invoke()
        finally:
            self._running = None

    async def _invoke(self) -> None:
        try:
            await self.callback()
        except Exception:  # noqa: BLE001
            self.logger.warning("Coalesced callback failed", exc_info=True)


__all__ = ["CoalescingTimer"]

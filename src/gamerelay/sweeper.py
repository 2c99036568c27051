"""Periodic eviction of long-silent endpoints.

The registry only ages entries out logically; without this task a server
facing many short-lived source ports would grow its map forever. The sweep
runs on its own timer, away from the receive path, and only removes
entries older than a multiple of the activity window, so anything a
broadcast could still reach is never touched.
"""

from __future__ import annotations

import asyncio
import logging

from gamerelay.registry import EndpointRegistry

logger = logging.getLogger("gamerelay.sweeper")


class RegistrySweeper:
    """Background task calling ``EndpointRegistry.sweep`` every *interval* seconds.

    Parameters
    ----------
    registry : EndpointRegistry
        Registry to prune.
    interval : float
        Seconds between sweeps.
    max_age : float
        Entries not refreshed for longer than this are removed.
    """

    def __init__(self, registry: EndpointRegistry, *, interval: float, max_age: float) -> None:
        if interval <= 0:
            msg = f"interval must be > 0, got {interval}"
            raise ValueError(msg)
        self._registry = registry
        self._interval = interval
        self._max_age = max_age
        self._task: asyncio.Task[None] | None = None
        self.evicted = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        removed = self._registry.sweep(self._max_age)
        self.evicted += removed
        if removed:
            logger.info(
                "Evicted %d endpoint(s) silent for more than %.0fs (%d remaining)",
                removed,
                self._max_age,
                len(self._registry),
            )
        return removed

    async def _tick(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                self.sweep_once()
        except asyncio.CancelledError:
            pass

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._tick())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

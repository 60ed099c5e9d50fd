"""Periodic, non-overlapping task loops for the two engines.

Each loop awaits its cycle to completion before sleeping, so a run never
overlaps the previous run of the same task. Exceptions escaping a cycle are
logged and the loop always reschedules.
"""
import asyncio
from typing import Awaitable, Callable

from .logging_setup import logger


class PeriodicTask:
    """Run an async callback every ``interval_seconds`` until stopped."""

    def __init__(self, name: str, callback: Callable[[], Awaitable], interval_seconds: float):
        self.name = name
        self.callback = callback
        self.interval = interval_seconds
        self.runs = 0
        self.failures = 0

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self.callback()
        except Exception:
            self.failures += 1
            logger.exception(f"Periodic task failed | task={self.name} run={self.runs}")

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info(f"Periodic task started | task={self.name} interval={self.interval}s")
        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Periodic task stopped | task={self.name} runs={self.runs} failures={self.failures}")


class BotRunner:
    """Run the decision and trailing-stop loops concurrently."""

    def __init__(self, decision_task: PeriodicTask, trailing_task: PeriodicTask):
        self.decision_task = decision_task
        self.trailing_task = trailing_task
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Run both loops until ``stop()`` is called."""
        await asyncio.gather(
            self.decision_task.run(self._stop_event),
            self.trailing_task.run(self._stop_event),
        )

    async def stop(self) -> None:
        """Signal both loops to stop after their current cycle."""
        self._stop_event.set()

    async def run_for(self, seconds: float) -> None:
        """Run both loops for a fixed duration, then stop."""
        task = asyncio.ensure_future(self.start())
        await asyncio.sleep(seconds)
        await self.stop()
        await task

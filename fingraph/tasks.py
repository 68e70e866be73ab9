"""Scheduled refresh of exchange rates and market prices.

Each job runs on the application's event loop at a fixed interval. Ticks are
guarded by a Redis lock so that only one process refreshes a given data set
at a time; a tick whose lock is held elsewhere is skipped.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.engine import Engine

from fingraph.config import Settings
from fingraph.exchange import update_exchange
from fingraph.locks import DistributedLock
from fingraph.price_history import update_coin_price, update_stock_price

logger = logging.getLogger(__name__)

TASK_PREFIX = "{task}"


@dataclass(frozen=True)
class PeriodicTask:
    name: str
    interval: float
    lock_ttl: int
    job: Callable[[], str]

    @property
    def lock_key(self) -> str:
        return f"{TASK_PREFIX}:{self.name}"


def build_tasks(engine: Engine, settings: Settings) -> list[PeriodicTask]:
    return [
        PeriodicTask("updateExchange", 60 * 60, 600, lambda: update_exchange(engine, settings)),
        PeriodicTask("updateCoinPrice", 5 * 60, 300, lambda: update_coin_price(engine, settings)),
        PeriodicTask("updateStockPrice", 10 * 60, 300, lambda: update_stock_price(engine, settings)),
    ]


def run_locked(lock: DistributedLock, task: PeriodicTask) -> str | None:
    """Run one tick of ``task``; ``None`` when another process holds the lock."""
    if not lock.acquire(task.lock_key, task.lock_ttl):
        logger.info("Skipping %s: lock %s is held elsewhere", task.name, task.lock_key)
        return None
    try:
        result = task.job()
        logger.info("%s finished: %s", task.name, result)
        return result
    finally:
        lock.release(task.lock_key)


class TaskScheduler:
    def __init__(self, tasks: list[PeriodicTask], lock: DistributedLock) -> None:
        self.tasks = tasks
        self.lock = lock
        self._running: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not handle.done() for handle in self._running)

    def start(self) -> None:
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._running = [loop.create_task(self._run_forever(task), name=task.name) for task in self.tasks]
        logger.info("Scheduler started with %s tasks", len(self.tasks))

    async def stop(self) -> None:
        for handle in self._running:
            handle.cancel()
        for handle in self._running:
            try:
                await handle
            except asyncio.CancelledError:
                logger.debug("Task %s cancelled", handle.get_name())
        self._running = []

    async def tick(self, task: PeriodicTask) -> str | None:
        try:
            return await asyncio.to_thread(run_locked, self.lock, task)
        except Exception:
            logger.exception("Scheduled task %s failed", task.name)
            return None

    async def _run_forever(self, task: PeriodicTask) -> None:
        while True:
            await self.tick(task)
            await asyncio.sleep(task.interval)

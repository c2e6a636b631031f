"""Background balance polling."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

BalanceCallback = Callable[[str, int], Any]
Fetch = Callable[[], Awaitable[tuple[str, int]]]


class BalanceMonitor:
    """Poll ``fetch`` and invoke ``callback`` on a balance change or a new block.

    A failed poll doubles the wait before the next one. :meth:`stop` only
    suppresses the next iteration; a poll already in flight completes.
    """

    def __init__(
        self,
        fetch: Fetch,
        callback: BalanceCallback,
        *,
        interval: float,
        name: str = "balance",
    ) -> None:
        if interval <= 0:
            raise ValueError("Monitor interval must be positive")
        self._fetch = fetch
        self._callback = callback
        self._interval = interval
        self._name = name
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._last_balance: str | None = None
        self._last_block = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> Callable[[], None]:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info("Started %s monitor every %ss", self._name, self._interval)
        return self.stop

    def stop(self) -> None:
        if not self._stop.is_set():
            self._stop.set()
            logger.info("Stopped %s monitor", self._name)

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while not self._stop.is_set():
            delay = self._interval
            try:
                await self._poll()
            except Exception as exc:
                logger.warning("%s monitor poll failed: %s", self._name, exc)
                delay = self._interval * 2

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def _poll(self) -> None:
        balance, block_number = await self._fetch()
        if self._stop.is_set():
            return
        if balance != self._last_balance or block_number > self._last_block:
            self._last_balance = balance
            self._last_block = block_number
            outcome = self._callback(balance, block_number)
            if inspect.isawaitable(outcome):
                await outcome

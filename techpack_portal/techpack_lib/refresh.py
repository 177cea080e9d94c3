"""Background polling that keeps the ticket registry current."""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Set

from .errors import RequestFailure
from .tickets import TicketRegistry


class PeriodicRefresher:
    """Reload all tickets, then every watched order, every ``interval`` seconds."""

    def __init__(
        self,
        registry: TicketRegistry,
        interval: float,
        order_ids: Iterable[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.registry = registry
        self.interval = interval
        self.order_ids: Set[str] = set(order_ids)
        self.logger = logger or logging.getLogger(__name__)
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def watch(self, order_id: str) -> None:
        self.order_ids.add(order_id)

    def unwatch(self, order_id: str) -> None:
        self.order_ids.discard(order_id)

    async def refresh_once(self) -> bool:
        """Run one refresh round; returns False if any fetch failed."""
        ok = True
        try:
            await self.registry.load_all()
        except RequestFailure as exc:
            self.logger.warning("Ticket refresh failed: %s", exc)
            ok = False
        for order_id in sorted(self.order_ids):
            try:
                await self.registry.load_order(order_id)
            except RequestFailure as exc:
                self.logger.warning("Ticket refresh for order %s failed: %s", order_id, exc)
                ok = False
        return ok

    async def _loop(self) -> None:
        while True:
            await self.refresh_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "PeriodicRefresher":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

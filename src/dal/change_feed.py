"""Polling change feed.

A ``ChangePoller`` owns one background task that repeatedly asks its adapter for
changes after a cursor. The cursor only moves past an event once the callback
has returned for it, so a failing callback sees the same event again on the next
tick instead of losing it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from common.errors import PolyrestError
from schema.change import ChangeEvent

if TYPE_CHECKING:
    from dal.adapter import DatabaseAdapter

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by ``subscribe_to_changes``."""

    def __init__(self, poller: "ChangePoller") -> None:
        """Wrap a started poller."""
        self._poller = poller

    @property
    def is_active(self) -> bool:
        """True while the polling task is running."""
        return self._poller.is_running

    @property
    def cursor(self) -> Any:
        """Position of the last successfully delivered event."""
        return self._poller.cursor

    async def unsubscribe(self) -> None:
        """Cancel polling and wait for the task to finish."""
        await self._poller.stop()


class ChangePoller:
    """Cancellable polling loop with an explicit delivery cursor."""

    def __init__(
        self,
        adapter: "DatabaseAdapter",
        table: str,
        schema: str,
        callback: ChangeCallback,
        interval: float = 1.0,
        cursor: Any = None,
    ) -> None:
        """Initialize a poller; ``cursor`` resumes after a known position."""
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")
        self._adapter = adapter
        self._table = table
        self._schema = schema
        self._callback = callback
        self._interval = interval
        self._cursor = cursor
        self._task: Optional[asyncio.Task] = None

    @property
    def cursor(self) -> Any:
        """Position of the last successfully delivered event."""
        return self._cursor

    @property
    def is_running(self) -> bool:
        """True while the background task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> Subscription:
        """Start the background task and return its subscription handle."""
        if self.is_running:
            raise RuntimeError(f"Change poller for {self._schema}.{self._table} already running")
        self._task = asyncio.create_task(
            self._run(), name=f"change-feed:{self._schema}.{self._table}"
        )
        logger.info("Subscribed to changes on %s.%s", self._schema, self._table)
        return Subscription(self)

    async def stop(self) -> None:
        """Cancel the background task and wait for it."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Unsubscribed from changes on %s.%s", self._schema, self._table)

    async def poll_once(self) -> int:
        """Fetch and deliver one batch; return how many events were delivered.

        Delivery stops at the first callback failure, which propagates with the
        cursor left on the last delivered event.
        """
        events = await self._adapter.fetch_changes(self._table, self._schema, self._cursor)
        delivered = 0
        for event in events:
            result = self._callback(event)
            if inspect.isawaitable(result):
                await result
            self._cursor = event.position
            delivered += 1
        return delivered

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except PolyrestError as exc:
                logger.warning(
                    "Change poll failed for %s.%s: %s", self._schema, self._table, exc.message
                )
            except Exception:
                logger.exception(
                    "Change callback failed for %s.%s at cursor %r",
                    self._schema,
                    self._table,
                    self._cursor,
                )
            await asyncio.sleep(self._interval)

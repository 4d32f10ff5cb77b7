"""Fire-and-forget delivery of notifications."""

import asyncio
import logging
from typing import Any

from oracle_gateway.notify.protocol import NotificationSink

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Schedules ``sink.notify`` calls as background tasks.

    Callers never await delivery; a failing sink is logged and ignored.
    """

    def __init__(self, sink: NotificationSink | None) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task[bool]] = set()

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(kind, payload))
        except RuntimeError:
            logger.debug(f"No running loop, dropping {kind} notification")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, kind: str, payload: dict[str, Any]) -> bool:
        assert self._sink is not None
        try:
            return await self._sink.notify(kind, payload)
        except Exception as e:
            # NOTE: notifications never affect job outcomes
            logger.warning(f"Notification {kind} failed: {e}")
            return False

    async def drain(self) -> None:
        """Wait for notifications already emitted (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

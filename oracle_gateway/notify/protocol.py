"""Notification sink protocol."""

from typing import Any, Protocol


class NotificationSink(Protocol):
    async def notify(self, kind: str, payload: dict[str, Any]) -> bool:
        """Best-effort alert; returns False when not delivered."""
        ...

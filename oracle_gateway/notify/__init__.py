"""Notification sinks.

- protocol: NotificationSink contract
- discord: Discord webhook embeds per alert kind
- dispatch: fire-and-forget delivery used by the job bodies and the scheduler
"""

from oracle_gateway.notify.discord import AlertKind, DiscordNotifier
from oracle_gateway.notify.dispatch import NotificationDispatcher
from oracle_gateway.notify.protocol import NotificationSink

__all__ = ["AlertKind", "DiscordNotifier", "NotificationDispatcher", "NotificationSink"]

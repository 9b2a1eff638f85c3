"""Outbound channel abstraction layer."""

from lunar.notifications.channels import NotificationChannel
from lunar.notifications.context import MessageContext
from lunar.notifications.router import NotificationRouter

__all__ = [
    "MessageContext",
    "NotificationChannel",
    "NotificationRouter",
]

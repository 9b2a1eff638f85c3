"""NotificationRouter — outbound delivery for proactive messages.

Agent replies go straight back through the front-end that received the
message. Everything else (``send_message``, scheduled jobs) goes through
this router, which picks a channel by name or falls back to the default.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from lunar.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Channel table plus default-channel fallback.

    Resolution order: the explicitly requested channel, then the default,
    then the sole registered channel if there is exactly one.
    """

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._default = ""

    def register_channel(self, channel: NotificationChannel) -> None:
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel
        logger.info("Registered notification channel %s", channel.name)

    def set_default_channel(self, name: str) -> None:
        if name not in self._channels:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default = name

    def get_channel(self, name: str) -> NotificationChannel | None:
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        return list(self._channels)

    @property
    def default_channel_name(self) -> str:
        return self._default

    def _pick(self, requested: str | None, action: str) -> NotificationChannel | None:
        if requested:
            channel = self._channels.get(requested)
        elif self._default:
            channel = self._channels.get(self._default)
        elif len(self._channels) == 1:
            channel = next(iter(self._channels.values()))
        else:
            channel = None
        if channel is None:
            logger.warning("No channel for %s (requested=%s)", action, requested)
        return channel

    async def send(self, user_id: str, message: str, *, channel: str | None = None) -> bool:
        """Deliver text. False when no channel resolves or the channel fails."""
        target = self._pick(channel, "send")
        return await target.send(user_id, message) if target else False

    async def send_file(
        self,
        user_id: str,
        path: Path,
        *,
        channel: str | None = None,
        caption: str | None = None,
    ) -> bool:
        """Deliver a local file as a document."""
        target = self._pick(channel, "send_file")
        return await target.send_file(user_id, path, caption=caption) if target else False

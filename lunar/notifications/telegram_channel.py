"""Telegram implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    import telegram

logger = logging.getLogger(__name__)


class TelegramChannel:
    """Sends messages and files via the Telegram Bot API."""

    def __init__(self, bot: telegram.Bot) -> None:
        self._bot = bot

    @property
    def name(self) -> str:
        return "telegram"

    async def send(self, user_id: str, message: str) -> bool:
        """Send a plain text message to a Telegram chat."""
        try:
            await self._bot.send_message(chat_id=int(user_id), text=message)
            return True
        except Exception:
            logger.exception("TelegramChannel.send failed for user_id=%s", user_id)
            return False

    async def send_file(
        self,
        user_id: str,
        path: Path,
        *,
        caption: str | None = None,
    ) -> bool:
        """Upload a local file as a document."""
        try:
            with path.open("rb") as fh:
                await self._bot.send_document(
                    chat_id=int(user_id),
                    document=fh,
                    filename=path.name,
                    caption=caption,
                )
            return True
        except Exception:
            logger.exception("TelegramChannel.send_file failed for user_id=%s", user_id)
            return False

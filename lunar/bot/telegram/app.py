"""Telegram application factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram.ext import Application, CommandHandler, MessageHandler, filters

from lunar.bot.telegram.handlers import (
    ChatState,
    handle_clear,
    handle_document,
    handle_message,
    handle_model,
    handle_start,
    handle_status,
    handle_undo,
)
from lunar.config import settings
from lunar.notifications.telegram_channel import TelegramChannel

if TYPE_CHECKING:
    from lunar.runtime import Runtime

logger = logging.getLogger(__name__)


def _init_notifications(app: Application, runtime: Runtime) -> None:
    """Register the Telegram channel and make it the default."""
    router = runtime.router
    router.register_channel(TelegramChannel(app.bot))
    router.set_default_channel("telegram")
    logger.info(
        "Notifications initialized: channels=%s, default=%s",
        router.list_channels(),
        router.default_channel_name,
    )


def create_app(runtime: Runtime) -> Application:
    """Build and configure the Telegram application around a shared runtime."""
    app = Application.builder().token(settings.telegram_bot_token).concurrent_updates(True).build()
    app.bot_data["runtime"] = runtime
    app.bot_data["chat_state"] = ChatState()

    _init_notifications(app, runtime)

    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(CommandHandler("clear", handle_clear))
    app.add_handler(CommandHandler("undo", handle_undo))
    app.add_handler(CommandHandler("status", handle_status))
    app.add_handler(CommandHandler("model", handle_model))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    app.add_handler(MessageHandler(filters.Document.ALL, handle_document))

    return app

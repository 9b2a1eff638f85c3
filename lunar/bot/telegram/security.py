"""Chat allowlist security gate."""

import logging

from telegram import Update

from lunar.config import settings

logger = logging.getLogger(__name__)


def is_allowed(update: Update) -> bool:
    """Check if the update comes from an allowed chat.

    Returns False (silently rejected) for unknown chats, and for every chat
    when the allowlist is empty.
    """
    chat = update.effective_chat
    if chat is None:
        return False

    allowed = settings.get_allowed_chat_ids()
    if not allowed:
        logger.warning("ALLOWED_CHAT_IDS is empty — rejecting all messages")
        return False

    if str(chat.id) not in allowed:
        logger.warning("Blocked message from unauthorized chat: %s", chat.id)
        return False
    return True

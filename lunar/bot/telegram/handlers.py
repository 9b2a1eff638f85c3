"""Telegram message handlers for group and private chats.

Messages reach the agent only when they start with the hotword (``@ai``)
or when the chat has been switched to always-on with ``@ai_start``.
``@ai_stop`` switches it back. Text attachments are kept in memory and
announced to the model with a short snippet.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from telegram.constants import ChatAction

from lunar.bot.telegram.security import is_allowed
from lunar.config import settings
from lunar.llm.agent import FAILURE_MESSAGE
from lunar.llm.models import MODEL_MAP, friendly
from lunar.tools.messaging_tools import make_read_file_tool, make_send_file_tool

if TYPE_CHECKING:
    from telegram import Document, Update
    from telegram.ext import ContextTypes

    from lunar.runtime import Runtime

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200


@dataclass
class ChatState:
    """Per-process Telegram state shared by all handlers."""

    always_on: set[str] = field(default_factory=set)
    file_contexts: dict[str, str] = field(default_factory=dict)


def _runtime(context: ContextTypes.DEFAULT_TYPE) -> Runtime:
    return context.bot_data["runtime"]


def _state(context: ContextTypes.DEFAULT_TYPE) -> ChatState:
    return context.bot_data.setdefault("chat_state", ChatState())


def _format_size(size_bytes: int) -> str:
    """Format byte count as a human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def extract_prompt(text: str, chat_id: str, state: ChatState) -> str | None:
    """Return the text to hand to the agent, or None when it is not addressed to it."""
    stripped = text.strip()
    hotword = settings.ai_hotword
    if stripped.lower().startswith(hotword.lower()):
        return stripped[len(hotword) :].strip() or stripped
    if chat_id in state.always_on:
        return stripped
    return None


# -- Commands ------------------------------------------------------------------


async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — greet the user."""
    if not is_allowed(update):
        return

    await update.message.reply_text(
        f"Hey! I'm Lunar. Start a message with {settings.ai_hotword} to talk to me, "
        f"or send {settings.start_command} to make me answer everything here."
    )


async def handle_clear(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clear — reset conversation history, keeping the system prompt."""
    if not is_allowed(update):
        return

    session = _runtime(context).sessions.get_or_create(str(update.effective_chat.id))
    count = session.reset()
    await update.message.reply_text(f"Cleared {count} messages. Starting fresh.")


async def handle_undo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /undo — drop the last message from the conversation."""
    if not is_allowed(update):
        return

    session = _runtime(context).sessions.get(str(update.effective_chat.id))
    removed = session.remove_last() if session else None
    if removed is None:
        await update.message.reply_text("Nothing to undo.")
    else:
        await update.message.reply_text(f"Removed the last {removed.role} message.")


async def handle_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status — show bot health info."""
    if not is_allowed(update):
        return

    runtime = _runtime(context)
    chat_id = str(update.effective_chat.id)
    session = runtime.sessions.get_or_create(chat_id)
    mode = "always on" if chat_id in _state(context).always_on else f"{settings.ai_hotword} only"

    lines = [
        "Lunar status",
        f"Chat model: {friendly(runtime.models.get_chat_model())}",
        f"Messages in context: {len(session.messages)}/{session.max_history}",
        f"Mode: {mode}",
        f"Busy: {'yes' if runtime.sessions.is_busy(chat_id) else 'no'}",
    ]
    await update.message.reply_text("\n".join(lines))


async def handle_model(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /model — view or switch the chat model."""
    if not is_allowed(update):
        return

    mm = _runtime(context).models
    args = context.args

    if not args:
        await update.message.reply_text(
            f"Chat model: {friendly(mm.get_chat_model())}\nOptions: {', '.join(MODEL_MAP)}"
        )
        return

    name = args[0].lower()
    if not mm.set_chat_model(name):
        await update.message.reply_text(
            f"Unknown model '{name}'. Valid options: {', '.join(MODEL_MAP)}"
        )
        return
    await update.message.reply_text(f"Chat model → {friendly(mm.get_chat_model())}")


# -- Messages ------------------------------------------------------------------


async def _process_message(
    update: Update, context: ContextTypes.DEFAULT_TYPE, prompt: str
) -> None:
    """Run the agent for one message and reply with its answer, if any."""
    runtime = _runtime(context)
    chat_id = str(update.effective_chat.id)

    extra_tools = [make_read_file_tool(_state(context).file_contexts)]
    channel = runtime.router.get_channel("telegram")
    if channel is not None:
        extra_tools.append(make_send_file_tool(channel, chat_id))

    with contextlib.suppress(Exception):
        await context.bot.send_chat_action(
            chat_id=update.effective_chat.id, action=ChatAction.TYPING
        )

    try:
        result = await runtime.agent.run(
            chat_id, prompt, channel="telegram", extra_tools=extra_tools
        )
    except Exception:
        logger.exception("Error generating response for %s", chat_id)
        await update.message.reply_text(FAILURE_MESSAGE)
        return

    logger.info("Turn for %s ended: %s after %d round(s)", chat_id, result.status, result.rounds)
    if result.has_reply:
        await update.message.reply_text(result.text)


async def _toggle_mode(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str) -> bool:
    """Handle the start/stop hotwords. Returns True if *text* was one of them."""
    chat_id = str(update.effective_chat.id)
    command = text.strip().lower()
    state = _state(context)
    if command == settings.start_command.lower():
        state.always_on.add(chat_id)
        logger.info("AI chat started with %s", chat_id)
        await update.message.reply_text("AI replies enabled for this chat.")
        return True
    if command == settings.stop_command.lower():
        state.always_on.discard(chat_id)
        logger.info("AI chat stopped with %s", chat_id)
        await update.message.reply_text("AI replies disabled for this chat.")
        return True
    return False


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle incoming text messages."""
    if not is_allowed(update):
        return

    text = update.message.text or ""
    if await _toggle_mode(update, context, text):
        return

    chat_id = str(update.effective_chat.id)
    prompt = extract_prompt(text, chat_id, _state(context))
    if prompt is None:
        logger.debug("Ignoring message from %s without hotword", chat_id)
        return

    logger.info("Message from %s: %s", chat_id, prompt[:80])
    await _process_message(update, context, prompt)


async def _read_text_attachment(document: Document, state: ChatState) -> str | None:
    """Store a text/* attachment and return the notice shown to the model."""
    name = document.file_name or "Untitled"
    mime_type = document.mime_type or ""
    if not mime_type.startswith("text/"):
        return None
    if document.file_size and document.file_size > settings.max_attachment_bytes:
        return f"[File skipped: {name} (Too large: {_format_size(document.file_size)})]"

    tg_file = await document.get_file()
    data = await tg_file.download_as_bytearray()
    content = bytes(data).decode("utf-8", errors="replace")
    if not content.strip():
        return None

    file_id = uuid.uuid4().hex[:12]
    state.file_contexts[file_id] = content
    preview = content[:SNIPPET_LENGTH].replace("\n", " ")
    return f"[File Received: {name} (ID: {file_id}) - Type: {mime_type}]\nSnippet: {preview}..."


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle document uploads. The caption carries the hotword."""
    if not is_allowed(update):
        return

    chat_id = str(update.effective_chat.id)
    state = _state(context)
    caption = update.message.caption or ""
    prompt = extract_prompt(caption, chat_id, state)
    if prompt is None:
        return

    try:
        notice = await _read_text_attachment(update.message.document, state)
    except Exception as exc:
        logger.exception("Failed to read attachment from %s", chat_id)
        notice = f"[Error reading file: {exc}]"

    if notice:
        prompt = f"{prompt}\n\n{notice}" if prompt else notice
    await _process_message(update, context, prompt)

"""Messaging tools — proactive sends and channel-bound file tools.

``send_message`` is a registry tool wired at startup. ``send_file`` and
``read_received_file`` are built per inbound message by the factories at
the bottom, so they are bound to the chat (or file map) they came from.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import Field

from lunar.tools.base import BaseTool, ToolParams, ToolResult
from lunar.tools.registry import ToolDef, registry

if TYPE_CHECKING:
    from lunar.notifications.channels import NotificationChannel
    from lunar.notifications.router import NotificationRouter
    from lunar.people.store import PeopleStore

logger = logging.getLogger(__name__)

_CATEGORY = "messaging"

# Set by init_messaging_tools() during startup.
_router: NotificationRouter | None = None
_people: PeopleStore | None = None


def init_messaging_tools(router: NotificationRouter, people: PeopleStore) -> None:
    global _router, _people  # noqa: PLW0603
    _router = router
    _people = people


def _get_deps() -> tuple[NotificationRouter, PeopleStore]:
    if _router is None or _people is None:
        msg = "Messaging tools not initialised — call init_messaging_tools() first"
        raise RuntimeError(msg)
    return _router, _people


# -- send_message --------------------------------------------------------------


class SendMessageParams(ToolParams):
    to: str = Field(
        description="Name of a known person, or a raw chat id / channel address"
    )
    message: str = Field(description="The text message to send")
    file_path: str | None = Field(
        default=None, description="Optional absolute path of a file to attach"
    )


@registry.tool(
    name="send_message",
    description=(
        "Send a message, and optionally a file, to a known person or chat id. "
        "Use this to proactively contact someone, e.g. from a scheduled task."
    ),
    category=_CATEGORY,
    params_model=SendMessageParams,
)
async def send_message(to: str, message: str, file_path: str | None = None) -> ToolResult:
    router, people = _get_deps()

    address = to
    person = await people.find_by_name(to)
    if person is not None:
        if not person.channel_address:
            return ToolResult(error=f'Person "{to}" is known but has no channel address.')
        address = person.channel_address
        logger.info("Resolved name %r to %s", to, address)

    if file_path:
        path = Path(file_path).expanduser().resolve()
        if not path.is_file():
            return ToolResult(error=f"File not found at {path}")
        sent = await router.send_file(address, path, caption=message)
    else:
        sent = await router.send(address, message)

    if not sent:
        return ToolResult(error=f"Could not deliver message to {to}.")
    return ToolResult(data=f"Sent message to {to} ({address})")


# -- channel-bound tools -------------------------------------------------------


class SendFileParams(ToolParams):
    file_path: str = Field(description="Absolute path to the file to send")
    caption: str | None = Field(default=None, description="Optional caption for the file")


class SendFileTool(BaseTool):
    """Sends a local file back to the chat the current message came from."""

    name = "send_file"
    description = (
        "Send a file to the user in this chat. Use this when the user asks for "
        "a file or when a tool produces a file that should be shared."
    )
    category = _CATEGORY
    params_model = SendFileParams

    def __init__(self, channel: NotificationChannel, chat_id: str) -> None:
        self._channel = channel
        self._chat_id = chat_id

    async def execute(self, **kwargs: Any) -> ToolResult:
        path = Path(kwargs["file_path"]).expanduser().resolve()
        if not path.is_file():
            return ToolResult(error=f"File not found at {path}")
        caption = kwargs.get("caption") or path.name
        if not await self._channel.send_file(self._chat_id, path, caption=caption):
            return ToolResult(error=f"Error sending file {path.name}")
        logger.info("Sent file to %s: %s", self._chat_id, path)
        return ToolResult(data=f"File sent successfully: {path.name}")


class ReadFileParams(ToolParams):
    file_id: str = Field(description="The ID given in the file-received notice")


class ReadReceivedFileTool(BaseTool):
    """Returns the full text of a file previously received in chat."""

    name = "read_received_file"
    description = (
        "Read the full content of a file the user sent. Use this when the "
        "snippet in the file-received notice is not enough."
    )
    category = _CATEGORY
    params_model = ReadFileParams

    def __init__(self, file_contexts: dict[str, str]) -> None:
        self._file_contexts = file_contexts

    async def execute(self, **kwargs: Any) -> ToolResult:
        content = self._file_contexts.get(kwargs["file_id"])
        if content is None:
            return ToolResult(
                error=(
                    "File content not found or expired. "
                    "It may have been received in an earlier session."
                )
            )
        return ToolResult(data=content)


def make_send_file_tool(channel: NotificationChannel, chat_id: str) -> ToolDef:
    return ToolDef.from_tool(SendFileTool(channel, chat_id))


def make_read_file_tool(file_contexts: dict[str, str]) -> ToolDef:
    return ToolDef.from_tool(ReadReceivedFileTool(file_contexts))

"""Explicit memory tools.

Tools the model calls when the user asks to remember, recall or forget
something. They act on the memories of the person bound to the current
message (the owner when there is no context, e.g. scheduled runs).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from lunar.memory.store import SEARCH_WINDOW, rank
from lunar.people.models import OWNER
from lunar.tools.base import ToolParams, ToolResult
from lunar.tools.registry import registry

if TYPE_CHECKING:
    from lunar.memory.store import MemoryStore
    from lunar.notifications.context import MessageContext

# Set by init_memory_tools() during startup.
_store: MemoryStore | None = None


def init_memory_tools(store: MemoryStore) -> None:
    global _store  # noqa: PLW0603
    _store = store


def _get_store() -> MemoryStore:
    if _store is None:
        msg = "Memory store not initialised — call init_memory_tools() first"
        raise RuntimeError(msg)
    return _store


def _person(msg_context: MessageContext | None) -> str:
    return msg_context.person_id if msg_context is not None else OWNER


# -- remember_this -----------------------------------------------------------


class RememberParams(ToolParams):
    content: str = Field(description="The fact to remember, as one short statement")
    tags: list[str] | None = Field(default=None, description="Optional labels")


@registry.tool(
    name="remember_this",
    description=(
        "Store something in long-term memory. Use when the user says "
        "'remember X', 'save this', 'don't forget', etc."
    ),
    category="memory",
    params_model=RememberParams,
)
async def remember_this(
    content: str,
    tags: list[str] | None = None,
    msg_context: MessageContext | None = None,
) -> ToolResult:
    if not content.strip():
        return ToolResult(error="Nothing to remember.")
    memory = await _get_store().add(content, _person(msg_context), tags=tags)
    return ToolResult(data={"remembered": True, "id": memory.id, "content": memory.content})


# -- recall ------------------------------------------------------------------


class RecallParams(ToolParams):
    query: str = Field(description="Keywords to search for in stored memories")
    limit: int = Field(default=5, ge=1, le=50, description="Maximum results")


@registry.tool(
    name="recall",
    description="Search long-term memory for facts matching the given keywords.",
    category="memory",
    params_model=RecallParams,
)
async def recall(
    query: str,
    limit: int = 5,
    msg_context: MessageContext | None = None,
) -> ToolResult:
    store = _get_store()
    person_id = _person(msg_context)
    # Reads go through the ACL; a person whose list omits them sees nothing.
    candidates = await store.accessible_to(person_id, person_id, SEARCH_WINDOW)
    matches = rank(candidates, query, limit)
    return ToolResult(
        data={
            "memories": [{"id": m.id, "content": m.content} for m in matches],
            "count": len(matches),
        }
    )


# -- forget_memory -----------------------------------------------------------


class ForgetParams(ToolParams):
    memory_id: str = Field(description="ID of the memory to delete (from recall results)")


@registry.tool(
    name="forget_memory",
    description=(
        "Delete one memory by ID. Use recall first to find it, and tell the "
        "user what you are about to forget."
    ),
    category="memory",
    params_model=ForgetParams,
)
async def forget_memory(
    memory_id: str,
    msg_context: MessageContext | None = None,
) -> ToolResult:
    store = _get_store()
    person_id = _person(msg_context)
    # Non-owner conversations may only forget their own memories.
    if person_id != OWNER:
        owned = {m.id for m in await store.all() if m.person_id == person_id}
        if memory_id not in owned:
            return ToolResult(error=f"Memory {memory_id} not found.")
    if not await store.delete(memory_id):
        return ToolResult(error=f"Memory {memory_id} not found.")
    return ToolResult(data={"deleted": True, "id": memory_id})

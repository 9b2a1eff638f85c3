"""Capability registry — the catalogue of tools the model may call.

Tools are looked up by name. Each entry carries a pydantic model for its
arguments (its JSON schema is what the model sees) and an async handler.
Handlers that declare a ``msg_context`` parameter get the MessageContext
of the turn that invoked them.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from lunar.tools.base import BaseTool, ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from lunar.notifications.context import MessageContext

logger = logging.getLogger(__name__)

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass
class ToolDef:
    """One catalogue entry."""

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None

    @classmethod
    def from_tool(cls, tool: BaseTool) -> ToolDef:
        return cls(
            name=tool.name,
            description=tool.description,
            category=tool.category,
            handler=tool.execute,
            params_model=tool.params_model,
        )

    def schema(self) -> dict[str, Any]:
        input_schema = (
            self.params_model.model_json_schema() if self.params_model else dict(_EMPTY_SCHEMA)
        )
        return {"name": self.name, "description": self.description, "input_schema": input_schema}

    async def run(
        self,
        arguments: dict[str, Any],
        msg_context: MessageContext | None = None,
    ) -> ToolResult:
        """Validate *arguments* and await the handler.

        Validation and handler errors propagate; ``ToolRegistry.execute`` is
        the error-capturing entry point.
        """
        kwargs = (
            self.params_model(**arguments).model_dump() if self.params_model else dict(arguments)
        )
        if msg_context is not None and "msg_context" in inspect.signature(self.handler).parameters:
            kwargs["msg_context"] = msg_context
        return await self.handler(**kwargs)


class ToolRegistry:
    """Name → ToolDef map.

    Module-level tools register with the decorator::

        @registry.tool(name="calculator", description="...", category="utility",
                       params_model=CalculatorParams)
        async def calculator(expression: str) -> ToolResult: ...

    Stateful tools subclass ``BaseTool`` and go through ``register()``.
    Registering a name twice replaces the earlier entry.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    # -- Registration ----------------------------------------------------------

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)
            self.add(ToolDef(name, description, category, fn, params_model))
            return fn

        return decorator

    def register(self, tool: BaseTool) -> None:
        self.add(ToolDef.from_tool(tool))

    def add(self, tool_def: ToolDef) -> None:
        if tool_def.name in self._tools:
            logger.debug("Replacing tool %s", tool_def.name)
        self._tools[tool_def.name] = tool_def

    def extended(self, extra_defs: Iterable[ToolDef]) -> ToolRegistry:
        """A copy of this catalogue with *extra_defs* layered on top.

        Per-message tools (``send_file`` bound to one chat, for instance) go
        here so the shared catalogue is never mutated mid-turn.
        """
        copy = ToolRegistry()
        copy._tools = dict(self._tools)
        for tool_def in extra_defs:
            copy._tools[tool_def.name] = tool_def
        return copy

    # -- Lookup ----------------------------------------------------------------

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_schemas(self) -> list[dict[str, Any]]:
        return [t.schema() for t in self._tools.values()]

    def get_tools_by_category(self) -> dict[str, list[ToolDef]]:
        groups: dict[str, list[ToolDef]] = {}
        for tool_def in self._tools.values():
            groups.setdefault(tool_def.category, []).append(tool_def)
        return groups

    # -- Execution -------------------------------------------------------------

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        msg_context: MessageContext | None = None,
    ) -> ToolResult:
        """Run a tool by name. Never raises: every failure becomes ``ToolResult.error``."""
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unknown tool: {name}")

        logger.info("Tool %s called with %s", name, arguments)
        started = time.monotonic()
        try:
            result = await tool_def.run(arguments, msg_context)
        except Exception as exc:
            logger.exception("Tool %s raised after %.2fs", name, time.monotonic() - started)
            return ToolResult(error=f"Tool '{name}' failed: {exc}")

        elapsed = time.monotonic() - started
        if result.success:
            logger.info("Tool %s finished in %.2fs", name, elapsed)
        else:
            logger.warning("Tool %s returned an error in %.2fs: %s", name, elapsed, result.error)
        return result


# Shared catalogue; tool modules register into it at import time.
registry = ToolRegistry()

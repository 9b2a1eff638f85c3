"""Tool result, parameter and class-based tool types."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """What a tool hands back: ``data`` on success, ``error`` on failure.

    String data reaches the model verbatim; anything else is sent as JSON.
    """

    data: dict[str, Any] | list[Any] | str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        if self.error:
            return json.dumps({"error": self.error})
        if isinstance(self.data, str):
            return self.data
        return json.dumps({} if self.data is None else self.data, default=str)


class ToolParams(BaseModel):
    """Argument model for a tool; its JSON schema is the tool's input schema."""


class BaseTool(ABC):
    """A tool that carries state, such as the chat it is bound to.

    Stateless tools should use the ``@registry.tool()`` decorator instead.
    """

    name: str = ""
    description: str = ""
    category: str = ""
    params_model: type[ToolParams] | None = None

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult: ...

"""Tool framework — import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
from lunar.tools import memory_tools, messaging_tools, scheduler_tools, utility  # noqa: F401
from lunar.tools.registry import registry

__all__ = ["registry"]

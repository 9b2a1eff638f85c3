"""Runtime — builds and wires the process-wide components.

Every front-end (Telegram, dashboard, CLI chat) shares one ``Runtime`` so
they see the same conversations, memories and scheduled jobs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lunar.bot.session import SessionRegistry
from lunar.db import DocumentStore
from lunar.llm.agent import AgentLoop
from lunar.llm.backend import get_backend
from lunar.llm.models import ModelManager
from lunar.memory.store import MemoryStore
from lunar.notifications.router import NotificationRouter
from lunar.people.store import PeopleStore
from lunar.scheduler.engine import Scheduler
from lunar.scheduler.store import JobStore
from lunar.tools import registry
from lunar.tools.memory_tools import init_memory_tools
from lunar.tools.messaging_tools import init_messaging_tools
from lunar.tools.scheduler_tools import init_scheduler_tools

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from lunar.llm.backend import ModelBackend
    from lunar.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    db: DocumentStore
    people: PeopleStore
    memory: MemoryStore
    sessions: SessionRegistry
    scheduler: Scheduler
    router: NotificationRouter
    agent: AgentLoop
    tools: ToolRegistry
    models: ModelManager = field(default_factory=ModelManager)

    async def start(self) -> None:
        """Arm persisted jobs. Needs a running event loop."""
        await self.scheduler.initialize(self.tools.get)

    async def stop(self) -> None:
        await self.scheduler.stop()


def create_runtime(
    db_path: Path | None = None,
    backend_factory: Callable[[], ModelBackend] | None = None,
    timezone: str | None = None,
) -> Runtime:
    """Construct every component and wire the tool modules to them."""
    db = DocumentStore(db_path)
    people = PeopleStore(db)
    memory = MemoryStore(db, people)
    sessions = SessionRegistry()
    scheduler = Scheduler(JobStore(db), timezone=timezone)
    router = NotificationRouter()
    models = ModelManager()

    def _default_backend() -> ModelBackend:
        backend = get_backend()
        backend.models = models
        return backend

    agent = AgentLoop(
        sessions,
        memory,
        people,
        tools=registry,
        backend_factory=backend_factory or _default_backend,
    )

    init_scheduler_tools(scheduler)
    init_memory_tools(memory)
    init_messaging_tools(router, people)
    logger.info("Runtime ready: db=%s, tools=%d", db.path, len(registry.tool_names))

    return Runtime(
        db=db,
        people=people,
        memory=memory,
        sessions=sessions,
        scheduler=scheduler,
        router=router,
        agent=agent,
        tools=registry,
        models=models,
    )

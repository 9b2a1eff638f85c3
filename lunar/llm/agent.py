"""Agent loop — the generate / execute-tools / re-generate protocol.

One ``run`` call handles one inbound user message for one conversation:

1. refresh the system prompt from the memory store,
2. append the user message,
3. ask the backend, ingest any inline memory block, append the reply,
4. stop on the suppression sentinel or a reply without tool calls,
5. otherwise execute each tool call, append the results and go to 3.

Cancellation is polled before every round and every tool dispatch. A
conversation already in flight rejects new turns with ``BUSY``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from lunar.config import settings
from lunar.llm.backend import ConfigurationError, GenerationError, get_backend
from lunar.llm.prompt import AGENTIC_SYSTEM_PROMPT, NO_RESPONSE, build_system_prompt
from lunar.notifications.context import MessageContext
from lunar.tools.registry import registry as default_registry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from lunar.bot.session import Session, SessionRegistry
    from lunar.llm.backend import ModelBackend
    from lunar.llm.messages import ToolCall
    from lunar.memory.store import MemoryStore
    from lunar.people.store import PeopleStore
    from lunar.tools.registry import ToolDef, ToolRegistry

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Error: I am not configured properly (missing API Key)."
FAILURE_MESSAGE = "I encountered an error processing your request."
BUSY_MESSAGE = "I'm still working on your previous message, please wait."


class TurnStatus(StrEnum):
    REPLIED = "replied"
    SUPPRESSED = "suppressed"
    STOPPED = "stopped"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"
    BUSY = "busy"


@dataclass
class TurnResult:
    """Outcome of one ``AgentLoop.run`` call.

    ``text`` is what the front-end should show; it is empty for
    ``SUPPRESSED`` and ``STOPPED``.
    """

    status: TurnStatus
    text: str = ""
    rounds: int = 0

    @property
    def has_reply(self) -> bool:
        return bool(self.text) and self.status not in (TurnStatus.SUPPRESSED, TurnStatus.STOPPED)


class AgentLoop:
    """Drives one conversation turn to completion.

    Args:
        sessions: Shared conversation logs and busy flags.
        memory: Memory store for prompt context and inline ingestion.
        people: Directory used to resolve a conversation key to a person.
        tools: Base tool catalogue (defaults to the global registry).
        backend_factory: Returns the model backend; raises ConfigurationError
            when no credential is configured.
        max_rounds: Ceiling on backend calls per turn.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        memory: MemoryStore,
        people: PeopleStore,
        tools: ToolRegistry | None = None,
        backend_factory: Callable[[], ModelBackend] = get_backend,
        max_rounds: int | None = None,
        ingestion_enabled: bool | None = None,
    ) -> None:
        self.sessions = sessions
        self._memory = memory
        self._people = people
        self._tools = tools if tools is not None else default_registry
        self._backend_factory = backend_factory
        self._max_rounds = max_rounds or settings.max_tool_rounds
        self._ingestion_enabled = (
            settings.memory_ingestion_enabled if ingestion_enabled is None else ingestion_enabled
        )

    async def run(
        self,
        conversation_key: str,
        user_input: str,
        *,
        person_id: str | None = None,
        channel: str = "",
        extra_tools: Iterable[ToolDef] | None = None,
        is_stopped: Callable[[], bool] | None = None,
        on_text: Callable[[str], Awaitable[None]] | None = None,
        on_tool_start: Callable[[str, dict[str, Any]], Awaitable[None]] | None = None,
        on_tool_result: Callable[[str, str], Awaitable[None]] | None = None,
    ) -> TurnResult:
        """Process one user message. Never raises for backend or tool failures."""
        if not self.sessions.try_acquire(conversation_key):
            logger.info("Conversation %s is busy, rejecting message", conversation_key)
            return TurnResult(TurnStatus.BUSY, BUSY_MESSAGE)

        try:
            try:
                backend = self._backend_factory()
            except ConfigurationError:
                logger.warning("Model backend is not configured")
                return TurnResult(TurnStatus.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE)

            session = self.sessions.get_or_create(conversation_key)
            if person_id is None:
                person = await self._people.find_by_address(conversation_key)
                person_id = person.id if person else None

            await self._refresh_system_prompt(session, person_id, user_input)
            session.add_user(user_input)

            tools = self._tools.extended(extra_tools or [])
            ctx = MessageContext(
                user_id=conversation_key,
                source_channel=channel or "agent",
                person_id=person_id or conversation_key,
            )
            stopped = is_stopped or (lambda: False)
            ingest = self._ingestion_enabled and person_id is not None

            last_text = ""
            rounds = 0
            while rounds < self._max_rounds:
                if stopped():
                    logger.info("Turn for %s stopped before round %d", conversation_key, rounds + 1)
                    return TurnResult(TurnStatus.STOPPED, rounds=rounds)

                rounds += 1
                try:
                    reply = await backend.generate(session.all(), tools.get_schemas())
                except GenerationError:
                    logger.exception("Generation failed for %s", conversation_key)
                    return TurnResult(TurnStatus.FAILED, FAILURE_MESSAGE, rounds)

                text = reply.content or ""
                if ingest and text:
                    text = await self._memory.ingest_inline(text, person_id)

                session.add_assistant(text or None, reply.tool_calls)

                if text.strip() == NO_RESPONSE:
                    logger.info("Reply suppressed for %s", conversation_key)
                    return TurnResult(TurnStatus.SUPPRESSED, rounds=rounds)

                if text.strip():
                    last_text = text.strip()
                    if on_text:
                        await on_text(last_text)

                if not reply.tool_calls:
                    return TurnResult(TurnStatus.REPLIED, last_text, rounds)

                logger.info(
                    "Round %d: %d tool call(s): %s",
                    rounds,
                    len(reply.tool_calls),
                    ", ".join(c.name for c in reply.tool_calls),
                )
                for call in reply.tool_calls:
                    if stopped():
                        logger.info(
                            "Turn for %s stopped before tool %s", conversation_key, call.name
                        )
                        return TurnResult(TurnStatus.STOPPED, rounds=rounds)
                    result = await self._execute(call, tools, ctx, on_tool_start)
                    session.add_tool_result(call.id, call.name, result)
                    if on_tool_result:
                        await on_tool_result(call.name, result)

            logger.warning("Hit max tool rounds (%d) for %s", self._max_rounds, conversation_key)
            return TurnResult(TurnStatus.REPLIED, last_text, rounds)
        finally:
            self.sessions.release(conversation_key)

    async def _refresh_system_prompt(
        self, session: Session, person_id: str | None, user_input: str
    ) -> None:
        prompt = AGENTIC_SYSTEM_PROMPT
        if person_id is not None:
            try:
                prompt = build_system_prompt(
                    await self._memory.context_block(person_id, user_input)
                )
            except Exception:
                logger.exception("Memory context retrieval failed for %s", person_id)
        session.set_system_prompt(prompt)

    async def _execute(
        self,
        call: ToolCall,
        tools: ToolRegistry,
        ctx: MessageContext,
        on_tool_start: Callable[[str, dict[str, Any]], Awaitable[None]] | None,
    ) -> str:
        """Run one tool call and return the text fed back to the model."""
        if tools.get(call.name) is None:
            logger.warning("Model requested unknown tool %s", call.name)
            return f"Error: Tool {call.name} not found."

        try:
            arguments = json.loads(call.arguments) if call.arguments.strip() else {}
        except json.JSONDecodeError as exc:
            logger.warning("Invalid JSON arguments for %s: %s", call.name, exc)
            return f"Error: Invalid JSON arguments for {call.name}: {exc}"
        if not isinstance(arguments, dict):
            logger.warning("Non-object arguments for %s: %r", call.name, arguments)
            return f"Error: Arguments for {call.name} must be a JSON object."

        if on_tool_start:
            await on_tool_start(call.name, arguments)
        result = await tools.execute(call.name, arguments, msg_context=ctx)
        return result.to_content()

"""In-memory conversation sessions with a bounded, system-preserving window."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lunar.config import settings
from lunar.llm.messages import ASSISTANT, SYSTEM, TOOL, USER, Message, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Ordered message log for a single conversation.

    Index 0 may hold the one system message; it is replaced in place and
    survives both pruning and ``reset()``.
    """

    messages: list[Message] = field(default_factory=list)
    max_history: int = field(default_factory=lambda: settings.conversation_window_size)

    @classmethod
    def create(cls, system_prompt: str | None = None, max_history: int | None = None) -> Session:
        session = cls() if max_history is None else cls(max_history=max_history)
        if system_prompt:
            session.set_system_prompt(system_prompt)
        return session

    def _system(self) -> Message | None:
        if self.messages and self.messages[0].role == SYSTEM:
            return self.messages[0]
        return None

    def append(self, message: Message) -> None:
        """Add to the tail, then prune to ``max_history`` keeping the system message."""
        self.messages.append(message)
        if len(self.messages) > self.max_history:
            system = self._system()
            self.messages = self.messages[-self.max_history :]
            if system is not None and self.messages[0] is not system:
                self.messages.insert(0, system)

    def add_user(self, content: str) -> None:
        self.append(Message(role=USER, content=content))

    def add_assistant(self, content: str | None, tool_calls: list[ToolCall] | None = None) -> None:
        self.append(Message(role=ASSISTANT, content=content, tool_calls=list(tool_calls or [])))

    def add_tool_result(self, tool_call_id: str, name: str, result: str) -> None:
        self.append(Message(role=TOOL, content=result, tool_call_id=tool_call_id, name=name))

    def set_system_prompt(self, content: str) -> None:
        """Overwrite the system message at index 0, or insert one there."""
        system = self._system()
        if system is not None:
            system.content = content
        else:
            self.messages.insert(0, Message(role=SYSTEM, content=content))

    def all(self) -> list[Message]:
        """Return a copy of the log in order."""
        return list(self.messages)

    def remove_last(self) -> Message | None:
        """Pop the tail entry. Returns None when the log is empty."""
        if not self.messages:
            return None
        return self.messages.pop()

    def reset(self) -> int:
        """Clear everything but the system message. Returns the count removed."""
        system = self._system()
        count = len(self.messages) - (1 if system is not None else 0)
        self.messages = [system] if system is not None else []
        return count


class SessionRegistry:
    """Process-wide map of conversation key → Session, plus busy flags.

    One instance is created at startup and handed to every front-end and
    the agent loop; tests build a fresh one each.
    """

    def __init__(self, max_history: int | None = None) -> None:
        self._sessions: dict[str, Session] = {}
        self._busy: set[str] = set()
        self._max_history = max_history

    def get_or_create(self, key: str) -> Session:
        """Get or create the session for a conversation key."""
        if key not in self._sessions:
            self._sessions[key] = Session.create(max_history=self._max_history)
            logger.debug("Created session for %s", key)
        return self._sessions[key]

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def keys(self) -> list[str]:
        return list(self._sessions.keys())

    def discard(self, key: str) -> bool:
        return self._sessions.pop(key, None) is not None

    # -- Busy flags ------------------------------------------------------------

    def try_acquire(self, key: str) -> bool:
        """Mark a conversation as generating. False if it already is."""
        if key in self._busy:
            return False
        self._busy.add(key)
        return True

    def release(self, key: str) -> None:
        self._busy.discard(key)

    def is_busy(self, key: str) -> bool:
        return key in self._busy

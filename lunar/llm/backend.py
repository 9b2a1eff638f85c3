"""Model backends — the provider-neutral protocol and the Anthropic adapter."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol

import anthropic

from lunar.config import settings
from lunar.llm.messages import ASSISTANT, SYSTEM, TOOL, USER, Message, ToolCall
from lunar.llm.models import ModelManager

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """No model credential is available."""


class GenerationError(Exception):
    """The backend call failed (network, auth, rate limit, bad request)."""


class ModelBackend(Protocol):
    async def generate(self, messages: list[Message], tools: list[dict[str, Any]]) -> Message:
        """Return the assistant's next message for *messages*."""
        ...

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        on_text_delta: Callable[[str], Awaitable[None]],
    ) -> Message:
        """Like ``generate``, but reports text chunks as they arrive."""
        ...


# -- Message conversion --------------------------------------------------------


def _tool_input(arguments: str) -> dict[str, Any]:
    try:
        value = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def to_anthropic(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Convert a conversation log into ``(system, messages)`` for the Messages API.

    System text goes to the separate ``system`` parameter. Tool results ride
    in user turns. Tool calls and results missing their counterpart (e.g.
    after pruning) are dropped, consecutive same-role turns are merged and
    the result always starts with a user turn.
    """
    system_parts = [m.content for m in messages if m.role == SYSTEM and m.content]

    call_ids = {c.id for m in messages if m.role == ASSISTANT for c in m.tool_calls}
    result_ids = {m.tool_call_id for m in messages if m.role == TOOL and m.tool_call_id}

    turns: list[dict[str, Any]] = []
    for message in messages:
        blocks: list[dict[str, Any]] = []
        if message.role == USER:
            role = "user"
            if message.content:
                blocks.append({"type": "text", "text": message.content})
        elif message.role == ASSISTANT:
            role = "assistant"
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                if call.id in result_ids:
                    blocks.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": _tool_input(call.arguments),
                    })
        elif message.role == TOOL:
            role = "user"
            if message.tool_call_id in call_ids:
                blocks.append({
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content or "",
                })
        else:
            continue

        if not blocks:
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})

    # Drop leading assistant turns, then any results left without their call.
    while turns:
        if turns[0]["role"] != "user":
            turns.pop(0)
            continue
        kept_calls = {
            b["id"]
            for t in turns
            if t["role"] == "assistant"
            for b in t["content"]
            if b["type"] == "tool_use"
        }
        first = turns[0]
        first["content"] = [
            b
            for b in first["content"]
            if b["type"] != "tool_result" or b["tool_use_id"] in kept_calls
        ]
        if first["content"]:
            break
        turns.pop(0)

    return "\n\n".join(system_parts), turns


def from_anthropic(response: Any) -> Message:
    """Convert an SDK response into an assistant Message."""
    texts: list[str] = []
    calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))
    return Message(role=ASSISTANT, content="".join(texts) or None, tool_calls=calls)


# -- Anthropic -----------------------------------------------------------------


class AnthropicBackend:
    """``ModelBackend`` over ``anthropic.AsyncAnthropic``."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        models: ModelManager | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._client = client
        self.models = models or ModelManager()
        self._max_tokens = max_tokens or settings.max_tokens

    def _request(self, messages: list[Message], tools: list[dict[str, Any]]) -> dict[str, Any]:
        system, turns = to_anthropic(messages)
        kwargs: dict[str, Any] = {
            "model": self.models.get_chat_model(),
            "max_tokens": self._max_tokens,
            "messages": turns,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        return kwargs

    async def generate(self, messages: list[Message], tools: list[dict[str, Any]]) -> Message:
        try:
            response = await self._client.messages.create(**self._request(messages, tools))
        except anthropic.APIError as exc:
            logger.exception("Anthropic request failed")
            raise GenerationError(str(exc)) from exc
        return from_anthropic(response)

    async def stream(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]],
        on_text_delta: Callable[[str], Awaitable[None]],
    ) -> Message:
        try:
            async with self._client.messages.stream(**self._request(messages, tools)) as stream:
                async for text in stream.text_stream:
                    await on_text_delta(text)
                response = await stream.get_final_message()
        except anthropic.APIError as exc:
            logger.exception("Anthropic stream failed")
            raise GenerationError(str(exc)) from exc
        return from_anthropic(response)


_backend: AnthropicBackend | None = None


def get_backend() -> AnthropicBackend:
    """Lazily build the shared Anthropic backend.

    Raises ConfigurationError when ANTHROPIC_API_KEY is not set.
    """
    global _backend  # noqa: PLW0603
    if not settings.anthropic_api_key:
        msg = "ANTHROPIC_API_KEY is not set"
        raise ConfigurationError(msg)
    if _backend is None:
        _backend = AnthropicBackend(anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key))
    return _backend

"""Tests for the Anthropic backend adapter and message conversion."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import pytest

from lunar.llm import backend as backend_mod
from lunar.llm.backend import (
    AnthropicBackend,
    ConfigurationError,
    GenerationError,
    from_anthropic,
    get_backend,
    to_anthropic,
)
from lunar.llm.messages import ASSISTANT, SYSTEM, TOOL, USER, Message, ToolCall
from lunar.llm.models import ModelManager


def _call(id: str, name: str = "echo", args: str = '{"x": 1}') -> ToolCall:
    return ToolCall(id=id, name=name, arguments=args)


# -- to_anthropic ------------------------------------------------------------


def test_system_is_split_out() -> None:
    system, turns = to_anthropic([
        Message(role=SYSTEM, content="be nice"),
        Message(role=USER, content="hi"),
    ])
    assert system == "be nice"
    assert turns == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]


def test_tool_round_trip_pairs() -> None:
    _, turns = to_anthropic([
        Message(role=USER, content="go"),
        Message(role=ASSISTANT, content="ok", tool_calls=[_call("c1")]),
        Message(role=TOOL, content="result", tool_call_id="c1", name="echo"),
    ])

    assert [t["role"] for t in turns] == ["user", "assistant", "user"]
    assert turns[1]["content"][1] == {
        "type": "tool_use",
        "id": "c1",
        "name": "echo",
        "input": {"x": 1},
    }
    assert turns[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "c1", "content": "result"}
    ]


def test_unanswered_tool_call_is_dropped() -> None:
    _, turns = to_anthropic([
        Message(role=USER, content="go"),
        Message(role=ASSISTANT, content="thinking", tool_calls=[_call("c1")]),
    ])
    assert turns[1]["content"] == [{"type": "text", "text": "thinking"}]


def test_orphaned_tool_result_is_dropped() -> None:
    _, turns = to_anthropic([
        Message(role=TOOL, content="stale", tool_call_id="gone", name="echo"),
        Message(role=USER, content="hi"),
    ])
    assert turns == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]


def test_consecutive_user_turns_are_merged() -> None:
    _, turns = to_anthropic([
        Message(role=USER, content="one"),
        Message(role=USER, content="two"),
    ])
    assert len(turns) == 1
    assert [b["text"] for b in turns[0]["content"]] == ["one", "two"]


def test_leading_assistant_turn_is_dropped() -> None:
    _, turns = to_anthropic([
        Message(role=SYSTEM, content="sys"),
        Message(role=ASSISTANT, content="earlier reply"),
        Message(role=USER, content="hi"),
    ])
    assert turns[0]["role"] == "user"
    assert len(turns) == 1


def test_bad_tool_arguments_become_empty_input() -> None:
    _, turns = to_anthropic([
        Message(role=USER, content="go"),
        Message(role=ASSISTANT, content=None, tool_calls=[_call("c1", args="{oops")]),
        Message(role=TOOL, content="err", tool_call_id="c1"),
    ])
    assert turns[1]["content"][0]["input"] == {}


# -- from_anthropic ----------------------------------------------------------


def test_from_anthropic_collects_text_and_tool_calls() -> None:
    response = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Let me "),
            SimpleNamespace(type="text", text="check."),
            SimpleNamespace(type="tool_use", id="t1", name="recall", input={"query": "tea"}),
        ]
    )
    message = from_anthropic(response)

    assert message.role == ASSISTANT
    assert message.content == "Let me check."
    assert message.tool_calls[0].name == "recall"
    assert message.tool_calls[0].arguments == '{"query": "tea"}'


def test_from_anthropic_tool_only() -> None:
    response = SimpleNamespace(
        content=[SimpleNamespace(type="tool_use", id="t1", name="x", input={})]
    )
    assert from_anthropic(response).content is None


# -- AnthropicBackend --------------------------------------------------------


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.messages.create = create
    return client


async def test_generate_builds_request() -> None:
    create = AsyncMock(
        return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text="hi")])
    )
    backend = AnthropicBackend(_client(create), ModelManager("haiku"), max_tokens=100)
    tools = [{"name": "echo", "description": "Echo", "input_schema": {"type": "object"}}]

    reply = await backend.generate(
        [Message(role=SYSTEM, content="sys"), Message(role=USER, content="hello")], tools
    )

    assert reply.content == "hi"
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "claude-haiku-4-5"
    assert kwargs["max_tokens"] == 100
    assert kwargs["system"] == "sys"
    assert kwargs["tools"] == tools


async def test_generate_omits_empty_system_and_tools() -> None:
    create = AsyncMock(return_value=SimpleNamespace(content=[]))
    backend = AnthropicBackend(_client(create))

    await backend.generate([Message(role=USER, content="hello")], [])

    assert "system" not in create.call_args.kwargs
    assert "tools" not in create.call_args.kwargs


async def test_api_error_becomes_generation_error() -> None:
    create = AsyncMock(side_effect=anthropic.APIConnectionError(request=MagicMock()))
    backend = AnthropicBackend(_client(create))

    with pytest.raises(GenerationError):
        await backend.generate([Message(role=USER, content="hello")], [])


# -- stream ------------------------------------------------------------------


class FakeStream:
    """Stands in for the SDK's ``messages.stream(...)`` context manager."""

    def __init__(self, chunks: list[str], final: object, error: Exception | None = None) -> None:
        self.chunks = chunks
        self.final = final
        self.error = error
        self.kwargs: dict = {}

    def __call__(self, **kwargs: object) -> "FakeStream":
        self.kwargs = kwargs
        return self

    async def __aenter__(self) -> "FakeStream":
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    @property
    def text_stream(self):
        return self._iter_chunks()

    async def _iter_chunks(self):
        for chunk in self.chunks:
            yield chunk

    async def get_final_message(self) -> object:
        return self.final


async def test_stream_reports_deltas_and_returns_final_message() -> None:
    final = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Hello there"),
            SimpleNamespace(type="tool_use", id="t1", name="recall", input={"query": "tea"}),
        ]
    )
    client = MagicMock()
    client.messages.stream = FakeStream(["Hello", " there"], final)
    backend = AnthropicBackend(client, ModelManager("haiku"), max_tokens=50)
    deltas: list[str] = []

    async def on_delta(text: str) -> None:
        deltas.append(text)

    reply = await backend.stream([Message(role=USER, content="hi")], [], on_delta)

    assert deltas == ["Hello", " there"]
    assert reply.content == "Hello there"
    assert reply.tool_calls[0].name == "recall"
    assert client.messages.stream.kwargs["model"] == "claude-haiku-4-5"
    assert client.messages.stream.kwargs["max_tokens"] == 50


async def test_stream_api_error_becomes_generation_error() -> None:
    client = MagicMock()
    client.messages.stream = FakeStream(
        [], None, error=anthropic.APIConnectionError(request=MagicMock())
    )
    backend = AnthropicBackend(client)

    async def on_delta(text: str) -> None:
        raise AssertionError("no text expected")

    with pytest.raises(GenerationError):
        await backend.stream([Message(role=USER, content="hi")], [], on_delta)


# -- get_backend -------------------------------------------------------------


def test_get_backend_without_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(backend_mod.settings, "anthropic_api_key", "")
    with pytest.raises(ConfigurationError):
        get_backend()


def test_get_backend_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(backend_mod.settings, "anthropic_api_key", "sk-test")
    monkeypatch.setattr(backend_mod, "_backend", None)

    first = get_backend()
    assert isinstance(first, AnthropicBackend)
    assert get_backend() is first
